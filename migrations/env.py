import os
from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool
from dotenv import load_dotenv

load_dotenv()

# Alembic Config
config = context.config

# Logging
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# 모델 메타데이터 연결
from promotion_engine.db import Base  # noqa: E402
# 모든 모델을 import하여 테이블과 ENUM 타입이 등록되도록 함
from promotion_engine.models import (  # noqa: F401,E402
    employee,
    promotion,
    outbox,
)

target_metadata = Base.metadata


def get_url() -> str:
    """
    Priority:
    1) DATABASE_URL (explicit override)
    2) DATABASE_URL_OWNER (for migrations / DDL)
    3) DATABASE_URL_RUNTIME (fallback)
    """
    url = (
        os.getenv("DATABASE_URL")
        or os.getenv("DATABASE_URL_OWNER")
        or os.getenv("DATABASE_URL_RUNTIME")
        or ""
    ).strip()

    if not url:
        raise RuntimeError(
            "Database URL is not set. Set DATABASE_URL "
            "or DATABASE_URL_OWNER / DATABASE_URL_RUNTIME."
        )

    return url


def run_migrations_offline() -> None:
    url = get_url()
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
        render_as_batch=url.startswith("sqlite"),
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    url = get_url()
    config.set_main_option("sqlalchemy.url", url.replace("%", "%%"))

    connectable = engine_from_config(
        config.get_section(config.config_ini_section),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
            render_as_batch=url.startswith("sqlite"),
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
