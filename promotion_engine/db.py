from sqlalchemy.orm import DeclarativeBase, sessionmaker
from sqlalchemy import create_engine
from os import getenv
from typing import Generator

from dotenv import load_dotenv

load_dotenv()


class Base(DeclarativeBase):
    pass


def build_engine(url: str):
    """URL에 맞는 엔진 생성 (SQLite는 스레드 간 공유 허용)"""
    if url.startswith("sqlite"):
        return create_engine(
            url,
            connect_args={"check_same_thread": False, "timeout": 30},
        )
    return create_engine(url, pool_pre_ping=True)


DATABASE_URL = getenv("DATABASE_URL", "sqlite:///./promotion_votes.db")
engine = build_engine(DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator:
    """FastAPI 의존성으로 사용할 DB 세션"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
