"""
공통 fixture

- 테스트마다 파일 기반 SQLite DB (스레드별 세션 사용 가능)
- 시계는 FakeClock으로 주입하여 마감 경과를 재현
"""
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

import promotion_engine.models  # noqa: F401
from promotion_engine.db import Base, build_engine
from promotion_engine.models.employee import Employee
from promotion_engine.services.promotion.facade import PromotionService
from promotion_engine.dependencies.services import get_promotion_service
from tests.factories import FakeClock, ROSTER


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'promotion_votes.db'}")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    with factory() as db:
        db.add_all([
            Employee(employee_id=eid, name=name, store_name=store, position=position, is_active=active)
            for eid, name, store, position, active in ROSTER
        ])
        db.commit()
    return factory


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def service(db, clock):
    return PromotionService(db, clock=clock)


@pytest.fixture
def client(session_factory, clock):
    from main import app

    def _override_service():
        session = session_factory()
        try:
            yield PromotionService(session, clock=clock)
        finally:
            session.close()

    app.dependency_overrides[get_promotion_service] = _override_service
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
