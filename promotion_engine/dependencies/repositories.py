from fastapi import Depends
from sqlalchemy.orm import Session

from promotion_engine.db import get_db
from promotion_engine.repositories.employee_repository import EmployeeRepository
from promotion_engine.repositories.promotion_repository import PromotionRepository
from promotion_engine.repositories.outbox_repository import OutboxRepository


def get_employee_repository(db: Session = Depends(get_db)) -> EmployeeRepository:
    """EmployeeRepository 의존성 주입"""
    return EmployeeRepository(db)


def get_promotion_repository(db: Session = Depends(get_db)) -> PromotionRepository:
    """PromotionRepository 의존성 주입"""
    return PromotionRepository(db)


def get_outbox_repository(db: Session = Depends(get_db)) -> OutboxRepository:
    """OutboxRepository 의존성 주입"""
    return OutboxRepository(db)
