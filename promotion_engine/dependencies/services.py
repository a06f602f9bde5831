from functools import lru_cache

from fastapi import Depends
from sqlalchemy.orm import Session

from promotion_engine.db import get_db
from promotion_engine.repositories.employee_repository import EmployeeRepository
from promotion_engine.repositories.promotion_repository import PromotionRepository
from promotion_engine.repositories.outbox_repository import OutboxRepository
from promotion_engine.services.promotion.core.hierarchy import PositionHierarchy
from promotion_engine.services.promotion.facade import PromotionService
from promotion_engine.dependencies.repositories import (
    get_employee_repository,
    get_promotion_repository,
    get_outbox_repository,
)


@lru_cache
def get_position_hierarchy() -> PositionHierarchy:
    """직위 사다리 (POSITION_LADDER 환경변수, 프로세스당 한 번 로드)"""
    return PositionHierarchy.from_env()


def get_promotion_service(
    db: Session = Depends(get_db),
    promotion_repo: PromotionRepository = Depends(get_promotion_repository),
    employee_repo: EmployeeRepository = Depends(get_employee_repository),
    outbox_repo: OutboxRepository = Depends(get_outbox_repository),
    hierarchy: PositionHierarchy = Depends(get_position_hierarchy),
) -> PromotionService:
    """PromotionService 의존성 주입"""
    return PromotionService(
        db=db,
        promotion_repo=promotion_repo,
        employee_repo=employee_repo,
        outbox_repo=outbox_repo,
        hierarchy=hierarchy,
    )
