from promotion_engine.dependencies.repositories import (
    get_employee_repository,
    get_promotion_repository,
    get_outbox_repository,
)
from promotion_engine.dependencies.services import get_position_hierarchy, get_promotion_service

__all__ = [
    "get_employee_repository",
    "get_promotion_repository",
    "get_outbox_repository",
    "get_position_hierarchy",
    "get_promotion_service",
]
