"""
승진 투표 서비스 모듈
"""
from promotion_engine.services.promotion.facade import (
    PromotionService,
    EVENT_PROMOTION_INITIATED,
    EVENT_PROMOTION_RESOLVED,
)

__all__ = [
    "PromotionService",
    "EVENT_PROMOTION_INITIATED",
    "EVENT_PROMOTION_RESOLVED",
]
