# Models package
from promotion_engine.models.employee import Employee
from promotion_engine.models.promotion import (
    PromotionProposal, PromotionQualifiedVoter, PromotionVote,
    PromotionStatusType, VoteChoiceType, TERMINAL_STATUSES,
)
from promotion_engine.models.outbox import OutboxEvent, OutboxStatusType

__all__ = [
    # Directory
    "Employee",
    # Promotion
    "PromotionProposal", "PromotionQualifiedVoter", "PromotionVote",
    "PromotionStatusType", "VoteChoiceType", "TERMINAL_STATUSES",
    # Outbox
    "OutboxEvent", "OutboxStatusType",
]
