"""판정 규칙 (순수 함수)

과반 기준은 실제 투표 수가 아니라 고정된 자격자 수(qualified)이다.
"""
from promotion_engine.models.promotion import PromotionStatusType


def is_majority(agree: int, qualified: int) -> bool:
    return agree * 2 > qualified


def early_outcome(agree: int, disagree: int, qualified: int) -> PromotionStatusType | None:
    """
    마감 전 조기 판정
    - 찬성이 과반 → PASSED
    - 남은 자격자가 모두 찬성해도 과반 불가 → FAILED
    - 그 외 None (계속 진행)
    """
    if is_majority(agree, qualified):
        return PromotionStatusType.PASSED
    remaining = max(qualified - agree - disagree, 0)
    if not is_majority(agree + remaining, qualified):
        return PromotionStatusType.FAILED
    return None


def final_outcome(agree: int, disagree: int, qualified: int) -> PromotionStatusType:
    """마감 판정: 동률 포함 과반 미달은 FAILED, 무투표는 EXPIRED"""
    if is_majority(agree, qualified):
        return PromotionStatusType.PASSED
    if agree == 0 and disagree == 0:
        return PromotionStatusType.EXPIRED
    return PromotionStatusType.FAILED
