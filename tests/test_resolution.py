import pytest

from promotion_engine.models.promotion import PromotionStatusType
from promotion_engine.services.promotion.core.resolution import early_outcome, final_outcome, is_majority


@pytest.mark.parametrize(
    "agree, qualified, expected",
    [
        (3, 5, True),
        (2, 5, False),
        (2, 4, False),  # 동률은 과반 아님
        (3, 4, True),
        (1, 1, True),
    ],
)
def test_is_majority_uses_qualified_count(agree, qualified, expected):
    assert is_majority(agree, qualified) is expected


def test_early_pass_on_majority_even_with_pending_voters():
    assert early_outcome(3, 1, 5) == PromotionStatusType.PASSED


def test_early_fail_when_majority_unreachable():
    # 남은 2명이 모두 찬성해도 2*2=4 <= 5
    assert early_outcome(0, 3, 5) == PromotionStatusType.FAILED


def test_no_early_outcome_while_majority_reachable():
    assert early_outcome(2, 2, 5) is None
    assert early_outcome(0, 0, 5) is None


def test_tie_with_everyone_voted_fails_early():
    assert early_outcome(2, 2, 4) == PromotionStatusType.FAILED


def test_final_outcome_without_votes_expires():
    assert final_outcome(0, 0, 5) == PromotionStatusType.EXPIRED


def test_final_outcome_short_of_majority_fails():
    assert final_outcome(2, 2, 5) == PromotionStatusType.FAILED
    assert final_outcome(1, 0, 5) == PromotionStatusType.FAILED


def test_final_outcome_with_majority_passes():
    assert final_outcome(3, 0, 5) == PromotionStatusType.PASSED
