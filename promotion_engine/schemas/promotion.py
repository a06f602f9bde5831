from pydantic import BaseModel, Field, field_validator
from uuid import UUID
from typing import List
from datetime import datetime

from promotion_engine.models.promotion import PromotionStatusType, VoteChoiceType


def _normalize_enum_input(value):
    # "Agree" / "agree" / "AGREE" 모두 허용
    if isinstance(value, str):
        return value.strip().upper()
    return value


# ============================================================================
# Request Schemas
# ============================================================================

class PromotionVoteCreateRequest(BaseModel):
    """승진 투표 발의 요청"""
    applicant_id: str = Field(min_length=1, max_length=64)
    applicant_name: str = Field(min_length=1, max_length=100)
    store_name: str = Field(min_length=1, max_length=100)
    current_position: str = Field(min_length=1, max_length=50)
    target_position: str = Field(min_length=1, max_length=50)
    reason: str = Field(min_length=10, max_length=500)  # 승진 사유 10~500자
    vote_duration_days: int = Field(default=7, ge=1, le=30)  # 투표 기간 1~30일

    @field_validator("applicant_id", "applicant_name", "store_name", "current_position", "target_position", "reason", mode="before")
    @classmethod
    def strip_text(cls, value):
        if isinstance(value, str):
            return value.strip()
        return value


class VoteSubmitRequest(BaseModel):
    """투표 제출 요청"""
    voter_id: str = Field(min_length=1, max_length=64)
    voter_name: str = Field(min_length=1, max_length=100)
    choice: VoteChoiceType  # AGREE / DISAGREE
    comment: str | None = Field(default=None, max_length=500)
    voter_position: str | None = None  # 디렉터리 값이 우선
    voter_store: str | None = None

    @field_validator("choice", mode="before")
    @classmethod
    def normalize_choice(cls, value):
        return _normalize_enum_input(value)

    @field_validator("comment", mode="before")
    @classmethod
    def blank_comment_to_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value


# ============================================================================
# Response Schemas
# ============================================================================

class PromotionVoteSummaryResponse(BaseModel):
    """승진 투표 요약 (발의 결과 / 이력 목록)"""
    id: UUID
    applicant_id: str
    applicant_name: str
    store_name: str
    current_position: str
    target_position: str
    reason: str
    initiated_at: datetime
    deadline: datetime
    status: PromotionStatusType
    agree_count: int
    disagree_count: int
    qualified_voter_count: int
    resolved_at: datetime | None

    class Config:
        from_attributes = True


class ActivePromotionVoteResponse(PromotionVoteSummaryResponse):
    """진행 중 투표 (조회자 기준 투표 여부 포함)"""
    has_voted: bool
    can_vote: bool


class VoteRecordResponse(BaseModel):
    """개별 투표 기록"""
    voter_id: str
    voter_name: str
    choice: VoteChoiceType
    comment: str | None
    voter_position: str | None
    voter_store: str | None
    created_at: datetime

    class Config:
        from_attributes = True


class PromotionVoteDetailResponse(PromotionVoteSummaryResponse):
    """승진 투표 상세 (실시간 집계 + 투표 기록)"""
    total_votes: int
    votes: List[VoteRecordResponse]


class VoteSubmitResponse(BaseModel):
    """투표 제출 응답"""
    message: str
    proposal_id: UUID
    vote_id: UUID
    agree_count: int
    disagree_count: int
    qualified_voter_count: int
    status: PromotionStatusType
