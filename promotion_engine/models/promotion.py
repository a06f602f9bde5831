import uuid
from datetime import datetime
from enum import Enum as PyEnum
from sqlalchemy import (
    String, Text, Integer, DateTime, ForeignKey, CheckConstraint,
    UniqueConstraint, Index, Enum, Uuid, func, text
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from promotion_engine.db import Base


class PromotionStatusType(PyEnum):
    OPEN = "OPEN"
    PASSED = "PASSED"
    FAILED = "FAILED"
    EXPIRED = "EXPIRED"


TERMINAL_STATUSES = (
    PromotionStatusType.PASSED,
    PromotionStatusType.FAILED,
    PromotionStatusType.EXPIRED,
)


class VoteChoiceType(PyEnum):
    AGREE = "AGREE"
    DISAGREE = "DISAGREE"


class PromotionProposal(Base):
    __tablename__ = "promotion_proposals"
    __table_args__ = (
        CheckConstraint("agree_count >= 0", name="ck_promotion_proposals_agree_count"),
        CheckConstraint("disagree_count >= 0", name="ck_promotion_proposals_disagree_count"),
        CheckConstraint("qualified_voter_count > 0", name="ck_promotion_proposals_qualified_count"),
        CheckConstraint(
            "vote_duration_days BETWEEN 1 AND 30",
            name="ck_promotion_proposals_duration"
        ),
        # 신청자당 OPEN 제안은 하나뿐 (동시 생성 경쟁도 저장소에서 차단)
        Index(
            "uq_promotion_proposals_open_applicant",
            "applicant_id",
            unique=True,
            postgresql_where=text("status = 'OPEN'"),
            sqlite_where=text("status = 'OPEN'"),
        ),
        Index("idx_promotion_proposals_status_deadline", "status", "deadline"),
        Index("idx_promotion_proposals_store_name", "store_name"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    applicant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    applicant_name: Mapped[str] = mapped_column(String(100), nullable=False)
    store_name: Mapped[str] = mapped_column(String(100), nullable=False)
    current_position: Mapped[str] = mapped_column(String(50), nullable=False)
    target_position: Mapped[str] = mapped_column(String(50), nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    vote_duration_days: Mapped[int] = mapped_column(Integer, nullable=False)

    initiated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    deadline: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    status: Mapped[PromotionStatusType] = mapped_column(
        Enum(PromotionStatusType, name="promotion_status_type"),
        nullable=False,
        default=PromotionStatusType.OPEN,
    )
    agree_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    disagree_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # 생성 시점에 고정, 이후 명부 변경과 무관
    qualified_voter_count: Mapped[int] = mapped_column(Integer, nullable=False)

    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    # Relationships
    votes = relationship(
        "PromotionVote",
        back_populates="proposal",
        order_by="PromotionVote.created_at",
    )
    qualified_voters = relationship(
        "PromotionQualifiedVoter",
        back_populates="proposal",
    )

    @property
    def total_votes(self) -> int:
        return self.agree_count + self.disagree_count


class PromotionQualifiedVoter(Base):
    """생성 시점의 투표 자격자 스냅샷"""
    __tablename__ = "promotion_qualified_voters"
    __table_args__ = (
        UniqueConstraint("proposal_id", "employee_id", name="uq_promotion_qualified_voters_proposal_employee"),
        Index("idx_promotion_qualified_voters_employee_id", "employee_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    proposal_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("promotion_proposals.id", ondelete="CASCADE"),
        nullable=False,
    )
    employee_id: Mapped[str] = mapped_column(String(64), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    position: Mapped[str] = mapped_column(String(50), nullable=False)

    # Relationships
    proposal = relationship("PromotionProposal", back_populates="qualified_voters")


class PromotionVote(Base):
    """투표 기록 (추가만 가능, 수정/철회 없음)"""
    __tablename__ = "promotion_votes"
    __table_args__ = (
        # 투표자당 한 표: 중복 감지는 이 제약으로 원자적으로 처리
        UniqueConstraint("proposal_id", "voter_id", name="uq_promotion_votes_proposal_voter"),
        Index("idx_promotion_votes_proposal_id", "proposal_id"),
        CheckConstraint(
            "comment IS NULL OR length(comment) <= 500",
            name="ck_promotion_votes_comment_length"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    proposal_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("promotion_proposals.id", ondelete="CASCADE"),
        nullable=False,
    )
    voter_id: Mapped[str] = mapped_column(String(64), nullable=False)
    voter_name: Mapped[str] = mapped_column(String(100), nullable=False)
    choice: Mapped[VoteChoiceType] = mapped_column(
        Enum(VoteChoiceType, name="vote_choice_type"),
        nullable=False,
    )
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    voter_position: Mapped[str | None] = mapped_column(String(50), nullable=True)
    voter_store: Mapped[str | None] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # Relationships
    proposal = relationship("PromotionProposal", back_populates="votes")
