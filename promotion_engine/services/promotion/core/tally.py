"""투표 기록 + 집계 원자 처리"""
import logging
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from promotion_engine.models.promotion import PromotionVote, VoteChoiceType, PromotionStatusType
from promotion_engine.repositories.promotion_repository import PromotionRepository
from promotion_engine.exceptions import (
    AlreadyVotedError,
    ProposalNotOpenError,
    DeadlinePassedError,
    NotFoundError,
)
from promotion_engine.utils.clock import as_utc

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Ballot:
    voter_id: str
    voter_name: str
    choice: VoteChoiceType
    comment: str | None
    voter_position: str | None
    voter_store: str | None


@dataclass(frozen=True)
class TallySnapshot:
    """증가 직후 집계 (조기 판정 입력)"""
    vote: PromotionVote
    agree_count: int
    disagree_count: int
    qualified_voter_count: int


class ConcurrentTallyEngine:
    """
    투표자당 정확히 한 번 집계

    - 투표 행 삽입: (proposal_id, voter_id) 유니크 제약이 중복 감지
    - 카운터 증가: 조건부 UPDATE ... RETURNING
    - 두 단계는 호출자가 연 하나의 트랜잭션 안에서 실행되므로
      하나라도 실패하면 전체 롤백
    """

    def __init__(self, db: Session, promotion_repo: PromotionRepository):
        self.db = db
        self.promotion_repo = promotion_repo

    def record_vote(self, proposal_id: UUID, ballot: Ballot, now: datetime) -> TallySnapshot:
        """트랜잭션 내부에서 호출"""
        vote = PromotionVote(
            proposal_id=proposal_id,
            voter_id=ballot.voter_id,
            voter_name=ballot.voter_name,
            choice=ballot.choice,
            comment=ballot.comment,
            voter_position=ballot.voter_position,
            voter_store=ballot.voter_store,
            created_at=now,
        )
        self.promotion_repo.insert_vote(vote)

        counts = self.promotion_repo.increment_tally(proposal_id, ballot.choice, now)
        if counts is None:
            # 그 사이 종료되었거나 마감 경과 → 호출자 트랜잭션 롤백 대상
            self._raise_state_error(proposal_id, now)

        agree, disagree, qualified = counts
        return TallySnapshot(
            vote=vote,
            agree_count=agree,
            disagree_count=disagree,
            qualified_voter_count=qualified,
        )

    def resolve_integrity_error(self, proposal_id: UUID, voter_id: str, error: IntegrityError) -> None:
        """
        삽입 충돌 해석 (롤백 이후 호출)
        - 이미 투표 기록이 있으면 경쟁에서 진 중복 제출 → AlreadyVotedError
        - 그 외 무결성 오류는 그대로 전파
        """
        if self.promotion_repo.get_vote(proposal_id, voter_id) is not None:
            logger.info(f"Duplicate vote rejected: proposal={proposal_id} voter={voter_id}")
            raise AlreadyVotedError(
                message="Already voted",
                detail="You have already voted"
            ) from error
        raise error

    def _raise_state_error(self, proposal_id: UUID, now: datetime) -> None:
        proposal = self.promotion_repo.get_by_id(proposal_id, refresh=True)
        if proposal is None:
            raise NotFoundError(
                message="Proposal not found",
                detail=f"Proposal with id {proposal_id} not found"
            )
        if proposal.status != PromotionStatusType.OPEN:
            raise ProposalNotOpenError(
                message="Proposal not open",
                detail=f"Voting has ended with status {proposal.status.value}"
            )
        if now >= as_utc(proposal.deadline):
            raise DeadlinePassedError(
                message="Deadline passed",
                detail="The voting deadline for this proposal has passed"
            )
        raise ProposalNotOpenError(
            message="Proposal not open",
            detail="Proposal state changed while voting"
        )
