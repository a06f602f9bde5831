import logging
from datetime import datetime, timedelta
from typing import Callable
from uuid import UUID

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from promotion_engine.models.promotion import (
    PromotionProposal,
    PromotionStatusType,
)
from promotion_engine.repositories.employee_repository import EmployeeRepository
from promotion_engine.repositories.promotion_repository import PromotionRepository
from promotion_engine.repositories.outbox_repository import OutboxRepository
from promotion_engine.schemas.promotion import (
    PromotionVoteCreateRequest,
    PromotionVoteSummaryResponse,
    ActivePromotionVoteResponse,
    PromotionVoteDetailResponse,
    VoteRecordResponse,
    VoteSubmitRequest,
    VoteSubmitResponse,
)
from promotion_engine.services.promotion.core.hierarchy import PositionHierarchy
from promotion_engine.services.promotion.core.eligibility import EligibilityResolver
from promotion_engine.services.promotion.core.tally import ConcurrentTallyEngine, Ballot
from promotion_engine.services.promotion.core.resolution import early_outcome, final_outcome
from promotion_engine.exceptions import (
    AppException,
    NotFoundError,
    ValidationError,
    DuplicateOpenProposalError,
    NoQualifiedVotersError,
)
from promotion_engine.utils.clock import utcnow, as_utc
from promotion_engine.utils.retry import run_with_retry
from promotion_engine.utils.transaction import transaction

logger = logging.getLogger(__name__)

EVENT_PROMOTION_INITIATED = "promotion.initiated.v1"
EVENT_PROMOTION_RESOLVED = "promotion.resolved.v1"


class PromotionService:
    """
    승진 투표 생명주기 관리

    OPEN → PASSED / FAILED / EXPIRED
    - 투표마다 조기 판정, 마감 시 최종 판정
    - 상태 전이는 조건부 UPDATE로만 수행되어 재평가는 no-op
    - 알림은 outbox 이벤트로 같은 트랜잭션에 기록 (전이 승자만 기록)
    """

    def __init__(
        self,
        db: Session,
        promotion_repo: PromotionRepository | None = None,
        employee_repo: EmployeeRepository | None = None,
        outbox_repo: OutboxRepository | None = None,
        hierarchy: PositionHierarchy | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.promotion_repo = promotion_repo or PromotionRepository(db)
        self.employee_repo = employee_repo or EmployeeRepository(db)
        self.outbox_repo = outbox_repo or OutboxRepository(db)
        self.hierarchy = hierarchy or PositionHierarchy()
        self.clock = clock
        self.eligibility = EligibilityResolver(self.hierarchy, self.promotion_repo, self.employee_repo)
        self.tally = ConcurrentTallyEngine(db, self.promotion_repo)

    # ========================================================================
    # initiate_promotion_vote
    # ========================================================================

    def initiate_promotion_vote(self, request: PromotionVoteCreateRequest) -> PromotionVoteSummaryResponse:
        """
        승진 투표 발의
        - 신청자는 디렉터리에 재직 중이어야 하고 매장/직위가 일치해야 함
        - 목표 직위는 현재 직위의 바로 위 단계
        - 신청자당 OPEN 제안 하나
        - 자격자 수는 이 시점에 고정
        """
        def _execute() -> PromotionVoteSummaryResponse:
            applicant = self.employee_repo.get_by_id(request.applicant_id)
            if applicant is None or not applicant.is_active:
                raise NotFoundError(
                    message="Applicant not found",
                    detail=f"Employee {request.applicant_id} not found in directory"
                )
            if applicant.store_name != request.store_name or applicant.position != request.current_position:
                raise ValidationError(
                    message="Applicant mismatch",
                    detail="Store or current position does not match the employee directory"
                )

            self.hierarchy.validate_path(request.current_position, request.target_position)
            self.eligibility.can_initiate(request.applicant_id, request.current_position)

            voters = self.eligibility.qualified_voters(
                request.store_name, request.current_position, request.applicant_id
            )
            if not voters:
                raise NoQualifiedVotersError(
                    message="No qualified voters",
                    detail=f"No eligible voters in {request.store_name} for {request.current_position}"
                )

            now = self.clock()
            proposal = PromotionProposal(
                applicant_id=request.applicant_id,
                applicant_name=request.applicant_name,
                store_name=request.store_name,
                current_position=request.current_position,
                target_position=request.target_position,
                reason=request.reason,
                vote_duration_days=request.vote_duration_days,
                initiated_at=now,
                deadline=now + timedelta(days=request.vote_duration_days),
                status=PromotionStatusType.OPEN,
                agree_count=0,
                disagree_count=0,
                qualified_voter_count=len(voters),
            )

            try:
                with transaction(self.db):
                    created = self.promotion_repo.create_proposal(proposal)
                    self.promotion_repo.add_qualified_voters(created.id, voters)
                    self.outbox_repo.create_outbox_event(
                        event_type=EVENT_PROMOTION_INITIATED,
                        payload=self._notification_payload(created),
                        proposal_id=created.id,
                        next_retry_at=now,
                    )
            except IntegrityError:
                # 동시 발의 경쟁: 부분 유니크 인덱스가 두 번째 OPEN 제안 차단
                if self.promotion_repo.get_open_by_applicant(request.applicant_id):
                    raise DuplicateOpenProposalError(
                        message="Duplicate open proposal",
                        detail="You already have an active promotion vote"
                    )
                raise

            logger.info(
                f"Promotion vote initiated: proposal={created.id} applicant={created.applicant_id} "
                f"{created.current_position} -> {created.target_position} qualified={created.qualified_voter_count}"
            )
            return PromotionVoteSummaryResponse(**self._summary_fields(created))

        return run_with_retry(self.db, _execute)

    # ========================================================================
    # submit_vote
    # ========================================================================

    def submit_vote(self, proposal_id: UUID, request: VoteSubmitRequest) -> VoteSubmitResponse:
        """
        투표 제출
        - 서버 측 자격 재검증 (클라이언트 판정은 신뢰하지 않음)
        - 기록 + 집계 + 조기 판정을 한 트랜잭션으로 처리
        - 동시 중복 제출은 유니크 제약에서 하나만 성공
        """
        def _execute() -> VoteSubmitResponse:
            now = self.clock()
            proposal = self._get_proposal_or_404(proposal_id, refresh=True)
            self.eligibility.can_vote(proposal, request.voter_id, now)

            # 투표자 소속/직위는 디렉터리 값 우선
            voter = self.employee_repo.get_by_id(request.voter_id)
            ballot = Ballot(
                voter_id=request.voter_id,
                voter_name=request.voter_name,
                choice=request.choice,
                comment=request.comment,
                voter_position=voter.position if voter else request.voter_position,
                voter_store=voter.store_name if voter else request.voter_store,
            )

            try:
                with transaction(self.db):
                    snapshot = self.tally.record_vote(proposal_id, ballot, now)
                    outcome = early_outcome(
                        snapshot.agree_count,
                        snapshot.disagree_count,
                        snapshot.qualified_voter_count,
                    )
                    if outcome is not None:
                        self._transition(
                            proposal_id,
                            outcome,
                            now,
                            (snapshot.agree_count, snapshot.disagree_count),
                        )
            except IntegrityError as e:
                self.tally.resolve_integrity_error(proposal_id, request.voter_id, e)

            refreshed = self.promotion_repo.get_by_id(proposal_id, refresh=True)
            logger.info(
                f"Vote recorded: proposal={proposal_id} voter={request.voter_id} choice={request.choice.value} "
                f"agree={snapshot.agree_count} disagree={snapshot.disagree_count} status={refreshed.status.value}"
            )
            return VoteSubmitResponse(
                message="Vote submitted",
                proposal_id=proposal_id,
                vote_id=snapshot.vote.id,
                agree_count=snapshot.agree_count,
                disagree_count=snapshot.disagree_count,
                qualified_voter_count=snapshot.qualified_voter_count,
                status=refreshed.status,
            )

        return run_with_retry(self.db, _execute)

    # ========================================================================
    # 조회
    # ========================================================================

    def get_promotion_vote(self, proposal_id: UUID) -> PromotionVoteDetailResponse:
        proposal = run_with_retry(self.db, lambda: self._get_proposal_or_404(proposal_id, refresh=True))
        votes = run_with_retry(self.db, lambda: self.promotion_repo.list_votes(proposal_id))
        return PromotionVoteDetailResponse(
            **self._summary_fields(proposal),
            total_votes=proposal.total_votes,
            votes=[
                VoteRecordResponse(
                    voter_id=vote.voter_id,
                    voter_name=vote.voter_name,
                    choice=vote.choice,
                    comment=vote.comment,
                    voter_position=vote.voter_position,
                    voter_store=vote.voter_store,
                    created_at=as_utc(vote.created_at),
                )
                for vote in votes
            ],
        )

    def get_active_promotion_vote(self, employee_id: str) -> list[ActivePromotionVoteResponse]:
        """조회자가 신청자이거나 투표 자격자인 OPEN 제안"""
        def _execute() -> list[ActivePromotionVoteResponse]:
            now = self.clock()
            proposals = self.promotion_repo.list_open_for_employee(employee_id)
            ids = [proposal.id for proposal in proposals]
            voted = self.promotion_repo.voted_proposal_ids(employee_id, ids)
            qualified = self.promotion_repo.qualified_proposal_ids(employee_id, ids)

            return [
                ActivePromotionVoteResponse(
                    **self._summary_fields(proposal),
                    has_voted=proposal.id in voted,
                    can_vote=(
                        proposal.id in qualified
                        and proposal.id not in voted
                        and proposal.applicant_id != employee_id
                        and now < as_utc(proposal.deadline)
                    ),
                )
                for proposal in proposals
            ]

        return run_with_retry(self.db, _execute)

    def get_vote_history(
        self,
        employee_id: str | None = None,
        store_name: str | None = None,
        status: PromotionStatusType | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> list[PromotionVoteSummaryResponse]:
        if status is not None and status == PromotionStatusType.OPEN:
            raise ValidationError(
                message="Invalid status filter",
                detail="History only contains PASSED, FAILED or EXPIRED proposals"
            )
        proposals = run_with_retry(
            self.db,
            lambda: self.promotion_repo.list_history(
                employee_id=employee_id,
                store_name=store_name,
                status=status,
                start_date=as_utc(start_date),
                end_date=as_utc(end_date),
            ),
        )
        return [PromotionVoteSummaryResponse(**self._summary_fields(proposal)) for proposal in proposals]

    # ========================================================================
    # 마감 판정
    # ========================================================================

    def evaluate(self, proposal_id: UUID) -> PromotionStatusType:
        """
        단일 제안 판정 (멱등)
        - 종료 상태면 no-op
        - 마감 경과 시 최종 판정, 아니면 조기 판정만
        """
        def _execute() -> PromotionStatusType:
            now = self.clock()
            with transaction(self.db):
                proposal = self._get_proposal_or_404(proposal_id, refresh=True)
                if proposal.status != PromotionStatusType.OPEN:
                    return proposal.status

                agree, disagree = proposal.agree_count, proposal.disagree_count
                if now >= as_utc(proposal.deadline):
                    outcome = final_outcome(agree, disagree, proposal.qualified_voter_count)
                else:
                    outcome = early_outcome(agree, disagree, proposal.qualified_voter_count)
                if outcome is None:
                    return proposal.status

                resolved = self._transition(proposal_id, outcome, now, (agree, disagree))
                if resolved is None:
                    # 판정 사이 집계/상태 변경 → 다음 스윕에서 재평가
                    logger.info(f"Proposal {proposal_id} changed during evaluation, skipped")
                    return PromotionStatusType.OPEN
                return resolved.status

        return run_with_retry(self.db, _execute)

    def finalize_overdue(self, limit: int | None = None) -> dict[UUID, PromotionStatusType]:
        """
        마감 지난 OPEN 제안 일괄 판정 (스윕)
        - (status, deadline)만으로 대상 재계산, 스케줄러 상태 불필요
        - 개별 실패는 로그 후 계속 진행
        """
        now = self.clock()
        overdue_ids = run_with_retry(self.db, lambda: self.promotion_repo.list_overdue_ids(now, limit))
        results: dict[UUID, PromotionStatusType] = {}

        for proposal_id in overdue_ids:
            try:
                results[proposal_id] = self.evaluate(proposal_id)
            except (AppException, SQLAlchemyError) as e:
                logger.error(f"Failed to finalize proposal {proposal_id}: {e}", exc_info=True)

        if overdue_ids:
            logger.info(f"Deadline sweep finalized {len(results)}/{len(overdue_ids)} proposals")
        return results

    # ========================================================================
    # 내부 헬퍼
    # ========================================================================

    def _transition(
        self,
        proposal_id: UUID,
        outcome: PromotionStatusType,
        now: datetime,
        expected_counts: tuple[int, int],
    ) -> PromotionProposal | None:
        """
        조건부 상태 전이 (트랜잭션 내부에서 호출)
        - 전이 승자만 승진 반영 + outbox 기록
        """
        resolved = self.promotion_repo.transition_if_open(proposal_id, outcome, now, expected_counts)
        if resolved is None:
            return None

        if outcome == PromotionStatusType.PASSED:
            applied = self.employee_repo.update_position(resolved.applicant_id, resolved.target_position)
            if not applied:
                logger.warning(f"Applicant {resolved.applicant_id} missing from directory, position not updated")

        self.outbox_repo.create_outbox_event(
            event_type=EVENT_PROMOTION_RESOLVED,
            payload=self._notification_payload(resolved),
            proposal_id=resolved.id,
            next_retry_at=now,
        )
        logger.info(
            f"Proposal {resolved.id} resolved as {outcome.value} "
            f"(agree={resolved.agree_count}, disagree={resolved.disagree_count}, qualified={resolved.qualified_voter_count})"
        )
        return resolved

    def _get_proposal_or_404(self, proposal_id: UUID, refresh: bool = False) -> PromotionProposal:
        proposal = self.promotion_repo.get_by_id(proposal_id, refresh=refresh)
        if proposal is None:
            raise NotFoundError(
                message="Proposal not found",
                detail=f"Proposal with id {proposal_id} not found"
            )
        return proposal

    @staticmethod
    def _summary_fields(proposal: PromotionProposal) -> dict:
        return {
            "id": proposal.id,
            "applicant_id": proposal.applicant_id,
            "applicant_name": proposal.applicant_name,
            "store_name": proposal.store_name,
            "current_position": proposal.current_position,
            "target_position": proposal.target_position,
            "reason": proposal.reason,
            "initiated_at": as_utc(proposal.initiated_at),
            "deadline": as_utc(proposal.deadline),
            "status": proposal.status,
            "agree_count": proposal.agree_count,
            "disagree_count": proposal.disagree_count,
            "qualified_voter_count": proposal.qualified_voter_count,
            "resolved_at": as_utc(proposal.resolved_at),
        }

    @staticmethod
    def _notification_payload(proposal: PromotionProposal) -> dict:
        return {
            "proposal_id": str(proposal.id),
            "applicant_id": proposal.applicant_id,
            "applicant_name": proposal.applicant_name,
            "store_name": proposal.store_name,
            "current_position": proposal.current_position,
            "target_position": proposal.target_position,
            "reason": proposal.reason,
            "initiated_at": as_utc(proposal.initiated_at).isoformat(),
            "deadline": as_utc(proposal.deadline).isoformat(),
            "status": proposal.status.value,
            "agree_count": proposal.agree_count,
            "disagree_count": proposal.disagree_count,
            "qualified_voter_count": proposal.qualified_voter_count,
        }
