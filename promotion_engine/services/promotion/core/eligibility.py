"""제안 생성/투표 자격 판정"""
from datetime import datetime

from promotion_engine.models.employee import Employee
from promotion_engine.models.promotion import PromotionProposal, PromotionStatusType
from promotion_engine.repositories.employee_repository import EmployeeRepository
from promotion_engine.repositories.promotion_repository import PromotionRepository
from promotion_engine.services.promotion.core.hierarchy import PositionHierarchy
from promotion_engine.exceptions import (
    TerminalPositionError,
    DuplicateOpenProposalError,
    SelfVoteForbiddenError,
    AlreadyVotedError,
    NotQualifiedError,
    ProposalNotOpenError,
    DeadlinePassedError,
)
from promotion_engine.utils.clock import as_utc


class EligibilityResolver:
    """자격 판정 (읽기 전용, 상태 변경 없음)"""

    def __init__(
        self,
        hierarchy: PositionHierarchy,
        promotion_repo: PromotionRepository,
        employee_repo: EmployeeRepository,
    ):
        self.hierarchy = hierarchy
        self.promotion_repo = promotion_repo
        self.employee_repo = employee_repo

    def can_initiate(self, applicant_id: str, current_position: str) -> None:
        if self.hierarchy.is_terminal(current_position):
            raise TerminalPositionError(
                message="Terminal position",
                detail=f"{current_position} has no promotion target"
            )

        if self.promotion_repo.get_open_by_applicant(applicant_id):
            raise DuplicateOpenProposalError(
                message="Duplicate open proposal",
                detail="You already have an active promotion vote"
            )

    def qualified_voters(
        self,
        store_name: str,
        current_position: str,
        applicant_id: str,
    ) -> list[Employee]:
        """같은 매장, 신청자 현재 직위 이상, 재직 중, 신청자 본인 제외"""
        return [
            employee
            for employee in self.employee_repo.list_active_by_store(store_name)
            if employee.employee_id != applicant_id
            and self.hierarchy.is_at_or_above(employee.position, current_position)
        ]

    def can_vote(self, proposal: PromotionProposal, voter_id: str, now: datetime) -> None:
        """
        투표 가능 여부 검증 (위반 시 예외)

        마감은 상태가 아니라 시각으로 판단한다. 스윕이 아직 돌지 않아
        OPEN으로 남은 제안도 마감 이후에는 거부.
        """
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

        if voter_id == proposal.applicant_id:
            raise SelfVoteForbiddenError(
                message="Self vote forbidden",
                detail="Applicants cannot vote on their own promotion"
            )

        if not self.promotion_repo.is_qualified_voter(proposal.id, voter_id):
            raise NotQualifiedError(
                message="Not qualified",
                detail="You are not qualified to vote on this proposal"
            )

        if self.promotion_repo.get_vote(proposal.id, voter_id):
            raise AlreadyVotedError(
                message="Already voted",
                detail="You have already voted"
            )
