from datetime import datetime
from uuid import UUID

from sqlalchemy import select, update, or_
from sqlalchemy.orm import Session, selectinload

from promotion_engine.models.employee import Employee
from promotion_engine.models.promotion import (
    PromotionProposal,
    PromotionQualifiedVoter,
    PromotionVote,
    PromotionStatusType,
    VoteChoiceType,
    TERMINAL_STATUSES,
)


class PromotionRepository:
    """
    승진 투표 영속성 게이트웨이

    - 조회는 자유롭게, 변경은 조건부 UPDATE / 유니크 제약으로만 수행
    - 트랜잭션 경계는 호출자(서비스)가 관리
    """

    def __init__(self, db: Session):
        self.db = db

    # ------------------------------------------------------------------
    # 생성
    # ------------------------------------------------------------------

    def create_proposal(self, proposal: PromotionProposal) -> PromotionProposal:
        """제안 저장 (OPEN 중복은 부분 유니크 인덱스가 IntegrityError로 차단)"""
        self.db.add(proposal)
        self.db.flush()
        return proposal

    def add_qualified_voters(self, proposal_id: UUID, voters: list[Employee]) -> None:
        """투표 자격자 스냅샷 저장"""
        self.db.add_all([
            PromotionQualifiedVoter(
                proposal_id=proposal_id,
                employee_id=voter.employee_id,
                name=voter.name,
                position=voter.position,
            )
            for voter in voters
        ])
        self.db.flush()

    # ------------------------------------------------------------------
    # 조회
    # ------------------------------------------------------------------

    def get_by_id(
        self,
        proposal_id: UUID,
        relationships: list[str] | None = None,
        refresh: bool = False,
    ) -> PromotionProposal | None:
        stmt = select(PromotionProposal).where(PromotionProposal.id == proposal_id)
        if relationships:
            for rel in relationships:
                stmt = stmt.options(selectinload(getattr(PromotionProposal, rel)))
        if refresh:
            stmt = stmt.execution_options(populate_existing=True)
        return self.db.execute(stmt).scalar_one_or_none()

    def get_open_by_applicant(self, applicant_id: str) -> PromotionProposal | None:
        stmt = select(PromotionProposal).where(
            PromotionProposal.applicant_id == applicant_id,
            PromotionProposal.status == PromotionStatusType.OPEN,
        )
        return self.db.execute(stmt).scalars().first()

    def list_open_for_employee(self, employee_id: str) -> list[PromotionProposal]:
        """본인이 신청자이거나 투표 자격자인 OPEN 제안"""
        qualified_ids = (
            select(PromotionQualifiedVoter.proposal_id)
            .where(PromotionQualifiedVoter.employee_id == employee_id)
        )
        stmt = (
            select(PromotionProposal)
            .where(
                PromotionProposal.status == PromotionStatusType.OPEN,
                or_(
                    PromotionProposal.applicant_id == employee_id,
                    PromotionProposal.id.in_(qualified_ids),
                ),
            )
            .order_by(PromotionProposal.deadline.asc())
        )
        return list(self.db.execute(stmt).scalars().all())

    def list_history(
        self,
        employee_id: str | None = None,
        store_name: str | None = None,
        status: PromotionStatusType | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> list[PromotionProposal]:
        """종료된 제안 목록 (최신 생성 순)"""
        stmt = select(PromotionProposal).where(
            PromotionProposal.status.in_(TERMINAL_STATUSES)
        )
        if employee_id:
            stmt = stmt.where(PromotionProposal.applicant_id == employee_id)
        if store_name:
            stmt = stmt.where(PromotionProposal.store_name == store_name)
        if status:
            stmt = stmt.where(PromotionProposal.status == status)
        if start_date:
            stmt = stmt.where(PromotionProposal.initiated_at >= start_date)
        if end_date:
            stmt = stmt.where(PromotionProposal.initiated_at <= end_date)
        stmt = stmt.order_by(PromotionProposal.initiated_at.desc())
        return list(self.db.execute(stmt).scalars().all())

    def list_votes(self, proposal_id: UUID) -> list[PromotionVote]:
        stmt = (
            select(PromotionVote)
            .where(PromotionVote.proposal_id == proposal_id)
            .order_by(PromotionVote.created_at.asc())
        )
        return list(self.db.execute(stmt).scalars().all())

    def get_vote(self, proposal_id: UUID, voter_id: str) -> PromotionVote | None:
        stmt = select(PromotionVote).where(
            PromotionVote.proposal_id == proposal_id,
            PromotionVote.voter_id == voter_id,
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def is_qualified_voter(self, proposal_id: UUID, employee_id: str) -> bool:
        stmt = select(PromotionQualifiedVoter.id).where(
            PromotionQualifiedVoter.proposal_id == proposal_id,
            PromotionQualifiedVoter.employee_id == employee_id,
        )
        return self.db.execute(stmt).first() is not None

    def qualified_proposal_ids(self, employee_id: str, proposal_ids: list[UUID]) -> set[UUID]:
        if not proposal_ids:
            return set()
        stmt = select(PromotionQualifiedVoter.proposal_id).where(
            PromotionQualifiedVoter.employee_id == employee_id,
            PromotionQualifiedVoter.proposal_id.in_(proposal_ids),
        )
        return set(self.db.execute(stmt).scalars().all())

    def voted_proposal_ids(self, voter_id: str, proposal_ids: list[UUID]) -> set[UUID]:
        if not proposal_ids:
            return set()
        stmt = select(PromotionVote.proposal_id).where(
            PromotionVote.voter_id == voter_id,
            PromotionVote.proposal_id.in_(proposal_ids),
        )
        return set(self.db.execute(stmt).scalars().all())

    def list_overdue_ids(self, now: datetime, limit: int | None = None) -> list[UUID]:
        """마감이 지난 OPEN 제안 ID (스윕 대상, 상태와 마감만으로 재계산 가능)"""
        stmt = (
            select(PromotionProposal.id)
            .where(
                PromotionProposal.status == PromotionStatusType.OPEN,
                PromotionProposal.deadline <= now,
            )
            .order_by(PromotionProposal.deadline.asc())
        )
        if limit:
            stmt = stmt.limit(limit)
        return list(self.db.execute(stmt).scalars().all())

    # ------------------------------------------------------------------
    # 원자적 변경
    # ------------------------------------------------------------------

    def insert_vote(self, vote: PromotionVote) -> PromotionVote:
        """
        투표 행 삽입
        - (proposal_id, voter_id) 유니크 제약이 "없을 때만 삽입" 원자 연산 역할
        - 중복이면 flush 시점에 IntegrityError
        """
        self.db.add(vote)
        self.db.flush()
        return vote

    def increment_tally(
        self,
        proposal_id: UUID,
        choice: VoteChoiceType,
        now: datetime,
    ) -> tuple[int, int, int] | None:
        """
        조건부 카운터 증가
        - WHERE id = :id AND status = 'OPEN' AND deadline > :now
        - 증가 후 값을 RETURNING으로 받아 일관된 스냅샷 제공
        - 조건 불일치 시 None

        Returns:
            (agree_count, disagree_count, qualified_voter_count)
        """
        if choice == VoteChoiceType.AGREE:
            values = {"agree_count": PromotionProposal.agree_count + 1}
        else:
            values = {"disagree_count": PromotionProposal.disagree_count + 1}

        stmt = (
            update(PromotionProposal)
            .where(
                PromotionProposal.id == proposal_id,
                PromotionProposal.status == PromotionStatusType.OPEN,
                PromotionProposal.deadline > now,
            )
            .values(**values)
            .returning(
                PromotionProposal.agree_count,
                PromotionProposal.disagree_count,
                PromotionProposal.qualified_voter_count,
            )
            .execution_options(synchronize_session=False)
        )
        row = self.db.execute(stmt).one_or_none()
        self.db.flush()
        if row is None:
            return None
        return row[0], row[1], row[2]

    def transition_if_open(
        self,
        proposal_id: UUID,
        new_status: PromotionStatusType,
        resolved_at: datetime,
        expected_counts: tuple[int, int],
    ) -> PromotionProposal | None:
        """
        조건부 상태 전이 (compare-and-set)
        - WHERE id = :id AND status = 'OPEN' AND 집계가 판정 시점과 동일
        - 이미 종료됐거나 그 사이 집계가 바뀌었으면 None (재전이 방지)
        """
        agree, disagree = expected_counts
        stmt = (
            update(PromotionProposal)
            .where(
                PromotionProposal.id == proposal_id,
                PromotionProposal.status == PromotionStatusType.OPEN,
                PromotionProposal.agree_count == agree,
                PromotionProposal.disagree_count == disagree,
            )
            .values(status=new_status, resolved_at=resolved_at)
            .returning(PromotionProposal.id)
            .execution_options(synchronize_session=False)
        )
        updated_id = self.db.execute(stmt).scalar_one_or_none()
        self.db.flush()
        if updated_id is None:
            return None
        return self.get_by_id(updated_id, refresh=True)
