import pytest
from pydantic import ValidationError as PydanticValidationError

from promotion_engine.exceptions import (
    AlreadyVotedError,
    DeadlinePassedError,
    DuplicateOpenProposalError,
    InvalidPromotionPathError,
    NoQualifiedVotersError,
    NotFoundError,
    NotQualifiedError,
    ProposalNotOpenError,
    SelfVoteForbiddenError,
    TerminalPositionError,
    ValidationError,
)
from promotion_engine.models.employee import Employee
from promotion_engine.models.promotion import PromotionStatusType, VoteChoiceType
from promotion_engine.repositories.outbox_repository import OutboxRepository
from promotion_engine.services.promotion.facade import EVENT_PROMOTION_INITIATED, EVENT_PROMOTION_RESOLVED
from tests.factories import CHEN_VOTERS, make_create_request, make_vote_request


def _vote(service, proposal_id, voter_id, choice="AGREE"):
    return service.submit_vote(proposal_id, make_vote_request(voter_id, choice))


# ============================================================================
# 발의
# ============================================================================

def test_initiate_freezes_qualified_voters(service, clock):
    """같은 매장, 현재 직위 이상, 재직 중, 본인 제외"""
    summary = service.initiate_promotion_vote(make_create_request())

    assert summary.status == PromotionStatusType.OPEN
    assert summary.qualified_voter_count == len(CHEN_VOTERS)
    assert summary.agree_count == 0 and summary.disagree_count == 0
    assert summary.initiated_at == clock.now
    assert (summary.deadline - summary.initiated_at).days == 7
    assert summary.resolved_at is None


def test_initiate_writes_initiated_outbox_event(service, db):
    summary = service.initiate_promotion_vote(make_create_request())

    events = OutboxRepository(db).list_by_proposal(summary.id)
    assert [event.event_type for event in events] == [EVENT_PROMOTION_INITIATED]
    assert events[0].payload["applicant_name"] == "Chen"
    assert events[0].payload["qualified_voter_count"] == 5


def test_initiate_rejects_skipping_a_level(service):
    with pytest.raises(InvalidPromotionPathError):
        service.initiate_promotion_vote(make_create_request(target_position="Team Lead"))


def test_initiate_rejects_terminal_position(service):
    request = make_create_request(
        applicant_id="gina",
        applicant_name="Gina",
        store_name="HQ",
        current_position="General Manager",
        target_position="Chairman",
    )
    with pytest.raises(TerminalPositionError):
        service.initiate_promotion_vote(request)


def test_initiate_without_qualified_voters(service):
    request = make_create_request(applicant_id="otto", applicant_name="Otto", store_name="Store C")
    with pytest.raises(NoQualifiedVotersError):
        service.initiate_promotion_vote(request)


def test_initiate_unknown_applicant(service):
    with pytest.raises(NotFoundError):
        service.initiate_promotion_vote(make_create_request(applicant_id="nobody"))


def test_initiate_with_mismatched_directory_data(service):
    with pytest.raises(ValidationError):
        service.initiate_promotion_vote(make_create_request(store_name="Store B"))


def test_second_open_proposal_is_rejected(service):
    service.initiate_promotion_vote(make_create_request())
    with pytest.raises(DuplicateOpenProposalError):
        service.initiate_promotion_vote(make_create_request())


def test_new_proposal_allowed_after_previous_one_expired(service, clock):
    first = service.initiate_promotion_vote(make_create_request())
    clock.advance(days=8)
    service.finalize_overdue()

    second = service.initiate_promotion_vote(make_create_request())
    assert second.id != first.id
    assert second.status == PromotionStatusType.OPEN


@pytest.mark.parametrize("overrides", [
    {"reason": "too short"},
    {"reason": "x" * 501},
    {"vote_duration_days": 0},
    {"vote_duration_days": 31},
])
def test_request_validation(overrides):
    with pytest.raises(PydanticValidationError):
        make_create_request(**overrides)


# ============================================================================
# 투표 / 조기 판정
# ============================================================================

def test_chen_passes_on_third_agree(service, db):
    """3 찬성 1 반대: 3번째 찬성 시점에 즉시 PASSED (3*2=6 > 5)"""
    proposal = service.initiate_promotion_vote(make_create_request())

    assert _vote(service, proposal.id, "ava").status == PromotionStatusType.OPEN
    assert _vote(service, proposal.id, "dana", "DISAGREE").status == PromotionStatusType.OPEN
    assert _vote(service, proposal.id, "ben").status == PromotionStatusType.OPEN
    result = _vote(service, proposal.id, "eli")

    assert result.status == PromotionStatusType.PASSED
    assert (result.agree_count, result.disagree_count) == (3, 1)

    detail = service.get_promotion_vote(proposal.id)
    assert detail.status == PromotionStatusType.PASSED
    assert detail.resolved_at is not None
    assert detail.total_votes == 4

    # 남은 자격자는 더 이상 투표 불가
    with pytest.raises(ProposalNotOpenError):
        _vote(service, proposal.id, "fay")


def test_passed_proposal_updates_applicant_position(service, db):
    proposal = service.initiate_promotion_vote(make_create_request())
    for voter_id in ("ava", "ben", "dana"):
        _vote(service, proposal.id, voter_id)

    db.expire_all()
    assert db.get(Employee, "chen").position == "Senior Clerk"


def test_early_fail_when_majority_unreachable(service):
    proposal = service.initiate_promotion_vote(make_create_request())
    _vote(service, proposal.id, "ava", "DISAGREE")
    _vote(service, proposal.id, "ben", "DISAGREE")
    result = _vote(service, proposal.id, "dana", "DISAGREE")

    assert result.status == PromotionStatusType.FAILED


def test_tie_never_passes(service, db):
    db.add(Employee(employee_id="kim", name="Kim", store_name="Store A", position="Team Lead"))
    db.commit()
    request = make_create_request(
        applicant_id="ben",
        applicant_name="Ben",
        current_position="Senior Clerk",
        target_position="Team Lead",
    )
    proposal = service.initiate_promotion_vote(request)
    assert proposal.qualified_voter_count == 4

    _vote(service, proposal.id, "dana")
    _vote(service, proposal.id, "kim")
    _vote(service, proposal.id, "eli", "DISAGREE")
    result = _vote(service, proposal.id, "fay", "DISAGREE")

    assert result.status == PromotionStatusType.FAILED


def test_comment_and_directory_values_are_stored(service):
    proposal = service.initiate_promotion_vote(make_create_request())
    service.submit_vote(
        proposal.id,
        make_vote_request("ava", "agree", comment="  Great teammate  ", voter_position="Manager", voter_store="Elsewhere"),
    )

    detail = service.get_promotion_vote(proposal.id)
    vote = detail.votes[0]
    assert vote.choice == VoteChoiceType.AGREE
    assert vote.comment.strip() == "Great teammate"
    assert vote.voter_position == "Clerk"
    assert vote.voter_store == "Store A"


def test_self_vote_is_forbidden(service):
    proposal = service.initiate_promotion_vote(make_create_request())
    with pytest.raises(SelfVoteForbiddenError):
        _vote(service, proposal.id, "chen")


@pytest.mark.parametrize("voter_id", ["ivy", "gus", "hal", "nobody"])
def test_unqualified_voters_are_rejected(service, voter_id):
    proposal = service.initiate_promotion_vote(make_create_request())
    with pytest.raises(NotQualifiedError):
        _vote(service, proposal.id, voter_id)


def test_second_vote_is_rejected(service):
    proposal = service.initiate_promotion_vote(make_create_request())
    _vote(service, proposal.id, "ava")
    with pytest.raises(AlreadyVotedError):
        _vote(service, proposal.id, "ava", "DISAGREE")

    detail = service.get_promotion_vote(proposal.id)
    assert (detail.agree_count, detail.disagree_count) == (1, 0)


def test_vote_after_deadline_before_sweep(service, clock):
    proposal = service.initiate_promotion_vote(make_create_request())
    clock.advance(days=7)

    with pytest.raises(DeadlinePassedError):
        _vote(service, proposal.id, "ava")
    assert service.get_promotion_vote(proposal.id).status == PromotionStatusType.OPEN


def test_vote_on_missing_proposal(service):
    from uuid import uuid4
    with pytest.raises(NotFoundError):
        _vote(service, uuid4(), "ava")


def test_frozen_quorum_ignores_roster_changes(service, db):
    proposal = service.initiate_promotion_vote(make_create_request())

    db.get(Employee, "ava").is_active = False
    db.add(Employee(employee_id="newbie", name="Newbie", store_name="Store A", position="Team Lead"))
    db.commit()

    assert service.get_promotion_vote(proposal.id).qualified_voter_count == 5
    with pytest.raises(NotQualifiedError):
        _vote(service, proposal.id, "newbie")
    # 스냅샷에 포함된 자격자는 그대로 투표 가능
    assert _vote(service, proposal.id, "ava").agree_count == 1


# ============================================================================
# 마감 판정
# ============================================================================

def test_two_two_split_fails_at_deadline(service, clock):
    proposal = service.initiate_promotion_vote(make_create_request())
    _vote(service, proposal.id, "ava")
    _vote(service, proposal.id, "ben")
    _vote(service, proposal.id, "dana", "DISAGREE")
    _vote(service, proposal.id, "eli", "DISAGREE")

    clock.advance(days=7)
    assert service.finalize_overdue() == {proposal.id: PromotionStatusType.FAILED}


def test_zero_votes_expire_at_deadline(service, clock):
    proposal = service.initiate_promotion_vote(make_create_request())
    clock.advance(days=7, seconds=1)

    assert service.evaluate(proposal.id) == PromotionStatusType.EXPIRED
    assert service.get_promotion_vote(proposal.id).status == PromotionStatusType.EXPIRED


def test_evaluate_before_deadline_keeps_open(service):
    proposal = service.initiate_promotion_vote(make_create_request())
    _vote(service, proposal.id, "ava")
    assert service.evaluate(proposal.id) == PromotionStatusType.OPEN


def test_finalization_is_idempotent(service, clock, db):
    proposal = service.initiate_promotion_vote(make_create_request())
    _vote(service, proposal.id, "ava", "DISAGREE")
    clock.advance(days=7)

    assert service.evaluate(proposal.id) == PromotionStatusType.FAILED
    assert service.evaluate(proposal.id) == PromotionStatusType.FAILED
    assert service.finalize_overdue() == {}

    resolved = OutboxRepository(db).list_by_proposal(proposal.id, EVENT_PROMOTION_RESOLVED)
    assert len(resolved) == 1
    assert resolved[0].payload["status"] == "FAILED"


def test_early_resolution_writes_single_resolved_event(service, clock, db):
    proposal = service.initiate_promotion_vote(make_create_request())
    for voter_id in ("ava", "ben", "dana"):
        _vote(service, proposal.id, voter_id)

    clock.advance(days=8)
    service.finalize_overdue()
    service.evaluate(proposal.id)

    resolved = OutboxRepository(db).list_by_proposal(proposal.id, EVENT_PROMOTION_RESOLVED)
    assert len(resolved) == 1
    assert resolved[0].payload["agree_count"] == 3


# ============================================================================
# 조회
# ============================================================================

def test_active_votes_visibility(service):
    proposal = service.initiate_promotion_vote(make_create_request())

    ava_view = service.get_active_promotion_vote("ava")
    assert [item.id for item in ava_view] == [proposal.id]
    assert ava_view[0].can_vote and not ava_view[0].has_voted

    _vote(service, proposal.id, "ava")
    ava_view = service.get_active_promotion_vote("ava")
    assert ava_view[0].has_voted and not ava_view[0].can_vote

    applicant_view = service.get_active_promotion_vote("chen")
    assert [item.id for item in applicant_view] == [proposal.id]
    assert not applicant_view[0].can_vote

    assert service.get_active_promotion_vote("ivy") == []


def test_active_votes_exclude_resolved(service):
    proposal = service.initiate_promotion_vote(make_create_request())
    for voter_id in ("ava", "ben", "dana"):
        _vote(service, proposal.id, voter_id)
    assert service.get_active_promotion_vote("eli") == []


def test_history_lists_terminal_proposals(service, clock):
    passed = service.initiate_promotion_vote(make_create_request())
    for voter_id in ("ava", "ben", "dana"):
        _vote(service, passed.id, voter_id)

    clock.advance(days=1)
    expired = service.initiate_promotion_vote(make_create_request(
        applicant_id="ivy",
        applicant_name="Ivy",
        store_name="Store B",
    ))
    open_one = service.initiate_promotion_vote(make_create_request(
        applicant_id="ava",
        applicant_name="Ava",
    ))
    clock.advance(days=8)
    service.evaluate(expired.id)

    history = service.get_vote_history()
    ids = [item.id for item in history]
    assert ids == [expired.id, passed.id]
    assert open_one.id not in ids

    assert [item.id for item in service.get_vote_history(employee_id="chen")] == [passed.id]
    assert [item.id for item in service.get_vote_history(store_name="Store B")] == [expired.id]
    assert [item.id for item in service.get_vote_history(status=PromotionStatusType.PASSED)] == [passed.id]


def test_history_date_range_filter(service, clock):
    first = service.initiate_promotion_vote(make_create_request())
    start = clock.now
    clock.advance(days=8)
    service.finalize_overdue()

    assert [item.id for item in service.get_vote_history(start_date=start)] == [first.id]
    assert service.get_vote_history(start_date=clock.now) == []
    assert service.get_vote_history(end_date=start.replace(year=2025)) == []


def test_history_rejects_open_status_filter(service):
    with pytest.raises(ValidationError):
        service.get_vote_history(status=PromotionStatusType.OPEN)


def test_get_missing_proposal(service):
    from uuid import uuid4
    with pytest.raises(NotFoundError):
        service.get_promotion_vote(uuid4())
