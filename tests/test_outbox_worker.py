from promotion_engine.models.outbox import OutboxEvent, OutboxStatusType
from promotion_engine.repositories.outbox_repository import OutboxRepository
from promotion_engine.services.notification_service import NotificationError, NotificationService
from promotion_engine.services.promotion.facade import EVENT_PROMOTION_INITIATED, EVENT_PROMOTION_RESOLVED
from promotion_engine.workers.outbox_worker import OutboxWorker
from tests.factories import make_create_request, make_vote_request
from tests.test_notification_service import FakeMailer, FakeTelegram


class RecordingNotificationService:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.initiated: list[dict] = []
        self.resolved: list[dict] = []

    def send_promotion_initiated_notification(self, payload: dict, skip_channels=None) -> list[str]:
        if self.fail:
            raise NotificationError("telegram down")
        self.initiated.append(payload)
        return ["telegram"]

    def send_promotion_resolved_notification(self, payload: dict, skip_channels=None) -> list[str]:
        if self.fail:
            raise NotificationError("telegram down")
        self.resolved.append(payload)
        return ["telegram"]


def _events(db, proposal_id):
    db.expire_all()
    return OutboxRepository(db).list_by_proposal(proposal_id)


def test_worker_delivers_initiated_and_resolved_events(service, db, clock):
    proposal = service.initiate_promotion_vote(make_create_request(
        applicant_id="ivy",
        applicant_name="Ivy",
        store_name="Store B",
    ))
    service.submit_vote(proposal.id, make_vote_request("gus"))

    notifications = RecordingNotificationService()
    worker = OutboxWorker(db, notification_service=notifications, clock=clock)

    assert worker.process_batch() == 2
    assert [p["applicant_id"] for p in notifications.initiated] == ["ivy"]
    assert [p["status"] for p in notifications.resolved] == ["PASSED"]

    events = _events(db, proposal.id)
    assert {event.event_type for event in events} == {EVENT_PROMOTION_INITIATED, EVENT_PROMOTION_RESOLVED}
    assert all(event.status == OutboxStatusType.DONE for event in events)
    assert all(event.locked_by is None for event in events)

    # 처리 완료된 이벤트는 다시 발송되지 않음
    assert worker.process_batch() == 0
    assert len(notifications.resolved) == 1


def test_failed_delivery_is_retried_with_backoff(service, db, clock):
    proposal = service.initiate_promotion_vote(make_create_request())
    worker = OutboxWorker(db, notification_service=RecordingNotificationService(fail=True), clock=clock)

    assert worker.process_batch() == 0
    [event] = _events(db, proposal.id)
    assert event.status == OutboxStatusType.PENDING
    assert event.attempts == 1
    assert event.last_error == "telegram down"

    # 백오프(2 ** 0 = 1초) 전에는 선점 대상 아님
    assert worker.process_batch() == 0
    assert _events(db, proposal.id)[0].attempts == 1

    clock.advance(seconds=1)
    worker.process_batch()
    clock.advance(seconds=2)
    worker.process_batch()

    [event] = _events(db, proposal.id)
    assert event.attempts == 3
    assert event.status == OutboxStatusType.FAILED

    clock.advance(minutes=10)
    assert worker.process_batch() == 0


def test_unknown_event_type_is_marked_failed(db, clock):
    repo = OutboxRepository(db)
    event = repo.create_outbox_event("promotion.unknown.v1", {"foo": "bar"}, next_retry_at=clock.now)
    db.commit()

    worker = OutboxWorker(db, notification_service=RecordingNotificationService(), clock=clock)
    worker.process_batch()

    db.expire_all()
    stored = db.get(OutboxEvent, event.id)
    assert stored.attempts == 1
    assert "Unknown event type" in stored.last_error


def test_retry_skips_channels_already_delivered(service, db, clock):
    """텔레그램 성공 + 이메일 실패 → 재시도 때 이메일만 다시 발송"""
    proposal = service.initiate_promotion_vote(make_create_request(
        applicant_id="ivy",
        applicant_name="Ivy",
        store_name="Store B",
    ))
    service.submit_vote(proposal.id, make_vote_request("gus"))

    telegram, mailer = FakeTelegram(), FakeMailer(fail=True)
    notifications = NotificationService(mailer=mailer, telegram=telegram, email_recipients=["hr@example.com"])
    worker = OutboxWorker(db, notification_service=notifications, clock=clock)

    assert worker.process_batch() == 0
    db.expire_all()
    [resolved] = OutboxRepository(db).list_by_proposal(proposal.id, EVENT_PROMOTION_RESOLVED)
    assert resolved.status == OutboxStatusType.PENDING
    assert resolved.attempts == 1
    assert resolved.delivered_channels == ["telegram"]

    mailer.fail = False
    clock.advance(seconds=10)
    assert worker.process_batch() == 2

    result_messages = [text for text in telegram.messages if "Promotion vote result" in text]
    assert len(result_messages) == 1
    assert len(telegram.messages) == 2
    assert len(mailer.sent) == 2
    assert all(event.status == OutboxStatusType.DONE for event in _events(db, proposal.id))
