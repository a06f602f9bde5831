import logging
import signal
import time
from datetime import datetime, timedelta
from os import getenv
from typing import Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from promotion_engine.db import SessionLocal
from promotion_engine.repositories.outbox_repository import OutboxRepository, get_worker_id
from promotion_engine.services.notification_service import NotificationError, NotificationService
from promotion_engine.utils.clock import utcnow
from promotion_engine.utils.transaction import transaction
from promotion_engine.workers.handlers import get_handler_for_event_type

logger = logging.getLogger(__name__)

OUTBOX_BATCH_SIZE = int(getenv("OUTBOX_BATCH_SIZE", "10"))
OUTBOX_POLL_INTERVAL_SECONDS = float(getenv("OUTBOX_POLL_INTERVAL_SECONDS", "5"))
OUTBOX_MAX_ATTEMPTS = 3


class OutboxWorker:
    def __init__(
        self,
        db: Session,
        notification_service: NotificationService | None = None,
        batch_size: int = OUTBOX_BATCH_SIZE,
        poll_interval: float = OUTBOX_POLL_INTERVAL_SECONDS,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.repos = OutboxRepository(db)
        self.notification_service = notification_service or NotificationService.from_env()
        self.batch_size = batch_size
        self.poll_interval = poll_interval
        self.clock = clock
        self.worker_id = get_worker_id()
        self.running = True

    def process_batch(self) -> int:
        """한 배치 처리, 성공한 이벤트 수 반환"""
        # 1. 선점 트랜잭션 (커밋 시 선점 완료)
        with transaction(self.db):
            events = self.repos.claim_pending_events(
                batch_size=self.batch_size,
                worker_id=self.worker_id,
                now=self.clock()
            )
            claimed = [
                (e.id, e.event_type, dict(e.payload), e.attempts, list(e.delivered_channels or []))
                for e in events
            ]

        # 2. 트랜잭션 외부에서 핸들러 실행
        processed = 0
        for event_id, event_type, payload, attempts, delivered in claimed:
            try:
                handler = get_handler_for_event_type(event_type)
                handler(payload, self.notification_service, event_id, delivered_channels=delivered)

                # 3. 성공 시 DONE
                with transaction(self.db):
                    self.repos.mark_done(event_id, self.clock())
                processed += 1

            except NotificationError as e:
                # 일부 채널만 성공한 경우 해당 채널은 재시도에서 제외
                self._schedule_retry(event_id, event_type, attempts, e, delivered + e.delivered)

            except Exception as e:
                self._schedule_retry(event_id, event_type, attempts, e)

        return processed

    def _schedule_retry(
        self,
        event_id,
        event_type: str,
        attempts: int,
        error: Exception,
        delivered_channels: list[str] | None = None
    ) -> None:
        """실패 시 재시도 스케줄링 (지수 백오프)"""
        backoff_seconds = 2 ** attempts
        next_retry_at = self.clock() + timedelta(seconds=backoff_seconds)
        logger.warning(f"Outbox event {event_id} ({event_type}) failed: {error}")

        with transaction(self.db):
            can_retry = self.repos.mark_failed(
                event_id=event_id,
                error=str(error)[:1000],
                next_retry_at=next_retry_at,
                max_attempts=OUTBOX_MAX_ATTEMPTS,
                delivered_channels=delivered_channels
            )
        if not can_retry:
            logger.error(f"Outbox event {event_id} failed after max attempts")

    def run(self) -> None:
        """워커 메인 루프"""
        signal.signal(signal.SIGTERM, self._handle_shutdown)
        signal.signal(signal.SIGINT, self._handle_shutdown)

        logger.info(f"Outbox worker started: {self.worker_id}")

        while self.running:
            try:
                self.process_batch()
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error(f"Error processing outbox batch: {e}", exc_info=True)

            time.sleep(self.poll_interval)

        logger.info("Outbox worker stopped")

    def _handle_shutdown(self, signum, frame):
        """Graceful shutdown"""
        logger.info("Shutdown signal received")
        self.running = False


if __name__ == "__main__":
    # 별도 프로세스로 실행
    logging.basicConfig(
        level=getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    db = SessionLocal()
    try:
        OutboxWorker(db).run()
    finally:
        db.close()
