import logging
import signal
import time
from os import getenv
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from promotion_engine.db import SessionLocal
from promotion_engine.exceptions import AppException
from promotion_engine.models.promotion import PromotionStatusType
from promotion_engine.services.promotion.core.hierarchy import PositionHierarchy
from promotion_engine.services.promotion.facade import PromotionService

logger = logging.getLogger(__name__)

DEADLINE_SWEEP_INTERVAL_SECONDS = float(getenv("DEADLINE_SWEEP_INTERVAL_SECONDS", "60"))
DEADLINE_SWEEP_BATCH_SIZE = int(getenv("DEADLINE_SWEEP_BATCH_SIZE", "100"))


class DeadlineWorker:
    """
    마감 스윕 워커

    - 매 주기마다 (status=OPEN, deadline <= now) 제안을 다시 조회하여 판정
    - 자체 상태가 없으므로 재시작/중복 실행에도 안전
    - 판정은 조건부 전이라 여러 워커가 동시에 돌아도 결과 이벤트는 하나
    """

    def __init__(
        self,
        db: Session,
        service: PromotionService | None = None,
        interval: float = DEADLINE_SWEEP_INTERVAL_SECONDS,
        batch_size: int = DEADLINE_SWEEP_BATCH_SIZE,
    ):
        self.db = db
        self.service = service or PromotionService(db, hierarchy=PositionHierarchy.from_env())
        self.interval = interval
        self.batch_size = batch_size
        self.running = True

    def sweep(self) -> dict[UUID, PromotionStatusType]:
        """한 번 스윕"""
        return self.service.finalize_overdue(limit=self.batch_size)

    def run(self) -> None:
        """워커 메인 루프"""
        signal.signal(signal.SIGTERM, self._handle_shutdown)
        signal.signal(signal.SIGINT, self._handle_shutdown)

        logger.info(f"Deadline worker started (interval={self.interval}s)")

        while self.running:
            try:
                self.sweep()
            except (AppException, SQLAlchemyError) as e:
                self.db.rollback()
                logger.error(f"Deadline sweep failed: {e}", exc_info=True)

            time.sleep(self.interval)

        logger.info("Deadline worker stopped")

    def _handle_shutdown(self, signum, frame):
        logger.info("Shutdown signal received")
        self.running = False


if __name__ == "__main__":
    logging.basicConfig(
        level=getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    db = SessionLocal()
    try:
        DeadlineWorker(db).run()
    finally:
        db.close()
