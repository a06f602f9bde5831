import logging
import time
from os import getenv
from typing import Callable, TypeVar

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from promotion_engine.exceptions import ServiceUnavailableError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DB_RETRY_ATTEMPTS = int(getenv("DB_RETRY_ATTEMPTS", "3"))
DB_RETRY_BASE_DELAY = float(getenv("DB_RETRY_BASE_DELAY", "0.05"))


def run_with_retry(
    db: Session,
    fn: Callable[[], T],
    attempts: int | None = None,
    base_delay: float | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    저장소 경계 재시도 래퍼

    - OperationalError (연결 끊김, lock timeout 등)만 재시도
    - 매 시도 전에 rollback하여 부분 반영 상태를 남기지 않음
    - 지수 백오프: base_delay * 2 ** attempt
    - 재시도 소진 시 ServiceUnavailableError
    """
    if attempts is None:
        attempts = DB_RETRY_ATTEMPTS
    if base_delay is None:
        base_delay = DB_RETRY_BASE_DELAY

    last_error: OperationalError | None = None
    for attempt in range(attempts):
        try:
            return fn()
        except OperationalError as e:
            last_error = e
            db.rollback()
            if attempt + 1 < attempts:
                delay = base_delay * (2 ** attempt)
                logger.warning(f"DB operation failed (attempt {attempt + 1}/{attempts}), retrying in {delay:.2f}s: {e}")
                sleep(delay)

    logger.error(f"DB operation failed after {attempts} attempts: {last_error}")
    raise ServiceUnavailableError(
        message="Service unavailable",
        detail="Persistence layer is unavailable, please retry"
    ) from last_error
