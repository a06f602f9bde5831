from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from promotion_engine.exceptions import ServiceUnavailableError
from promotion_engine.utils.retry import run_with_retry


def _operational_error():
    return OperationalError("UPDATE promotion_proposals", {}, Exception("database is locked"))


def test_transient_errors_are_retried_with_backoff():
    db = MagicMock()
    delays: list[float] = []
    calls = {"count": 0}

    def flaky():
        calls["count"] += 1
        if calls["count"] < 3:
            raise _operational_error()
        return "ok"

    assert run_with_retry(db, flaky, attempts=3, base_delay=0.1, sleep=delays.append) == "ok"
    assert delays == [0.1, 0.2]
    assert db.rollback.call_count == 2


def test_exhausted_retries_surface_service_unavailable():
    db = MagicMock()
    delays: list[float] = []

    def always_down():
        raise _operational_error()

    with pytest.raises(ServiceUnavailableError) as exc_info:
        run_with_retry(db, always_down, attempts=3, base_delay=0.05, sleep=delays.append)

    assert exc_info.value.status_code == 503
    assert isinstance(exc_info.value.__cause__, OperationalError)
    assert len(delays) == 2
    assert db.rollback.call_count == 3


def test_business_errors_are_not_retried():
    db = MagicMock()
    calls = {"count": 0}

    def rejects():
        calls["count"] += 1
        raise ValueError("boom")

    with pytest.raises(ValueError):
        run_with_retry(db, rejects, attempts=3, sleep=lambda _: None)
    assert calls["count"] == 1
    db.rollback.assert_not_called()
