from sqlalchemy import select, update
from sqlalchemy.orm import Session
from datetime import datetime, timedelta, timezone
from uuid import UUID
import os
import socket

from promotion_engine.models.outbox import OutboxEvent, OutboxStatusType


class OutboxRepository:
    def __init__(self, db: Session):
        self.db = db

    def create_outbox_event(
        self,
        event_type: str,
        payload: dict,
        proposal_id: UUID | None = None,
        next_retry_at: datetime | None = None
    ) -> OutboxEvent:
        """트랜잭션 내에서 outbox 이벤트 저장 (상태 변경과 같은 커밋)"""
        if next_retry_at is None:
            next_retry_at = datetime.now(timezone.utc)

        event = OutboxEvent(
            event_type=event_type,
            payload=payload,
            proposal_id=proposal_id,
            status=OutboxStatusType.PENDING,
            attempts=0,
            next_retry_at=next_retry_at
        )
        self.db.add(event)
        self.db.flush()
        return event

    def list_by_proposal(self, proposal_id: UUID, event_type: str | None = None) -> list[OutboxEvent]:
        stmt = select(OutboxEvent).where(OutboxEvent.proposal_id == proposal_id)
        if event_type:
            stmt = stmt.where(OutboxEvent.event_type == event_type)
        stmt = stmt.order_by(OutboxEvent.created_at)
        return list(self.db.execute(stmt).scalars().all())

    def claim_pending_events(
        self,
        batch_size: int,
        worker_id: str,
        now: datetime,
        lock_ttl_minutes: int = 5
    ) -> list[OutboxEvent]:
        """
        워커 선점 패턴: FOR UPDATE SKIP LOCKED 사용

        핵심 흐름:
        1. 트랜잭션 시작 (호출자가 관리)
        2. PENDING이고 next_retry_at <= now인 row를
           FOR UPDATE SKIP LOCKED로 batch 조회
        3. 조회된 row들을 즉시 locked_at/locked_by 갱신(선점)
        4. 트랜잭션 커밋 (호출자가 관리)
        5. 커밋 후 실제 핸들러 실행 (트랜잭션 외부)
        """
        # 락 TTL 계산: 오래된 락은 회수 대상
        lock_ttl_threshold = now - timedelta(minutes=lock_ttl_minutes)

        stmt = (
            select(OutboxEvent)
            .where(
                OutboxEvent.status == OutboxStatusType.PENDING,
                OutboxEvent.next_retry_at <= now,
                # 락이 없거나, 락이 TTL을 초과한 경우만 선점 가능
                (
                    (OutboxEvent.locked_at.is_(None)) |
                    (OutboxEvent.locked_at < lock_ttl_threshold)
                )
            )
            .order_by(OutboxEvent.created_at)  # FIFO
            .limit(batch_size)
            .with_for_update(skip_locked=True)  # 다른 워커가 잠근 row는 건너뜀
        )
        events = list(self.db.execute(stmt).scalars().all())

        if not events:
            return []

        event_ids = [event.id for event in events]
        update_stmt = (
            update(OutboxEvent)
            .where(OutboxEvent.id.in_(event_ids))
            .values(
                locked_at=now,
                locked_by=worker_id
            )
            .execution_options(synchronize_session=False)
        )
        self.db.execute(update_stmt)
        self.db.flush()

        # 반환 전 각 이벤트를 refresh하여 락 상태 동기화
        for event in events:
            self.db.refresh(event)

        return events

    def mark_done(self, event_id: UUID, processed_at: datetime) -> None:
        """처리 완료 표시"""
        stmt = (
            update(OutboxEvent)
            .where(OutboxEvent.id == event_id)
            .values(
                status=OutboxStatusType.DONE,
                processed_at=processed_at,
                locked_at=None,
                locked_by=None
            )
            .execution_options(synchronize_session=False)
        )
        self.db.execute(stmt)
        self.db.flush()

    def mark_failed(
        self,
        event_id: UUID,
        error: str,
        next_retry_at: datetime,
        max_attempts: int = 3,
        delivered_channels: list[str] | None = None
    ) -> bool:
        """
        실패 표시 및 재시도 스케줄링

        attempts는 DB에서 직접 증가시켜 여러 워커가 동시에 시도해도 안전
        delivered_channels가 주어지면 이미 발송된 채널로 기록 (재시도 시 건너뜀)

        Returns:
            True: 재시도 가능, False: 최대 시도 횟수 초과 (FAILED 상태로 전환)
        """
        stmt = (
            update(OutboxEvent)
            .where(OutboxEvent.id == event_id)
            .values(attempts=OutboxEvent.attempts + 1)
            .returning(OutboxEvent.attempts)
            .execution_options(synchronize_session=False)
        )
        new_attempts = self.db.execute(stmt).scalar_one_or_none()

        if new_attempts is None:
            return False

        if new_attempts >= max_attempts:
            # 최대 시도 횟수 초과 → FAILED 상태로 전환 (DLQ)
            values = dict(status=OutboxStatusType.FAILED)
        else:
            values = dict(status=OutboxStatusType.PENDING, next_retry_at=next_retry_at)
        if delivered_channels is not None:
            values["delivered_channels"] = delivered_channels

        stmt = (
            update(OutboxEvent)
            .where(OutboxEvent.id == event_id)
            .values(last_error=error, locked_at=None, locked_by=None, **values)
            .execution_options(synchronize_session=False)
        )
        self.db.execute(stmt)
        self.db.flush()
        return new_attempts < max_attempts


def get_worker_id() -> str:
    """워커 식별자 생성 (hostname:pid)"""
    hostname = socket.gethostname()
    pid = os.getpid()
    return f"{hostname}:{pid}"
