import uuid
from datetime import datetime
from enum import Enum as PyEnum
from sqlalchemy import (
    String, DateTime, Integer, Text, Index, Enum, Uuid, JSON, func
)
from sqlalchemy.orm import Mapped, mapped_column

from promotion_engine.db import Base


class OutboxStatusType(PyEnum):
    PENDING = "PENDING"
    DONE = "DONE"
    FAILED = "FAILED"


class OutboxEvent(Base):
    __tablename__ = "outbox_events"
    __table_args__ = (
        Index("idx_outbox_status_next_retry", "status", "next_retry_at"),  # 필수 인덱스
        Index("idx_outbox_event_type", "event_type"),  # 선택: 모니터링용
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    event_type: Mapped[str] = mapped_column(String(100), nullable=False)  # "promotion.resolved.v1"
    payload: Mapped[dict] = mapped_column(JSON, nullable=False)
    proposal_id: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)

    status: Mapped[OutboxStatusType] = mapped_column(
        Enum(OutboxStatusType, name="outbox_status_type"),
        nullable=False,
        default=OutboxStatusType.PENDING
    )
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    next_retry_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    locked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    locked_by: Mapped[str | None] = mapped_column(String(255), nullable=True)  # hostname/pid

    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    delivered_channels: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)  # 재시도 시 건너뜀

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
