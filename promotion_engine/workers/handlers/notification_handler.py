from uuid import UUID

from promotion_engine.services.notification_service import NotificationService


def handle_promotion_initiated(
    payload: dict,
    notification_service: NotificationService,
    outbox_event_id: UUID,
    delivered_channels: list[str] | None = None
) -> list[str]:
    """승진 투표 발의 알림 핸들러"""
    return notification_service.send_promotion_initiated_notification(payload, skip_channels=delivered_channels)


def handle_promotion_resolved(
    payload: dict,
    notification_service: NotificationService,
    outbox_event_id: UUID,
    delivered_channels: list[str] | None = None
) -> list[str]:
    """
    승진 투표 결과 알림 핸들러

    결과 이벤트는 상태 전이 승자만 기록하므로 제안당 하나
    이전 시도에서 발송된 채널은 건너뜀
    """
    return notification_service.send_promotion_resolved_notification(payload, skip_channels=delivered_channels)
