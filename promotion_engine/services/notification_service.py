import logging
import os

from promotion_engine.utils.mailer import SendGridMailer, MailerError, build_sendgrid_mailer_from_env
from promotion_engine.utils.telegram import TelegramNotifier, TelegramError, build_telegram_notifier_from_env

logger = logging.getLogger(__name__)

STATUS_LABELS = {
    "OPEN": "In progress",
    "PASSED": "Passed",
    "FAILED": "Not passed",
    "EXPIRED": "Expired (no votes)",
}


CHANNEL_TELEGRAM = "telegram"
CHANNEL_EMAIL = "email"


class NotificationError(Exception):
    def __init__(self, message: str, delivered: list[str] | None = None):
        super().__init__(message)
        self.delivered = delivered or []


class NotificationService:
    """
    승진 투표 알림 발송 (Telegram / 이메일)

    - 설정되지 않은 채널은 건너뜀
    - 하나라도 실패하면 NotificationError → outbox 워커가 재시도
    - 실패 전에 발송된 채널은 NotificationError.delivered로 전달, 재시도 때 skip_channels로 제외
    """

    def __init__(
        self,
        mailer: SendGridMailer | None = None,
        telegram: TelegramNotifier | None = None,
        email_recipients: list[str] | None = None,
    ):
        self.mailer = mailer
        self.telegram = telegram
        self.email_recipients = email_recipients or []

    @classmethod
    def from_env(cls) -> "NotificationService":
        raw = os.getenv("NOTIFY_EMAIL_TO", "")
        recipients = [address.strip() for address in raw.split(",") if address.strip()]
        return cls(
            mailer=build_sendgrid_mailer_from_env(),
            telegram=build_telegram_notifier_from_env(),
            email_recipients=recipients,
        )

    def send_promotion_initiated_notification(self, payload: dict, skip_channels: list[str] | None = None) -> list[str]:
        """투표 발의 안내"""
        text = (
            "🗳️ <b>Promotion vote</b>\n"
            f"👤 {payload['applicant_name']} ({payload['store_name']}) requests promotion "
            f"{payload['current_position']} → {payload['target_position']}\n"
            f"👥 Qualified voters: {payload['qualified_voter_count']}\n"
            f"⏰ Deadline: {payload['deadline'][:10]}\n"
            "Eligible colleagues, please cast your vote!"
        )
        return self._dispatch(
            subject=f"Promotion vote: {payload['applicant_name']} → {payload['target_position']}",
            text=text,
            skip_channels=skip_channels,
        )

    def send_promotion_resolved_notification(self, payload: dict, skip_channels: list[str] | None = None) -> list[str]:
        """투표 결과 안내"""
        total = payload["agree_count"] + payload["disagree_count"]
        result = STATUS_LABELS.get(payload["status"], payload["status"])
        text = (
            "🗳️ <b>Promotion vote result</b>\n"
            f"👤 Applicant: {payload['applicant_name']}\n"
            f"🎯 Target position: {payload['target_position']}\n"
            f"📊 Result: {result}\n"
            f"👍 Agree: {payload['agree_count']}\n"
            f"👎 Disagree: {payload['disagree_count']}\n"
            f"📈 Total votes: {total} / {payload['qualified_voter_count']}"
        )
        return self._dispatch(
            subject=f"Promotion vote result: {payload['applicant_name']} - {result}",
            text=text,
            skip_channels=skip_channels,
        )

    def _dispatch(self, subject: str, text: str, skip_channels: list[str] | None = None) -> list[str]:
        """
        설정된 채널로 발송, 이번에 발송한 채널 목록 반환

        skip_channels에 있는 채널은 이미 발송된 것으로 보고 건너뜀
        """
        skip = set(skip_channels or [])
        delivered: list[str] = []
        errors: list[str] = []

        if self.telegram and CHANNEL_TELEGRAM not in skip:
            try:
                self.telegram.send_message(text)
                delivered.append(CHANNEL_TELEGRAM)
            except TelegramError as e:
                logger.warning(f"Telegram notification failed: {e}")
                errors.append(str(e))

        if self.mailer and self.email_recipients and CHANNEL_EMAIL not in skip:
            plain = text.replace("<b>", "").replace("</b>", "")
            try:
                self.mailer.send(to_emails=self.email_recipients, subject=subject, text=plain)
                delivered.append(CHANNEL_EMAIL)
            except MailerError as e:
                logger.warning(f"Email notification failed: {e}")
                errors.append(str(e))

        if not self.telegram and not (self.mailer and self.email_recipients):
            logger.debug(f"No notification channel configured, skipped: {subject}")

        if errors:
            raise NotificationError("; ".join(errors), delivered=delivered)
        return delivered
