from __future__ import annotations

import os
from dataclasses import dataclass

from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail


class MailerError(Exception):
    pass


@dataclass(slots=True)
class SendGridMailer:
    api_key: str
    from_email: str

    def send(self, *, to_emails: list[str], subject: str, text: str, html: str | None = None) -> None:
        msg = Mail(
            from_email=self.from_email,
            to_emails=to_emails,
            subject=subject,
            plain_text_content=text,
            html_content=html or text.replace("\n", "<br>"),
        )

        try:
            client = SendGridAPIClient(self.api_key)
            resp = client.send(msg)
            # 2xx 외 응답은 실패 처리
            if resp.status_code < 200 or resp.status_code >= 300:
                raise MailerError(f"SendGrid failed with status {resp.status_code}")
        except MailerError:
            raise
        except Exception as e:
            raise MailerError("Failed to send email") from e


def build_sendgrid_mailer_from_env() -> SendGridMailer | None:
    """SENDGRID 설정이 없으면 None (메일 채널 비활성)"""
    api_key = os.getenv("SENDGRID_API_KEY", "").strip()
    from_email = os.getenv("SENDGRID_FROM_EMAIL", "").strip()
    if not api_key or not from_email:
        return None
    return SendGridMailer(api_key=api_key, from_email=from_email)
