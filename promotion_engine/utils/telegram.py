import logging
import os
from dataclasses import dataclass

import requests

logger = logging.getLogger(__name__)

TELEGRAM_API_BASE = "https://api.telegram.org/bot{token}"
DEFAULT_TIMEOUT = 10


class TelegramError(Exception):
    pass


@dataclass(slots=True)
class TelegramNotifier:
    token: str
    chat_id: str
    timeout: int = DEFAULT_TIMEOUT

    def send_message(self, text: str, parse_mode: str = "HTML") -> None:
        url = f"{TELEGRAM_API_BASE.format(token=self.token)}/sendMessage"
        payload = {
            "chat_id": self.chat_id,
            "text": text[:4096],
            "parse_mode": parse_mode,
            "disable_web_page_preview": True,
        }
        try:
            resp = requests.post(url, json=payload, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise TelegramError(f"Telegram request failed: {e}") from e

        if not resp.ok:
            raise TelegramError(f"Telegram API error: {resp.status_code} {resp.text[:100]}")
        logger.debug("Telegram message sent")


def build_telegram_notifier_from_env() -> TelegramNotifier | None:
    token = os.getenv("TELEGRAM_BOT_TOKEN", "").strip()
    chat_id = os.getenv("TELEGRAM_CHAT_ID", "").strip()
    if not token or not chat_id:
        return None
    return TelegramNotifier(token=token, chat_id=chat_id)
