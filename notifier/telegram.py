"""
telegram.py

Delivers notification messages through the Telegram Bot API.
"""

from typing import Dict, Optional

import requests

from utils import app_logger
from utils.config import TelegramSettings


class TelegramNotifier:
    """
    Sends one message per call to a chat (and optional forum topic).
    No batching, no retry.
    """

    def __init__(
        self,
        settings: TelegramSettings,
        session: Optional[requests.Session] = None,
        dry_run: bool = False,
    ) -> None:
        self.settings = settings
        self.session = session or requests.Session()
        self.dry_run = dry_run
        self.logger = app_logger

    @property
    def endpoint(self) -> str:
        return f"{self.settings.api_url}/bot{self.settings.bot_token}/sendMessage"

    def _payload(self, message: str) -> Dict[str, str]:
        payload = {
            "chat_id": self.settings.chat_id,
            "text": message,
        }
        if self.settings.topic_id:
            payload["message_thread_id"] = self.settings.topic_id
        return payload

    def send(self, message: str) -> bool:
        """
        Send `message` to the configured chat.

        Returns:
            True only if the API response carries `"ok": true`.
        """
        if not message:
            self.logger.warning("Refusing to send an empty notification")
            return False

        if self.dry_run:
            self.logger.info("[DRY-RUN] Notification not sent:\n" + message)
            return True

        if not self.settings.configured:
            self.logger.warning("Telegram credentials not configured; notification skipped")
            return False

        try:
            response = self.session.post(
                self.endpoint,
                data=self._payload(message),
                timeout=self.settings.timeout,
            )
        except requests.exceptions.Timeout:
            self.logger.error(f"Telegram request timed out after {self.settings.timeout}s")
            return False
        except requests.exceptions.RequestException as e:
            # The exception text may embed the URL, which carries the token.
            self.logger.error(f"Telegram request failed: {type(e).__name__}")
            return False

        try:
            body = response.json()
        except ValueError:
            self.logger.error(f"Telegram returned a non-JSON response (HTTP {response.status_code})")
            return False

        if isinstance(body, dict) and body.get("ok") is True:
            self.logger.debug("Telegram notification delivered")
            return True

        description = body.get("description", "") if isinstance(body, dict) else ""
        self.logger.error(
            f"Telegram notification failed (HTTP {response.status_code}): {description or 'unknown error'}"
        )
        return False
