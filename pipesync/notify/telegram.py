"""Telegram Bot API notification sink.

Messages are sent as plain text through ``sendMessage``. HTTP errors are
raised so the caller's retry policy can classify them (429 and 5xx are
transient).
"""

from __future__ import annotations

import logging

import httpx

logger = logging.getLogger(__name__)

TELEGRAM_API_BASE = "https://api.telegram.org"
MAX_MESSAGE_LENGTH = 4096


class TelegramNotifier:
    """Sends notifications to a single Telegram chat.

    Parameters
    ----------
    bot_token : str
        Bot token issued by BotFather.
    chat_id : str
        Target chat or channel id.
    timeout : float
        Per-request timeout in seconds.
    client : httpx.Client | None
        Optional preconfigured client (tests pass one with a mock transport).
    """

    def __init__(
        self,
        bot_token: str,
        chat_id: str,
        timeout: float = 30.0,
        client: httpx.Client | None = None,
    ) -> None:
        if not bot_token or not chat_id:
            raise ValueError("Telegram notifier needs both a bot token and a chat id")
        self.chat_id = chat_id
        self._url = f"{TELEGRAM_API_BASE}/bot{bot_token}/sendMessage"
        self._client = client or httpx.Client(timeout=timeout)

    def send(self, message: str) -> None:
        response = self._client.post(
            self._url,
            json={
                "chat_id": self.chat_id,
                "text": message[:MAX_MESSAGE_LENGTH],
                "disable_web_page_preview": True,
            },
        )
        response.raise_for_status()
        logger.debug("Telegram message sent to %s", self.chat_id)

    def health_check(self) -> bool:
        """Return True when the bot token is accepted by ``getMe``."""
        try:
            response = self._client.get(self._url.rsplit("/", 1)[0] + "/getMe")
            return response.status_code == 200 and response.json().get("ok") is True
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Telegram health check failed: %s", exc)
            return False

    def close(self) -> None:
        self._client.close()
