"""Telegram notifications for trade events. Never log token or chat_id."""

from __future__ import annotations
import logging

import requests

logger = logging.getLogger("ema_trader.utils.telegram")

TELEGRAM_API = "https://api.telegram.org"


def send_telegram(text: str, bot_token: str = "", chat_id: str = "", timeout: float = 10.0) -> bool:
    """Send message to Telegram. Returns True on success; no-op when not configured."""
    if not bot_token or not chat_id:
        logger.debug("Telegram not configured, skipping message (len=%d)", len(text))
        return False
    try:
        r = requests.post(
            f"{TELEGRAM_API}/bot{bot_token}/sendMessage",
            json={"chat_id": chat_id, "text": text},
            timeout=timeout,
        )
    except requests.RequestException as e:
        logger.warning("Telegram send failed: %s", type(e).__name__)
        return False
    if r.status_code != 200:
        logger.warning("Telegram send failed: %s %s", r.status_code, r.text[:200])
        return False
    return True


class TelegramNotifier:
    """Callable notifier bound to one chat; the live loop calls it with plain text."""

    def __init__(self, bot_token: str = "", chat_id: str = ""):
        self._bot_token = bot_token
        self._chat_id = chat_id

    @property
    def enabled(self) -> bool:
        return bool(self._bot_token and self._chat_id)

    def __call__(self, text: str) -> bool:
        return send_telegram(text, self._bot_token, self._chat_id)
