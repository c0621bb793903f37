"""Unit tests for utils.telegram."""

import requests

from ema_trader.utils import telegram
from ema_trader.utils.telegram import TelegramNotifier, send_telegram


class _Response:
    def __init__(self, status_code, text=""):
        self.status_code = status_code
        self.text = text


def test_not_configured_is_noop(monkeypatch):
    calls = []
    monkeypatch.setattr(telegram.requests, "post", lambda *a, **k: calls.append(a))
    assert send_telegram("hi") is False
    assert TelegramNotifier().enabled is False
    assert calls == []


def test_send_success(monkeypatch):
    sent = {}

    def fake_post(url, json, timeout):
        sent.update(url=url, json=json)
        return _Response(200)

    monkeypatch.setattr(telegram.requests, "post", fake_post)
    notifier = TelegramNotifier("token", "42")
    assert notifier.enabled
    assert notifier("entry") is True
    assert sent["url"].endswith("/bottoken/sendMessage")
    assert sent["json"] == {"chat_id": "42", "text": "entry"}


def test_send_failures_are_not_raised(monkeypatch):
    monkeypatch.setattr(telegram.requests, "post", lambda *a, **k: _Response(400, "bad"))
    assert send_telegram("x", "token", "42") is False

    def boom(*a, **k):
        raise requests.ConnectionError("down")

    monkeypatch.setattr(telegram.requests, "post", boom)
    assert send_telegram("x", "token", "42") is False
