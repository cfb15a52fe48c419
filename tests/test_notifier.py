# tests/test_notifier.py
import logging

import pytest
import requests

from conftest import FakeResponse, FakeSession, NoNetworkSession, telegram_ok
from notifier.telegram import TelegramNotifier


def test_send_posts_to_bot_api(settings):
    session = FakeSession([telegram_ok()])
    notifier = TelegramNotifier(settings.telegram, session=session)

    assert notifier.send("hello") is True

    method, url, kwargs = session.calls[0]
    assert method == "POST"
    assert url == "https://api.telegram.org/bot123456:TEST-TOKEN/sendMessage"
    assert kwargs["data"] == {"chat_id": "-1001234567890", "text": "hello"}
    assert kwargs["timeout"] == 10


def test_topic_id_is_forwarded(config_manager):
    config_manager.set("telegram.topic_id", "42")
    session = FakeSession([telegram_ok()])
    notifier = TelegramNotifier(config_manager.to_settings().telegram, session=session)

    assert notifier.send("hello")
    assert session.calls[0][2]["data"]["message_thread_id"] == "42"


def test_missing_credentials_short_circuit(config_manager, caplog):
    config_manager.set("telegram.bot_token", "")
    session = NoNetworkSession()
    notifier = TelegramNotifier(config_manager.to_settings().telegram, session=session)

    with caplog.at_level(logging.WARNING, logger="SSHMonitor"):
        assert notifier.send("hello") is False

    assert session.calls == []
    assert "credentials not configured" in caplog.text


@pytest.mark.parametrize(
    "response",
    [
        FakeResponse(400, json_data={"ok": False, "description": "Bad Request: chat not found"}),
        FakeResponse(502, text="<html>Bad Gateway</html>"),
        FakeResponse(200, json_data=["unexpected"]),
        requests.exceptions.Timeout("timed out"),
        requests.exceptions.ConnectionError("connection refused"),
    ],
)
def test_delivery_failures_return_false(settings, response):
    notifier = TelegramNotifier(settings.telegram, session=FakeSession([response]))
    assert notifier.send("hello") is False


def test_errors_do_not_leak_token(settings, caplog):
    error = requests.exceptions.ConnectionError(
        "HTTPSConnectionPool(host='api.telegram.org'): /bot123456:TEST-TOKEN/sendMessage"
    )
    notifier = TelegramNotifier(settings.telegram, session=FakeSession([error]))

    with caplog.at_level(logging.ERROR, logger="SSHMonitor"):
        notifier.send("hello")

    assert "TEST-TOKEN" not in caplog.text


def test_dry_run_does_not_touch_network(settings):
    session = NoNetworkSession()
    notifier = TelegramNotifier(settings.telegram, session=session, dry_run=True)

    assert notifier.send("hello") is True
    assert session.calls == []


def test_empty_message_is_rejected(settings):
    notifier = TelegramNotifier(settings.telegram, session=NoNetworkSession())
    assert notifier.send("") is False
