# tests/conftest.py
import pytest
import requests

from utils.config import ConfigManager


class FakeResponse:
    def __init__(self, status_code=200, text="", json_data=None):
        self.status_code = status_code
        self.text = text
        self._json = json_data

    def json(self):
        if self._json is None:
            raise ValueError("No JSON object could be decoded")
        return self._json


class FakeSession:
    """Stands in for requests.Session; replays queued responses or errors."""

    def __init__(self, responses=None):
        self.responses = list(responses or [])
        self.calls = []

    def _next(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        if not self.responses:
            raise AssertionError(f"unexpected {method} {url}")
        result = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(result, Exception):
            raise result
        return result

    def get(self, url, **kwargs):
        return self._next("GET", url, **kwargs)

    def post(self, url, **kwargs):
        return self._next("POST", url, **kwargs)


class NoNetworkSession:
    def __init__(self):
        self.calls = []

    def get(self, url, **kwargs):
        self.calls.append(url)
        raise AssertionError("network must not be used")

    post = get


class FakeClock:
    def __init__(self, now=1_700_000_000):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


def telegram_ok():
    return FakeResponse(200, json_data={"ok": True, "result": {"message_id": 1}})


def geo_line(*parts):
    return FakeResponse(200, text="\n".join(parts) + "\n")


@pytest.fixture
def config_manager(tmp_path):
    manager = ConfigManager(config_path=None, env_file=None, environ={})
    manager.set("telegram.bot_token", "123456:TEST-TOKEN")
    manager.set("telegram.chat_id", "-1001234567890")
    manager.set("paths.rate_limit_file", str(tmp_path / "ssh-monitor-rate"))
    manager.set("paths.state_file", str(tmp_path / "ssh-monitor-state"))
    manager.set("paths.log_file", str(tmp_path / "logs" / "ssh-monitor.log"))
    return manager


@pytest.fixture
def settings(config_manager):
    return config_manager.to_settings()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def timeout_error():
    return requests.exceptions.Timeout("read timed out")
