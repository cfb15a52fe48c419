# tests/test_main.py
import logging
from concurrent.futures import Future

import pytest

import main
from storage.pid_file import RuntimeMarker
from storage.rate_table import RateLimitTable
from stream.driver import LogSourceError, NoLogSourceError
from utils.logger import SECURITY, ColorFormatter


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "paths:\n"
        f"  rate_limit_file: {tmp_path / 'rate'}\n"
        f"  state_file: {tmp_path / 'state'}\n"
        f"  log_file: {tmp_path / 'logs' / 'ssh-monitor.log'}\n",
        encoding="utf-8",
    )
    return path


LOCAL_LOGIN = (
    "May  1 10:15:23 web01 sshd[4242]: Accepted publickey for alice "
    "from 192.168.1.20 port 22 ssh2"
)


class FakeFollower:
    """Stands in for StreamDriver: replays lines, then raises `end`."""

    description = "test follower"

    def __init__(self, lines=(), end=None, available=True, marker_path=None):
        self._lines = list(lines)
        self.end = end
        self.available = available
        self.marker_path = marker_path
        self.marker_seen = None
        self.stopped = False

    def select(self):
        if not self.available:
            raise NoLogSourceError("No usable log source (tried: journal, file)")
        return self

    def lines(self):
        if self.marker_path is not None:
            self.marker_seen = self.marker_path.exists()
        yield from self._lines
        if self.end is not None:
            raise self.end

    def stop(self):
        self.stopped = True


class InlineExecutor:
    def __init__(self, max_workers=None, thread_name_prefix=""):
        self.shutdown_kwargs = None

    def submit(self, fn, *args):
        future = Future()
        future.set_result(fn(*args))
        return future

    def shutdown(self, **kwargs):
        self.shutdown_kwargs = kwargs


@pytest.fixture
def daemon(monkeypatch):
    """Runs main.main as root with a fake follower and an inline executor."""
    executors = []

    def make_executor(**kwargs):
        executors.append(InlineExecutor(**kwargs))
        return executors[-1]

    def start(follower):
        monkeypatch.setattr(main, "StreamDriver", lambda sources: follower)
        return executors

    monkeypatch.setattr(main.os, "geteuid", lambda: 0)
    monkeypatch.setattr(main.LoggerSetup, "setup", lambda *args, **kwargs: main.app_logger)
    monkeypatch.setattr(main, "ThreadPoolExecutor", make_executor)
    return start


def _args(config_file, *extra):
    return ["-c", str(config_file), "--env-file", str(config_file.parent / "missing.env"), *extra]


def test_show_config(config_file, capsys):
    assert main.main(_args(config_file, "--show-config")) == 0
    out = capsys.readouterr().out
    assert "rate_limit.login_seconds" in out
    assert "telegram.bot_token" in out


def test_show_rate_table(config_file, tmp_path, capsys):
    RateLimitTable(tmp_path / "rate").upsert("203.0.113.5_login_alice", 1700000000)

    assert main.main(_args(config_file, "--show-rate-table")) == 0
    out = capsys.readouterr().out
    assert "203.0.113.5" in out
    assert "login_alice" in out


def test_invalid_config_exits_non_zero(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("rate_limit:\n  login_seconds: soon\n", encoding="utf-8")

    assert main.main(_args(path, "--show-config")) == 1


def test_requires_root(config_file, monkeypatch, capsys):
    monkeypatch.setattr(main.os, "geteuid", lambda: 1000)

    assert main.main(_args(config_file)) == 1
    assert "root privileges" in capsys.readouterr().err


def test_settings_rows_mask_token(settings):
    rows = dict((name, value) for name, value in main.settings_rows(settings))
    assert "TEST-TOKEN" not in str(rows["telegram.bot_token"])


def test_runtime_marker_round_trip(tmp_path):
    marker = RuntimeMarker(tmp_path / "run" / "ssh-monitor-state")
    marker.write(4242)

    assert marker.read() == 4242
    marker.remove()
    assert not marker.path.exists()
    marker.remove()


def test_color_formatter_tags_level():
    record = logging.LogRecord("SSHMonitor", SECURITY, __file__, 1, "SSH login: alice", None, None)
    text = ColorFormatter("%(message)s").format(record)

    assert "[SECURITY]" in text
    assert text.endswith("SSH login: alice")


def test_shutdown_signal_stops_cleanly(daemon, config_file, tmp_path, caplog):
    state_file = tmp_path / "state"
    follower = FakeFollower([LOCAL_LOGIN], end=main.ShutdownRequested("SIGTERM"), marker_path=state_file)
    executors = daemon(follower)

    with caplog.at_level(logging.INFO, logger="SSHMonitor"):
        assert main.main(_args(config_file, "--dry-run")) == 0

    assert follower.marker_seen is True
    assert not state_file.exists()
    assert follower.stopped
    assert executors[0].shutdown_kwargs == {"wait": False, "cancel_futures": True}
    assert "SSH login: alice from 192.168.1.20" in caplog.text
    assert "1 notified" in caplog.text
    assert caplog.records[-1].getMessage() == "SSH monitor stopped"


def test_keyboard_interrupt_exits_zero(daemon, config_file, tmp_path):
    daemon(FakeFollower(end=KeyboardInterrupt()))

    assert main.main(_args(config_file, "--dry-run")) == 0
    assert not (tmp_path / "state").exists()


def test_no_log_source_exits_without_marker(daemon, config_file, tmp_path, caplog):
    daemon(FakeFollower(available=False))

    with caplog.at_level(logging.ERROR, logger="SSHMonitor"):
        assert main.main(_args(config_file, "--dry-run")) == 1

    assert "Neither journalctl nor an auth log file" in caplog.text
    assert not (tmp_path / "state").exists()


def test_follower_exit_is_an_error(daemon, config_file, tmp_path, caplog):
    follower = FakeFollower(end=LogSourceError("tail exited with status 1"))
    daemon(follower)

    with caplog.at_level(logging.INFO, logger="SSHMonitor"):
        assert main.main(_args(config_file, "--dry-run")) == 1

    assert "tail exited with status 1" in caplog.text
    assert "SSH monitor stopped" in caplog.text
    assert not (tmp_path / "state").exists()
