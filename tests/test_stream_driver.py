# tests/test_stream_driver.py
import io
import subprocess
import sys

import pytest

from stream.driver import LogSourceError, NoLogSourceError, StreamDriver
from stream.sources import FileTailSource, JournalSource, LogSource, build_sources
from utils.config import ConfigError


class FakeProcess:
    def __init__(self, output):
        self.stdout = io.StringIO(output)
        self.returncode = None
        self.terminated = False

    def poll(self):
        return self.returncode

    def terminate(self):
        self.terminated = True
        self.returncode = -15

    def kill(self):
        self.returncode = -9

    def wait(self, timeout=None):
        if self.returncode is None:
            self.returncode = 0
        return self.returncode


class StaticSource(LogSource):
    def __init__(self, name, available):
        self.name = name
        self.description = f"static {name}"
        self.available = available

    def is_available(self):
        return self.available

    def command(self):
        return ["follow", self.name]

    def accepts(self, line):
        return "sshd" in line


class CommandSource(LogSource):
    name = "file"
    description = "test command"

    def __init__(self, command):
        self._command = command

    def is_available(self):
        return True

    def command(self):
        return self._command

    def accepts(self, line):
        return "sshd" in line


def test_journal_source_availability_and_command():
    calls = []

    def fake_run(cmd, **kwargs):
        calls.append(cmd)
        return subprocess.CompletedProcess(cmd, 0)

    source = JournalSource(["ssh.service", "sshd.service"], run=fake_run, which=lambda name: "/usr/bin/" + name)

    assert source.is_available()
    assert calls[0] == [
        "journalctl", "-u", "ssh.service", "-u", "sshd.service", "--no-pager", "-n", "1",
    ]
    command = source.command()
    assert command[:5] == ["journalctl", "-u", "ssh.service", "-u", "sshd.service"]
    assert "-f" in command
    assert command[-2:] == ["--since", "now"]
    assert "short-iso" in command


def test_journal_source_unavailable():
    assert not JournalSource(["ssh.service"], which=lambda name: None).is_available()

    failing = JournalSource(
        ["ssh.service"],
        run=lambda cmd, **kw: subprocess.CompletedProcess(cmd, 1),
        which=lambda name: "/usr/bin/journalctl",
    )
    assert not failing.is_available()


def test_journal_prefilter():
    source = JournalSource(["ssh.service"])
    assert source.accepts("2024-05-01T10:15:23+0000 h sshd[1]: Accepted password for a from 1.2.3.4")
    assert not source.accepts("2024-05-01T10:15:23+0000 h sshd[1]: Server listening on 0.0.0.0 port 22.")
    assert not source.accepts("2024-05-01T10:15:23+0000 h kernel: Failed to load module")


def test_file_source_picks_first_readable_path(tmp_path):
    auth_log = tmp_path / "secure"
    auth_log.write_text("", encoding="utf-8")
    source = FileTailSource([str(tmp_path / "auth.log"), str(auth_log)], which=lambda name: "/usr/bin/tail")

    assert source.is_available()
    assert source.command() == ["tail", "-n", "0", "-F", str(auth_log)]
    assert source.accepts("Jan 30 10:15:23 h sshd[1]: Invalid user admin from 1.2.3.4 port 22")
    assert not source.accepts("Jan 30 10:15:23 h sudo: Failed to authenticate")


def test_file_source_without_files(tmp_path):
    source = FileTailSource([str(tmp_path / "auth.log")], which=lambda name: "/usr/bin/tail")
    assert not source.is_available()


def test_select_falls_back_in_order():
    driver = StreamDriver([StaticSource("journal", False), StaticSource("file", True)])

    assert driver.select().name == "file"
    assert driver.status()["source"] == "file"
    assert driver.status()["running"] is False


def test_select_without_usable_source():
    driver = StreamDriver([StaticSource("journal", False), StaticSource("file", False)])

    with pytest.raises(NoLogSourceError):
        driver.select()


def test_lines_are_prefiltered_and_follower_exit_is_an_error():
    output = "sshd: one\nnoise\n\nsshd: two\n"
    process = FakeProcess(output)
    driver = StreamDriver([StaticSource("file", True)], popen=lambda cmd, **kw: process)

    lines = driver.lines()
    assert next(lines) == "sshd: one"
    assert next(lines) == "sshd: two"
    with pytest.raises(LogSourceError):
        next(lines)

    status = driver.status()
    assert status["lines_read"] == 4
    assert status["lines_forwarded"] == 2


def test_stop_ends_stream_quietly():
    process = FakeProcess("sshd: one\nsshd: two\n")
    driver = StreamDriver([StaticSource("file", True)], popen=lambda cmd, **kw: process)

    lines = driver.lines()
    assert next(lines) == "sshd: one"
    driver.stop()

    assert process.terminated
    assert list(lines) == ["sshd: two"]


def test_build_sources(settings):
    sources = build_sources(settings.sources)
    assert [s.name for s in sources] == ["journal", "file"]
    assert [s.name for s in build_sources(settings.sources, only="file")] == ["file"]

    with pytest.raises(ConfigError):
        build_sources(settings.sources, only="syslog-ng")


def test_undecodable_bytes_do_not_stop_the_stream():
    payload = (
        b"May  1 10:15:20 web01 su: caf\xe9\n"
        b"May  1 10:15:22 web01 sshd[1]: Invalid user jos\xe9 from 198.51.100.9 port 22\n"
        b"May  1 10:15:23 web01 sshd[1]: Accepted password for alice from 203.0.113.5 port 22 ssh2\n"
    )
    script = f"import sys; sys.stdout.buffer.write({payload!r})"
    driver = StreamDriver([CommandSource([sys.executable, "-c", script])])

    received = []
    with pytest.raises(LogSourceError):
        for line in driver.lines():
            received.append(line)

    assert received == [
        "May  1 10:15:22 web01 sshd[1]: Invalid user jos\ufffd from 198.51.100.9 port 22",
        "May  1 10:15:23 web01 sshd[1]: Accepted password for alice from 203.0.113.5 port 22 ssh2",
    ]
