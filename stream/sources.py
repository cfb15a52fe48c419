"""
sources.py

Live log sources the stream driver can follow, in preference order.
"""

import os
import re
import shutil
import subprocess
from typing import Callable, Dict, List, Optional, Sequence

from utils import app_logger
from utils.config import ConfigError, SourceSettings

EVENT_MARKERS = re.compile(r"Accepted|Failed|session closed|Disconnected|Invalid user")


class LogSource:
    """
    Base class for a follow-able log source.

    Subclasses decide availability, the follower command and a coarse
    prefilter. The prefilter only saves classifier work; the classifier
    still validates every line it receives.
    """

    name = "base"
    description = ""

    def is_available(self) -> bool:
        raise NotImplementedError

    def command(self) -> List[str]:
        raise NotImplementedError

    def accepts(self, line: str) -> bool:
        raise NotImplementedError


class JournalSource(LogSource):
    """journalctl restricted to the SSH daemon units, new entries only."""

    name = "journal"

    def __init__(
        self,
        units: Sequence[str],
        run: Callable[..., subprocess.CompletedProcess] = subprocess.run,
        which: Callable[[str], Optional[str]] = shutil.which,
    ) -> None:
        self.units = list(units)
        self._run = run
        self._which = which
        self.logger = app_logger

    @property
    def description(self) -> str:
        return f"journalctl ({', '.join(self.units)})"

    def _unit_args(self) -> List[str]:
        args: List[str] = []
        for unit in self.units:
            args.extend(["-u", unit])
        return args

    def is_available(self) -> bool:
        if not self.units or self._which("journalctl") is None:
            return False
        try:
            result = self._run(
                ["journalctl", *self._unit_args(), "--no-pager", "-n", "1"],
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                timeout=10,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            self.logger.debug(f"journalctl probe failed: {e}")
            return False
        return result.returncode == 0

    def command(self) -> List[str]:
        return [
            "journalctl",
            *self._unit_args(),
            "-f",
            "--no-pager",
            "-o", "short-iso",
            "--since", "now",
        ]

    def accepts(self, line: str) -> bool:
        return "ssh" in line and EVENT_MARKERS.search(line) is not None


class FileTailSource(LogSource):
    """tail -F on the first readable authentication log."""

    name = "file"

    def __init__(
        self,
        paths: Sequence[str],
        which: Callable[[str], Optional[str]] = shutil.which,
    ) -> None:
        self.paths = list(paths)
        self._which = which
        self.path: Optional[str] = None
        self.logger = app_logger

    @property
    def description(self) -> str:
        return f"tail -F {self.path or ' | '.join(self.paths)}"

    def is_available(self) -> bool:
        if self._which("tail") is None:
            return False
        for path in self.paths:
            if os.path.isfile(path) and os.access(path, os.R_OK):
                self.path = path
                return True
        return False

    def command(self) -> List[str]:
        if self.path is None:
            raise RuntimeError("FileTailSource.command() called before is_available()")
        # -n 0: only lines appended from now on
        return ["tail", "-n", "0", "-F", self.path]

    _SSHD_EVENT = re.compile(r"sshd.*(?:Accepted|Failed|session closed|Disconnected|Invalid user)")

    def accepts(self, line: str) -> bool:
        return self._SSHD_EVENT.search(line) is not None


SOURCE_TYPES: Dict[str, str] = {
    "journal": "Centralized journal (journalctl), preferred",
    "file": "Flat authentication log file (tail -F), fallback",
}


def build_sources(settings: SourceSettings, only: Optional[str] = None) -> List[LogSource]:
    """
    Instantiate the configured strategies in preference order.

    Args:
        settings: Source settings (order, journal units, auth log paths).
        only: Restrict to one strategy name ("journal" or "file").
    """
    order = [only] if only else list(settings.order)
    sources: List[LogSource] = []

    for name in order:
        if name == "journal":
            sources.append(JournalSource(settings.journal_units))
        elif name == "file":
            sources.append(FileTailSource(settings.auth_log_paths))
        else:
            available = ", ".join(SOURCE_TYPES)
            raise ConfigError(f"Unknown log source '{name}'. Available: {available}")

    return sources
