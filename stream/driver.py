"""
driver.py

Follows the selected log source and yields candidate SSH lines,
one at a time, in arrival order.
"""

import subprocess
from typing import Any, Callable, Dict, Iterator, List, Optional

from stream.sources import LogSource
from utils import app_logger


class NoLogSourceError(Exception):
    """Raised when none of the configured log sources is usable."""
    pass


class LogSourceError(Exception):
    """Raised when the follower process exits unexpectedly."""
    pass


class StreamDriver:
    """
    Selects one live source at startup and streams its lines.

    The selection is evaluated once; it is never re-evaluated mid-run.
    """

    def __init__(
        self,
        sources: List[LogSource],
        popen: Callable[..., Any] = subprocess.Popen,
    ) -> None:
        self.sources = sources
        self._popen = popen
        self.logger = app_logger
        self.active: Optional[LogSource] = None
        self._process = None
        self._stopping = False
        self.lines_read = 0
        self.lines_forwarded = 0

    def select(self) -> LogSource:
        """Pick the first available source in preference order."""
        if self.active is not None:
            return self.active

        for source in self.sources:
            if source.is_available():
                self.active = source
                self.logger.info(f"Using {source.description} for SSH log monitoring")
                return source
            self.logger.debug(f"Log source '{source.name}' not available")

        tried = ", ".join(source.name for source in self.sources) or "none"
        raise NoLogSourceError(f"No usable log source (tried: {tried})")

    def lines(self) -> Iterator[str]:
        """
        Yield prefiltered lines from the active source until stopped.

        Raises:
            NoLogSourceError: If no source can be selected.
            LogSourceError: If the follower exits without stop() being called.
        """
        source = self.select()
        command = source.command()
        self.logger.debug(f"Follower command: {' '.join(command)}")

        try:
            self._process = self._popen(
                command,
                stdout=subprocess.PIPE,
                stderr=subprocess.DEVNULL,
                text=True,
                encoding="utf-8",
                errors="replace",
                bufsize=1,
            )
        except OSError as e:
            raise LogSourceError(f"Could not start {source.description}: {e}") from e

        for raw in self._process.stdout:
            self.lines_read += 1
            line = raw.strip()
            if not line or not source.accepts(line):
                continue
            self.lines_forwarded += 1
            yield line

        returncode = self._process.wait()
        if not self._stopping:
            raise LogSourceError(f"{source.description} exited with status {returncode}")

    def stop(self) -> None:
        """Terminate the follower process, if running."""
        self._stopping = True
        process = self._process
        if process is None or process.poll() is not None:
            return
        process.terminate()
        try:
            process.wait(timeout=5)
        except subprocess.TimeoutExpired:
            process.kill()

    @property
    def running(self) -> bool:
        return self._process is not None and self._process.poll() is None

    def status(self) -> Dict[str, Any]:
        return {
            "source": self.active.name if self.active else None,
            "description": self.active.description if self.active else None,
            "running": self.running,
            "lines_read": self.lines_read,
            "lines_forwarded": self.lines_forwarded,
        }
