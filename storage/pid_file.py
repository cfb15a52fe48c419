"""
pid_file.py

Runtime marker file holding the monitor's process id.
"""

import os
from pathlib import Path
from typing import Optional

from utils import app_logger


class RuntimeMarker:
    """Writes the current PID on start and removes the file on shutdown."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self.logger = app_logger

    def write(self, pid: Optional[int] = None) -> None:
        pid = os.getpid() if pid is None else pid
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(f"{pid}\n", encoding="utf-8")
        self.logger.debug(f"Runtime marker written: {self.path} (PID {pid})")

    def read(self) -> Optional[int]:
        try:
            return int(self.path.read_text(encoding="utf-8").strip())
        except (OSError, ValueError):
            return None

    def remove(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            self.logger.warning(f"Could not remove runtime marker {self.path}: {e}")
