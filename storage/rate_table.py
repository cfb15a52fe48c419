"""
rate_table.py

Persistent last-notified table used by the rate limiter.

On-disk format is one `key:timestamp` record per line, e.g.
`203.0.113.5_login_alice:1714558523`. Keys may contain colons (IPv6),
so the timestamp is always taken after the last colon.
"""

import os
import tempfile
import threading
from pathlib import Path
from typing import Dict, Optional, Tuple

from utils import app_logger


class RateTableError(Exception):
    """Raised when the rate-limit table cannot be written."""
    pass


class RateLimitTable:
    """
    In-memory map of rate-limit keys to Unix timestamps, written through
    to disk by atomic replace on every change.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self.logger = app_logger
        self._entries: Dict[str, int] = {}
        self._lock = threading.Lock()

    def load(self) -> int:
        """
        Read the table from disk, replacing the in-memory state.

        Malformed records are skipped. A missing file yields an empty
        table. Returns the number of entries loaded.
        """
        entries: Dict[str, int] = {}

        if self.path.exists():
            try:
                with open(self.path, "r", encoding="utf-8") as f:
                    for line in f:
                        record = parse_record(line)
                        if record is None:
                            continue
                        key, timestamp = record
                        entries.pop(key, None)
                        entries[key] = timestamp
            except OSError as e:
                self.logger.error(f"Failed to read rate-limit table {self.path}: {e}")
                raise RateTableError(str(e)) from e

        with self._lock:
            self._entries = entries

        self.logger.debug(f"Loaded {len(entries)} rate-limit entries from {self.path}")
        return len(entries)

    def get(self, key: str) -> int:
        """Last-notified timestamp for `key`, 0 when never notified."""
        with self._lock:
            return self._entries.get(key, 0)

    def entries(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def upsert(self, key: str, timestamp: int, evict_before: Optional[int] = None) -> None:
        """
        Replace the entry for `key` and persist the table.

        When `evict_before` is given, entries last notified before that
        timestamp are dropped in the same write.
        """
        with self._lock:
            self._entries.pop(key, None)
            self._entries[key] = int(timestamp)
            if evict_before is not None:
                self._evict_locked(evict_before)
            snapshot = dict(self._entries)

        self._write(snapshot)

    def prune(self, evict_before: int) -> int:
        """Drop entries older than `evict_before`; returns how many were removed."""
        with self._lock:
            removed = self._evict_locked(evict_before)
            snapshot = dict(self._entries)

        if removed:
            self._write(snapshot)
            self.logger.debug(f"Evicted {removed} expired rate-limit entries")
        return removed

    def _evict_locked(self, evict_before: int) -> int:
        expired = [key for key, ts in self._entries.items() if ts < evict_before]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def _write(self, entries: Dict[str, int]) -> None:
        """Write to a temp file in the same directory, then rename into place."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.path.name}.", suffix=".tmp", dir=str(self.path.parent)
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    for key, timestamp in entries.items():
                        f.write(f"{key}:{timestamp}\n")
                os.replace(tmp_name, self.path)
            except BaseException:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise
        except OSError as e:
            self.logger.error(f"Failed to write rate-limit table {self.path}: {e}")
            raise RateTableError(str(e)) from e


def parse_record(line: str) -> Optional[Tuple[str, int]]:
    """Parse one `key:timestamp` record, or None if malformed."""
    line = line.strip()
    key, sep, value = line.rpartition(":")
    if not sep or not key:
        return None
    try:
        return key, int(value)
    except ValueError:
        return None
