"""
rate_limiter.py

Per (IP, event key) notification rate limiting with root bypass.
"""

import threading
import time
from typing import Callable, Optional

from parser.events import SshEvent
from storage.rate_table import RateLimitTable, RateTableError
from utils import app_logger
from utils.config import RateLimitPolicy

# Categories where a root user bypasses the policy.
ROOT_BYPASS_CATEGORIES = ("login", "failed")


class RateLimiter:
    """
    Decides whether a notification should fire now.

    The decision and the table update happen under one lock, so the
    limiter is the single writer of its table.
    """

    def __init__(
        self,
        policy: RateLimitPolicy,
        table: RateLimitTable,
        root_bypass: bool = True,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self.policy = policy
        self.table = table
        self.root_bypass = root_bypass
        self.clock = clock or time.time
        self.logger = app_logger
        self._lock = threading.Lock()

    def should_notify(self, ip: str, category: str, user: str, is_root: bool) -> bool:
        """
        Args:
            ip: Source IP of the event (may be empty or "unknown").
            category: One of "login", "failed", "logout".
            user: User the event refers to; part of the table key.
            is_root: Whether the event concerns the root account.

        Returns:
            True if a notification should be sent. When the decision
            consumes the window, the table is updated with the current time.
        """
        if self.root_bypass and is_root and category in ROOT_BYPASS_CATEGORIES:
            self.logger.debug(f"Root bypass for {category}_{user} from {ip}")
            return True

        threshold = self.policy.threshold_for(category)
        if threshold == 0:
            return True

        key = f"{ip}_{category}_{user}"

        with self._lock:
            now = int(self.clock())
            last = self.table.get(key)
            elapsed = now - last

            if elapsed < threshold:
                self.logger.debug(
                    f"Rate limited {key}: {elapsed}s since last notification (limit {threshold}s)"
                )
                return False

            try:
                self.table.upsert(key, now, evict_before=self._evict_before(now))
            except RateTableError as e:
                # In-memory entry is already updated; only persistence failed.
                self.logger.warning(f"Rate-limit state for {key} not persisted: {e}")

        return True

    def should_notify_event(self, event: SshEvent) -> bool:
        return self.should_notify(event.source_ip, event.category, event.user, event.is_root)

    def evict_expired(self) -> int:
        """Drop entries that can no longer suppress a notification."""
        with self._lock:
            cutoff = self._evict_before(int(self.clock()))
            if cutoff is None:
                return 0
            return self.table.prune(cutoff)

    def _evict_before(self, now: int) -> Optional[int]:
        if not self.policy.evict_expired or self.policy.longest == 0:
            return None
        return now - self.policy.longest
