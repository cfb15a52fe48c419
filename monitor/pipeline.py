"""
pipeline.py

Classify -> rate-limit gate -> geolocate -> notify, one line at a time.
"""

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Iterable, Optional

from analyzer.rate_limiter import RateLimiter
from enrichment.geolocation import GeoResolver
from notifier.messages import format_event
from notifier.telegram import TelegramNotifier
from parser.classifier import LineClassifier
from parser.events import AuthMethod, EventKind, SshEvent
from utils import SECURITY, app_logger
from utils.config import NotificationSettings


@dataclass
class PipelineStats:
    lines: int = 0
    events: int = 0
    suppressed: int = 0
    notified: int = 0
    delivery_failures: int = 0


class EventPipeline:
    """
    Processes raw lines strictly in arrival order.

    The should-notify decision always runs on the calling thread. With an
    executor, geolocation and delivery of approved events run on its
    workers so a slow lookup does not hold up the next line. At most
    `max_pending` approved events wait for a worker at a time; beyond that
    the delivery is dropped and counted as a failure.
    """

    def __init__(
        self,
        notifications: NotificationSettings,
        classifier: LineClassifier,
        limiter: RateLimiter,
        resolver: GeoResolver,
        notifier: TelegramNotifier,
        executor: Optional[ThreadPoolExecutor] = None,
        max_pending: int = 100,
    ) -> None:
        self.notifications = notifications
        self.classifier = classifier
        self.limiter = limiter
        self.resolver = resolver
        self.notifier = notifier
        self.executor = executor
        self.stats = PipelineStats()
        self._stats_lock = threading.Lock()
        self._pending = threading.BoundedSemaphore(max_pending) if max_pending > 0 else None
        self.logger = app_logger

    def process_line(self, line: str) -> Optional[SshEvent]:
        """
        Run one line through the pipeline.

        Returns:
            The classified event, or None when the line is not relevant.
        """
        self.stats.lines += 1

        event = self.classifier.classify(line)
        if event is None:
            return None

        self.stats.events += 1
        self._log_event(event)

        if not self._notifications_enabled(event.kind):
            return event

        if not self.limiter.should_notify_event(event):
            self.stats.suppressed += 1
            return event

        if self.executor is not None:
            self._submit(event)
        else:
            self.deliver(event)

        return event

    def run(self, lines: Iterable[str]) -> None:
        for line in lines:
            self.process_line(line)

    def deliver(self, event: SshEvent) -> bool:
        """Geolocate the source IP, format the message and send it."""
        geo = self.resolver.resolve(event.source_ip)
        message = format_event(event, geo)

        if self.notifier.send(message):
            self._count("notified")
            return True

        self._count("delivery_failures")
        self.logger.warning(f"Notification for {_describe(event)} not delivered")
        return False

    def _submit(self, event: SshEvent) -> None:
        if self._pending is not None and not self._pending.acquire(blocking=False):
            self._count("delivery_failures")
            self.logger.warning(f"Delivery backlog full, dropping notification for {_describe(event)}")
            return

        future = self.executor.submit(self.deliver, event)
        future.add_done_callback(self._delivery_done)

    def _delivery_done(self, future: Future) -> None:
        if self._pending is not None:
            self._pending.release()
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            self._count("delivery_failures")
            self.logger.error(f"Notification delivery failed unexpectedly: {error!r}")

    def _count(self, field: str) -> None:
        with self._stats_lock:
            setattr(self.stats, field, getattr(self.stats, field) + 1)

    def _notifications_enabled(self, kind: EventKind) -> bool:
        if kind is EventKind.LOGIN_SUCCESS:
            return self.notifications.successful_logins
        if kind is EventKind.LOGIN_FAILED:
            return self.notifications.failed_logins
        return self.notifications.logouts

    def _log_event(self, event: SshEvent) -> None:
        if event.kind is EventKind.LOGIN_SUCCESS:
            method = (event.auth_method or AuthMethod.PASSWORD).value
            self.logger.log(SECURITY, f"SSH login: {event.user} from {event.source_ip} using {method}")
        elif event.kind is EventKind.LOGIN_FAILED:
            self.logger.log(SECURITY, f"SSH failed login: {event.user} from {event.source_ip}")
        else:
            self.logger.info(f"SSH logout: {event.user} from {event.source_ip}")


def _describe(event: SshEvent) -> str:
    return f"{event.kind.value} ({event.user or '?'} from {event.source_ip or '?'})"
