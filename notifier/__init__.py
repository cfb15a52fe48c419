"""
notifier package

Chat notification delivery and message formatting.
"""

from notifier.messages import format_event, format_startup
from notifier.telegram import TelegramNotifier

__all__ = ["TelegramNotifier", "format_event", "format_startup"]
