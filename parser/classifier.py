"""
classifier.py

Turns raw sshd log lines (journalctl short-iso or traditional syslog)
into structured SshEvent objects.
"""

import re
from typing import List, NamedTuple, Optional, Pattern, Tuple

from parser.events import AuthMethod, EventKind, LogFormat, LogLine, SshEvent
from utils import app_logger


# 2024-05-01T10:15:23+0000, 2024-05-01T10:15:23.123456+02:00, 2024-05-01T10:15:23Z
ISO_TIMESTAMP_RE = re.compile(r"^\S*T\S*(?:Z|[+-]\d{2}:?\d{2})$")

# Token after "from ", also the "Disconnected from user <name> <ip>" shape.
SOURCE_IP_RE = re.compile(
    r"\bfrom\s+(?:user\s+\S+\s+)?"
    r"(?P<ip>(?:\d{1,3}\.){3}\d{1,3}|[0-9a-fA-F]*:[0-9a-fA-F:.]+)"
)


class ClassificationRule(NamedTuple):
    kind: EventKind
    trigger: Pattern[str]
    user: Pattern[str]
    default: str


# Order matters: first matching rule wins.
RULES: List[ClassificationRule] = [
    ClassificationRule(
        kind=EventKind.LOGIN_SUCCESS,
        trigger=re.compile(r"Accepted (?:password|publickey)"),
        user=re.compile(r"\bfor\s+(?P<user>\S+)"),
        default="",
    ),
    ClassificationRule(
        kind=EventKind.LOGIN_FAILED,
        trigger=re.compile(r"Failed (?:password|publickey)|Invalid user"),
        user=re.compile(r"(?:\bfor\s+(?:invalid\s+user\s+)?|\buser\s+)(?P<user>\S+)"),
        default="",
    ),
    ClassificationRule(
        kind=EventKind.LOGOUT,
        trigger=re.compile(r"session closed|Disconnected from user"),
        user=re.compile(r"\buser\s+(?P<user>\S+)"),
        default="unknown",
    ),
]


def detect_format(text: str) -> LogFormat:
    """Journal style when the first field is an ISO-8601 timestamp with a zone."""
    fields = text.split(None, 1)
    if fields and ISO_TIMESTAMP_RE.match(fields[0]):
        return LogFormat.JOURNAL
    return LogFormat.SYSLOG


def to_log_line(text: str) -> LogLine:
    text = text.strip()
    return LogLine(text=text, log_format=detect_format(text))


def split_header(line: LogLine) -> Tuple[str, str]:
    """
    Extract (timestamp, hostname) from the leading fields of a line.

    The timestamp keeps the source's own format; it is never parsed
    into a datetime.
    """
    fields = line.text.split()

    if line.log_format is LogFormat.JOURNAL:
        timestamp = fields[0].replace("T", " ", 1)
        hostname = fields[1] if len(fields) > 1 else ""
    else:
        timestamp = " ".join(fields[:3])
        hostname = fields[3] if len(fields) > 3 else ""

    return timestamp, hostname.rstrip(":")


class LineClassifier:
    """
    Classifies sshd log lines into login, failed-login and logout events.
    """

    def __init__(self, rules: Optional[List[ClassificationRule]] = None):
        self.rules = rules if rules is not None else RULES
        self.logger = app_logger

    def classify(self, text: str) -> Optional[SshEvent]:
        """
        Classify one raw log line.

        Args:
            text: Raw line as read from journalctl or the auth log.

        Returns:
            SshEvent for the first matching rule, or None when the line
            is not an SSH connection event.
        """
        if not text or not text.strip():
            return None

        line = to_log_line(text)

        rule = self._match_rule(line.text)
        if rule is None:
            return None

        timestamp, hostname = split_header(line)

        user_match = rule.user.search(line.text)
        ip_match = SOURCE_IP_RE.search(line.text)

        auth_method = None
        if rule.kind is EventKind.LOGIN_SUCCESS:
            auth_method = AuthMethod.KEY if "publickey" in line.text else AuthMethod.PASSWORD

        event = SshEvent(
            kind=rule.kind,
            user=user_match.group("user") if user_match else rule.default,
            source_ip=ip_match.group("ip") if ip_match else rule.default,
            hostname=hostname,
            timestamp=timestamp,
            auth_method=auth_method,
            raw=line.text,
        )

        self.logger.debug(
            f"Classified {event.kind.value}: user={event.user!r} ip={event.source_ip!r} "
            f"format={line.log_format.value}"
        )
        return event

    def _match_rule(self, text: str) -> Optional[ClassificationRule]:
        for rule in self.rules:
            if rule.trigger.search(text):
                return rule
        return None


_default_classifier = LineClassifier()


def classify(text: str) -> Optional[SshEvent]:
    """Classify a line with the default rule set."""
    return _default_classifier.classify(text)
