"""
events.py

Defines normalized SSH event structures used across the project.
Events represent security-relevant SSH connection activity,
not raw log text.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class LogFormat(str, Enum):
    JOURNAL = "journal"   # journalctl -o short-iso
    SYSLOG = "syslog"     # "Jan 30 10:15:23 host ..."


class EventKind(str, Enum):
    LOGIN_SUCCESS = "login_success"
    LOGIN_FAILED = "login_failed"
    LOGOUT = "logout"

    @property
    def category(self) -> str:
        """Rate-limit category used as the event key prefix."""
        return _CATEGORIES[self]


_CATEGORIES = {
    EventKind.LOGIN_SUCCESS: "login",
    EventKind.LOGIN_FAILED: "failed",
    EventKind.LOGOUT: "logout",
}


class AuthMethod(str, Enum):
    PASSWORD = "password"
    KEY = "SSH key"


@dataclass
class LogLine:
    """
    One raw line read from a log source.
    """
    text: str
    log_format: LogFormat


@dataclass
class SshEvent:
    """
    A classified SSH event derived from a single log line.
    """
    kind: EventKind
    user: str
    source_ip: str
    hostname: str
    timestamp: str
    auth_method: Optional[AuthMethod] = None
    raw: str = ""

    @property
    def is_root(self) -> bool:
        return self.user == "root"

    @property
    def category(self) -> str:
        return self.kind.category

    @property
    def event_key(self) -> str:
        """e.g. `login_alice`, `failed_bob`, `logout_alice`."""
        return f"{self.category}_{self.user}"
