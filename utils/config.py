"""
config.py

Configuration management for SSH Monitor.
Loads settings from config.yaml, a .env file and the process environment,
and freezes them into a MonitorSettings value that is passed to each component.
"""

import copy
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

import yaml
from dotenv import dotenv_values


class ConfigError(ValueError):
    """Raised when a configuration value is missing or malformed."""
    pass


DEFAULTS: Dict[str, Any] = {
    "telegram": {
        "bot_token": "",
        "chat_id": "",
        "topic_id": "",
        "api_url": "https://api.telegram.org",
        "timeout": 10,
    },
    "notifications": {
        "successful_logins": True,
        "failed_logins": True,
        "logouts": True,
        "root_logins": True,
        "startup_message": True,
    },
    "rate_limit": {
        "login_seconds": 10,
        "failed_seconds": 0,
        "logout_seconds": 60,
        "evict_expired": True,
    },
    "geolocation": {
        "enabled": True,
        "url": "http://ip-api.com/line/{ip}",
        "fields": "country,regionName,city,isp",
        "timeout": 5,
    },
    "sources": {
        "order": ["journal", "file"],
        "journal_units": ["ssh.service", "sshd.service"],
        "auth_log_paths": ["/var/log/auth.log", "/var/log/secure"],
    },
    "paths": {
        "log_file": "logs/ssh-monitor.log",
        "state_file": "/tmp/ssh-monitor-state",
        "rate_limit_file": "/tmp/ssh-monitor-rate",
    },
    "logging": {
        "level": "INFO",
        "console_output": True,
        "file_output": True,
        "max_log_size_mb": 10,
        "backup_count": 1,
    },
    "monitor": {
        "require_root": True,
        "dispatch_workers": 2,
        "max_pending_deliveries": 100,
    },
}

# Environment variable -> dot path. Names match the original .env layout.
ENV_OVERRIDES: Dict[str, str] = {
    "TELEGRAM_BOT_TOKEN": "telegram.bot_token",
    "TELEGRAM_CHAT_ID": "telegram.chat_id",
    "OPTIONAL_TOPIC_ID": "telegram.topic_id",
    "NOTIFY_SUCCESSFUL_LOGINS": "notifications.successful_logins",
    "NOTIFY_FAILED_LOGINS": "notifications.failed_logins",
    "NOTIFY_LOGOUTS": "notifications.logouts",
    "NOTIFY_ROOT_LOGINS": "notifications.root_logins",
    "RATE_LIMIT_LOGIN_SECONDS": "rate_limit.login_seconds",
    "RATE_LIMIT_FAILED_SECONDS": "rate_limit.failed_seconds",
    "RATE_LIMIT_LOGOUT_SECONDS": "rate_limit.logout_seconds",
}

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class TelegramSettings:
    bot_token: str
    chat_id: str
    topic_id: str
    api_url: str
    timeout: float

    @property
    def configured(self) -> bool:
        return bool(self.bot_token and self.chat_id)


@dataclass(frozen=True)
class NotificationSettings:
    successful_logins: bool
    failed_logins: bool
    logouts: bool
    root_logins: bool
    startup_message: bool


@dataclass(frozen=True)
class RateLimitPolicy:
    """Minimum seconds between notifications per event category. 0 means always."""
    login_seconds: int
    failed_seconds: int
    logout_seconds: int
    evict_expired: bool = True

    def threshold_for(self, category: str) -> int:
        if category == "login":
            return self.login_seconds
        if category == "failed":
            return self.failed_seconds
        if category == "logout":
            return self.logout_seconds
        return 0

    @property
    def longest(self) -> int:
        return max(self.login_seconds, self.failed_seconds, self.logout_seconds)


@dataclass(frozen=True)
class GeoSettings:
    enabled: bool
    url: str
    fields: str
    timeout: float


@dataclass(frozen=True)
class SourceSettings:
    order: Tuple[str, ...]
    journal_units: Tuple[str, ...]
    auth_log_paths: Tuple[str, ...]


@dataclass(frozen=True)
class PathSettings:
    log_file: Path
    state_file: Path
    rate_limit_file: Path


@dataclass(frozen=True)
class LoggingSettings:
    level: str
    console_output: bool
    file_output: bool
    max_log_size_mb: int
    backup_count: int


@dataclass(frozen=True)
class MonitorOptions:
    require_root: bool
    dispatch_workers: int
    max_pending_deliveries: int


@dataclass(frozen=True)
class MonitorSettings:
    """Effective configuration, built once at startup."""
    telegram: TelegramSettings
    notifications: NotificationSettings
    rate_limit: RateLimitPolicy
    geolocation: GeoSettings
    sources: SourceSettings
    paths: PathSettings
    logging: LoggingSettings
    monitor: MonitorOptions


class ConfigManager:
    """
    Loads layered configuration and provides dot-notation access.

    Precedence, lowest first: compiled-in defaults, config.yaml,
    the .env file, the process environment.
    """

    def __init__(
        self,
        config_path: Optional[str] = "config.yaml",
        env_file: Optional[str] = ".env",
        environ: Optional[Mapping[str, str]] = None,
    ) -> None:
        self._config: Dict[str, Any] = copy.deepcopy(DEFAULTS)
        self._load_config(config_path)
        self._apply_environment(env_file, os.environ if environ is None else environ)

    def _load_config(self, config_path: Optional[str]) -> None:
        """Merge config.yaml over the defaults, if the file exists."""
        if not config_path:
            return

        path = Path(config_path)
        if not path.exists():
            return

        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}")

        if not isinstance(data, dict):
            raise ConfigError(f"{path} must contain a mapping at the top level")

        _deep_merge(self._config, data)

    def _apply_environment(self, env_file: Optional[str], environ: Mapping[str, str]) -> None:
        values: Dict[str, Optional[str]] = {}
        if env_file and Path(env_file).exists():
            values.update(dotenv_values(env_file))
        values.update({k: v for k, v in environ.items() if k in ENV_OVERRIDES})

        for name, key_path in ENV_OVERRIDES.items():
            value = values.get(name)
            # empty assignments such as `OPTIONAL_TOPIC_ID=` mean unset
            if value is not None and value.strip() != "":
                self.set(key_path, value)

    def get(self, key_path: str, default: Any = None) -> Any:
        """
        Get a configuration value using dot notation.

        Example:
            config.get("telegram.chat_id")
            config.get("rate_limit.login_seconds")
        """
        keys = key_path.split(".")
        value = self._config

        try:
            for key in keys:
                value = value[key]
            return value
        except (KeyError, TypeError):
            return default

    def set(self, key_path: str, value: Any) -> None:
        keys = key_path.split(".")
        node = self._config
        for key in keys[:-1]:
            node = node.setdefault(key, {})
        node[keys[-1]] = value

    def get_all(self) -> Dict[str, Any]:
        """Return a copy of the merged configuration tree."""
        return copy.deepcopy(self._config)

    def to_settings(self) -> MonitorSettings:
        """Validate the merged tree and freeze it into MonitorSettings."""
        return MonitorSettings(
            telegram=TelegramSettings(
                bot_token=_as_str(self.get("telegram.bot_token")),
                chat_id=_as_str(self.get("telegram.chat_id")),
                topic_id=_as_str(self.get("telegram.topic_id")),
                api_url=_as_str(self.get("telegram.api_url")).rstrip("/"),
                timeout=_as_float("telegram.timeout", self.get("telegram.timeout")),
            ),
            notifications=NotificationSettings(
                successful_logins=_as_bool("notifications.successful_logins", self.get("notifications.successful_logins")),
                failed_logins=_as_bool("notifications.failed_logins", self.get("notifications.failed_logins")),
                logouts=_as_bool("notifications.logouts", self.get("notifications.logouts")),
                root_logins=_as_bool("notifications.root_logins", self.get("notifications.root_logins")),
                startup_message=_as_bool("notifications.startup_message", self.get("notifications.startup_message")),
            ),
            rate_limit=RateLimitPolicy(
                login_seconds=_as_count("rate_limit.login_seconds", self.get("rate_limit.login_seconds")),
                failed_seconds=_as_count("rate_limit.failed_seconds", self.get("rate_limit.failed_seconds")),
                logout_seconds=_as_count("rate_limit.logout_seconds", self.get("rate_limit.logout_seconds")),
                evict_expired=_as_bool("rate_limit.evict_expired", self.get("rate_limit.evict_expired")),
            ),
            geolocation=GeoSettings(
                enabled=_as_bool("geolocation.enabled", self.get("geolocation.enabled")),
                url=_as_str(self.get("geolocation.url")),
                fields=_as_str(self.get("geolocation.fields")),
                timeout=_as_float("geolocation.timeout", self.get("geolocation.timeout")),
            ),
            sources=SourceSettings(
                order=_as_tuple("sources.order", self.get("sources.order")),
                journal_units=_as_tuple("sources.journal_units", self.get("sources.journal_units")),
                auth_log_paths=_as_tuple("sources.auth_log_paths", self.get("sources.auth_log_paths")),
            ),
            paths=PathSettings(
                log_file=Path(_as_str(self.get("paths.log_file"))),
                state_file=Path(_as_str(self.get("paths.state_file"))),
                rate_limit_file=Path(_as_str(self.get("paths.rate_limit_file"))),
            ),
            logging=LoggingSettings(
                level=_as_str(self.get("logging.level")).upper() or "INFO",
                console_output=_as_bool("logging.console_output", self.get("logging.console_output")),
                file_output=_as_bool("logging.file_output", self.get("logging.file_output")),
                max_log_size_mb=_as_count("logging.max_log_size_mb", self.get("logging.max_log_size_mb")),
                backup_count=_as_count("logging.backup_count", self.get("logging.backup_count")),
            ),
            monitor=MonitorOptions(
                require_root=_as_bool("monitor.require_root", self.get("monitor.require_root")),
                dispatch_workers=_as_count("monitor.dispatch_workers", self.get("monitor.dispatch_workers")),
                max_pending_deliveries=_as_count(
                    "monitor.max_pending_deliveries", self.get("monitor.max_pending_deliveries")
                ),
            ),
        )


def load_settings(
    config_path: Optional[str] = "config.yaml",
    env_file: Optional[str] = ".env",
    environ: Optional[Mapping[str, str]] = None,
) -> MonitorSettings:
    """Build the effective MonitorSettings from all configuration layers."""
    return ConfigManager(config_path, env_file, environ).to_settings()


def _deep_merge(base: Dict[str, Any], override: Mapping[str, Any]) -> None:
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(base.get(key), dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value


def _as_str(value: Any) -> str:
    return "" if value is None else str(value).strip()


def _as_bool(name: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = _as_str(value).lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise ConfigError(f"{name} must be a boolean, got {value!r}")


def _as_count(name: str, value: Any) -> int:
    """Non-negative integer (thresholds, sizes, counts)."""
    if isinstance(value, bool):
        raise ConfigError(f"{name} must be an integer, got {value!r}")
    try:
        number = int(str(value).strip())
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be an integer, got {value!r}")
    if number < 0:
        raise ConfigError(f"{name} must not be negative, got {number}")
    return number


def _as_float(name: str, value: Any) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be a number, got {value!r}")
    if number <= 0:
        raise ConfigError(f"{name} must be positive, got {number}")
    return number


def _as_tuple(name: str, value: Any) -> Tuple[str, ...]:
    if isinstance(value, str):
        return tuple(part.strip() for part in value.split(",") if part.strip())
    if isinstance(value, (list, tuple)):
        return tuple(str(part) for part in value)
    raise ConfigError(f"{name} must be a list, got {value!r}")
