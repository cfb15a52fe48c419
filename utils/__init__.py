"""
utils package

Provides shared utilities like configuration management and logging.
"""

from utils.config import ConfigError, ConfigManager, MonitorSettings, load_settings
from utils.logger import SECURITY, SUCCESS, LoggerSetup, app_logger

__all__ = [
    "ConfigError",
    "ConfigManager",
    "MonitorSettings",
    "load_settings",
    "LoggerSetup",
    "app_logger",
    "SECURITY",
    "SUCCESS",
]
