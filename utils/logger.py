"""
logger.py

Centralized logging configuration for SSH Monitor.
Colored console output plus a size-rotated activity log file.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler

from colorama import Fore, Style, init as colorama_init

from utils.config import LoggingSettings

# Extra levels used by the monitor, between INFO (20) and WARNING (30).
SUCCESS = 22
SECURITY = 25

logging.addLevelName(SUCCESS, "SUCCESS")
logging.addLevelName(SECURITY, "SECURITY")

LEVEL_COLORS = {
    "DEBUG": Fore.WHITE,
    "INFO": Fore.BLUE,
    "SUCCESS": Fore.GREEN,
    "SECURITY": Fore.MAGENTA,
    "WARNING": Fore.YELLOW,
    "ERROR": Fore.RED,
    "CRITICAL": Fore.RED + Style.BRIGHT,
}


class ColorFormatter(logging.Formatter):
    """Console formatter: `[LEVEL] message` with the level tag colored."""

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        color = LEVEL_COLORS.get(record.levelname, "")
        return f"{color}[{record.levelname}]{Style.RESET_ALL} {message}"


class LoggerSetup:
    """
    Configures application-wide logging with both console and file output.
    """

    _initialized = False

    @classmethod
    def setup(cls, settings: LoggingSettings, log_file=None) -> logging.Logger:
        """
        Attach handlers to the main application logger.
        Only configures once, subsequent calls return existing logger.
        """
        logger = logging.getLogger("SSHMonitor")

        if cls._initialized:
            return logger

        numeric_level = getattr(logging, settings.level.upper(), logging.INFO)
        logger.setLevel(numeric_level)

        if settings.console_output:
            colorama_init()
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setLevel(numeric_level)
            console_handler.setFormatter(ColorFormatter("%(message)s"))
            logger.addHandler(console_handler)

        # Single-generation rollover by default: ssh-monitor.log -> ssh-monitor.log.1
        if settings.file_output and log_file is not None:
            log_file.parent.mkdir(parents=True, exist_ok=True)

            file_handler = RotatingFileHandler(
                log_file,
                maxBytes=settings.max_log_size_mb * 1024 * 1024,
                backupCount=settings.backup_count,
                encoding="utf-8"
            )
            file_handler.setLevel(numeric_level)
            file_handler.setFormatter(logging.Formatter(
                fmt="[%(asctime)s] [%(levelname)s] %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S"
            ))
            logger.addHandler(file_handler)

        cls._initialized = True
        logger.debug("Logging system initialized")

        return logger

    @classmethod
    def set_level(cls, level: str) -> None:
        """Change the level of the logger and every attached handler."""
        logger = logging.getLogger("SSHMonitor")
        numeric_level = getattr(logging, level.upper(), logging.INFO)
        logger.setLevel(numeric_level)
        for handler in logger.handlers:
            handler.setLevel(numeric_level)


# Global logger instance, handlers are attached by LoggerSetup.setup()
app_logger = logging.getLogger("SSHMonitor")
