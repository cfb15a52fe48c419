"""
main.py

SSH Monitor daemon: follows sshd logs, rate-limits and geolocates
connection events, and alerts a Telegram chat.
"""

import argparse
import os
import signal
import socket
import sys
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import List, Optional

from colorama import Fore, Style
from tabulate import tabulate

from analyzer.rate_limiter import RateLimiter
from enrichment.geolocation import GeoResolver
from monitor import __version__
from monitor.pipeline import EventPipeline
from notifier import TelegramNotifier, format_startup
from parser.classifier import LineClassifier
from storage.pid_file import RuntimeMarker
from storage.rate_table import RateLimitTable, RateTableError
from stream.driver import LogSourceError, NoLogSourceError, StreamDriver
from stream.sources import build_sources
from utils import ConfigError, LoggerSetup, MonitorSettings, app_logger, load_settings


class ShutdownRequested(Exception):
    """Raised from the signal handler to unwind the follow loop."""
    pass


def _handle_signal(signum, frame) -> None:
    raise ShutdownRequested(signal.Signals(signum).name)


def setup_argument_parser() -> argparse.ArgumentParser:
    """Configure command-line argument parser."""
    parser = argparse.ArgumentParser(
        description="SSH Monitor - real-time SSH connection alerts to Telegram",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  sudo %(prog)s                               # Follow journald (or auth.log) and alert
  sudo %(prog)s --source file                 # Force tailing the auth log file
  sudo %(prog)s --dry-run -v                  # Log alerts instead of sending them
  %(prog)s --test-notification                # Check Telegram credentials
  %(prog)s --show-config                      # Print the effective configuration
  %(prog)s --show-rate-table                  # Print the persisted rate-limit table
        """
    )

    parser.add_argument(
        "-c", "--config",
        type=str,
        default="config.yaml",
        help="Path to the YAML configuration file (default: config.yaml)"
    )

    parser.add_argument(
        "--env-file",
        type=str,
        default=".env",
        help="Path to a .env file with Telegram credentials (default: .env)"
    )

    parser.add_argument(
        "--source",
        type=str,
        default="auto",
        choices=["auto", "journal", "file"],
        help="Log source to follow (default: auto, journal then file)"
    )

    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Log notifications instead of sending them"
    )

    parser.add_argument(
        "--show-config",
        action="store_true",
        help="Print the effective configuration and exit"
    )

    parser.add_argument(
        "--show-rate-table",
        action="store_true",
        help="Print the persisted rate-limit table and exit"
    )

    parser.add_argument(
        "--test-notification",
        action="store_true",
        help="Send a test message to the configured chat and exit"
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose output"
    )

    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Suppress non-essential output"
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}"
    )

    return parser


def print_header(title: str, quiet: bool = False) -> None:
    """Print a formatted section header with color."""
    if not quiet:
        print(f"\n{Fore.CYAN}{'=' * 60}")
        print(f"{title}")
        print(f"{'=' * 60}{Style.RESET_ALL}")


def print_error(message: str) -> None:
    print(f"{Fore.RED}[ERROR]{Style.RESET_ALL} {message}", file=sys.stderr)


def _mask(secret: str) -> str:
    if not secret:
        return "(not set)"
    return secret[:4] + "…" if len(secret) > 8 else "****"


def settings_rows(settings: MonitorSettings) -> List[List[str]]:
    """Flatten the effective settings into (setting, value) rows."""
    tg = settings.telegram
    notify = settings.notifications
    limits = settings.rate_limit
    return [
        ["telegram.bot_token", _mask(tg.bot_token)],
        ["telegram.chat_id", tg.chat_id or "(not set)"],
        ["telegram.topic_id", tg.topic_id or "(none)"],
        ["notifications.successful_logins", notify.successful_logins],
        ["notifications.failed_logins", notify.failed_logins],
        ["notifications.logouts", notify.logouts],
        ["notifications.root_logins", notify.root_logins],
        ["rate_limit.login_seconds", limits.login_seconds],
        ["rate_limit.failed_seconds", limits.failed_seconds or "0 (no limit)"],
        ["rate_limit.logout_seconds", limits.logout_seconds],
        ["rate_limit.evict_expired", limits.evict_expired],
        ["geolocation.enabled", settings.geolocation.enabled],
        ["sources.order", ", ".join(settings.sources.order)],
        ["paths.log_file", settings.paths.log_file],
        ["paths.state_file", settings.paths.state_file],
        ["paths.rate_limit_file", settings.paths.rate_limit_file],
        ["monitor.dispatch_workers", settings.monitor.dispatch_workers],
        ["monitor.max_pending_deliveries", settings.monitor.max_pending_deliveries],
    ]


def show_rate_table(settings: MonitorSettings) -> int:
    table = RateLimitTable(settings.paths.rate_limit_file)
    try:
        table.load()
    except RateTableError as e:
        print_error(f"Cannot read rate-limit table: {e}")
        return 1

    now = datetime.now().timestamp()
    rows = []
    for key, timestamp in sorted(table.entries().items(), key=lambda item: item[1], reverse=True):
        ip, _, event_key = key.partition("_")
        rows.append([
            ip,
            event_key,
            datetime.fromtimestamp(timestamp).strftime("%Y-%m-%d %H:%M:%S"),
            f"{int(now - timestamp)}s",
        ])

    print_header(f"Rate-limit table: {settings.paths.rate_limit_file}")
    if not rows:
        print("No entries.")
    else:
        print(tabulate(rows, headers=["Source IP", "Event", "Last notified", "Age"], tablefmt="grid"))
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main execution function."""
    parser = setup_argument_parser()
    args = parser.parse_args(argv)
    quiet = args.quiet

    try:
        settings = load_settings(args.config, args.env_file)
    except ConfigError as e:
        print_error(f"Invalid configuration: {e}")
        return 1

    if args.show_config:
        print_header("SSH Monitor configuration")
        print(tabulate(settings_rows(settings), headers=["Setting", "Value"], tablefmt="grid"))
        return 0

    if args.show_rate_table:
        return show_rate_table(settings)

    if settings.monitor.require_root and not args.test_notification and os.geteuid() != 0:
        print_error("This program requires root privileges to read SSH logs!")
        print_error(f"Please run as root: sudo {parser.prog}")
        return 1

    LoggerSetup.setup(settings.logging, settings.paths.log_file)
    if args.verbose:
        LoggerSetup.set_level("DEBUG")
    elif args.quiet:
        LoggerSetup.set_level("WARNING")

    notifier = TelegramNotifier(settings.telegram, dry_run=args.dry_run)

    if args.test_notification:
        ok = notifier.send(f"✅ SSH Monitor v{__version__} test notification from {socket.gethostname()}")
        if ok:
            app_logger.info("Test notification delivered")
        return 0 if ok else 1

    # Source selection: evaluated once, before any runtime state is written
    try:
        sources = build_sources(settings.sources, only=None if args.source == "auto" else args.source)
        driver = StreamDriver(sources)
        source = driver.select()
    except ConfigError as e:
        print_error(f"Invalid configuration: {e}")
        return 1
    except NoLogSourceError as e:
        app_logger.error(f"Neither journalctl nor an auth log file is available for monitoring! ({e})")
        return 1

    table = RateLimitTable(settings.paths.rate_limit_file)
    limiter = RateLimiter(
        settings.rate_limit,
        table,
        root_bypass=settings.notifications.root_logins,
    )
    try:
        table.load()
        limiter.evict_expired()
    except RateTableError as e:
        app_logger.warning(f"Starting with an empty rate-limit table: {e}")

    executor = None
    if settings.monitor.dispatch_workers > 0:
        executor = ThreadPoolExecutor(
            max_workers=settings.monitor.dispatch_workers,
            thread_name_prefix="notify",
        )

    pipeline = EventPipeline(
        settings.notifications,
        classifier=LineClassifier(),
        limiter=limiter,
        resolver=GeoResolver(settings.geolocation),
        notifier=notifier,
        executor=executor,
        max_pending=settings.monitor.max_pending_deliveries,
    )

    marker = RuntimeMarker(settings.paths.state_file)
    marker.write()

    previous_handlers = {
        signum: signal.signal(signum, _handle_signal) for signum in (signal.SIGTERM, signal.SIGINT)
    }

    app_logger.info(f"SSH Monitor v{__version__} started")
    app_logger.info(f"Monitoring SSH connections... (PID: {os.getpid()})")

    if not quiet:
        print_header(f"SSH Monitor v{__version__}")
        print(f"{Fore.GREEN}[+]{Style.RESET_ALL} Source       : {Fore.YELLOW}{source.description}{Style.RESET_ALL}")
        print(f"{Fore.GREEN}[+]{Style.RESET_ALL} Rate entries : {len(table)}")
        print(f"{Fore.GREEN}[+]{Style.RESET_ALL} Dry run      : {args.dry_run}\n")

    exit_code = 0
    try:
        if settings.notifications.startup_message:
            notifier.send(format_startup(settings, __version__, source.description))

        app_logger.info("Starting real-time SSH log monitoring...")
        pipeline.run(driver.lines())

    except (KeyboardInterrupt, ShutdownRequested) as e:
        app_logger.debug(f"Shutdown requested ({e or 'SIGINT'})")

    except LogSourceError as e:
        app_logger.error(str(e))
        exit_code = 1

    finally:
        for signum, handler in previous_handlers.items():
            signal.signal(signum, signal.SIG_DFL if handler is None else handler)
        driver.stop()
        if executor is not None:
            executor.shutdown(wait=False, cancel_futures=True)
        stats = pipeline.stats
        app_logger.info(
            f"Processed {stats.lines} lines: {stats.events} events, {stats.notified} notified, "
            f"{stats.suppressed} rate limited, {stats.delivery_failures} failed deliveries"
        )
        app_logger.info("SSH monitor stopped")
        marker.remove()

    return exit_code


def run() -> None:
    """Console script entry point."""
    sys.exit(main())


if __name__ == "__main__":
    run()
