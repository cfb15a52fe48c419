"""
messages.py

Builds the human-readable notification bodies sent to the chat.
"""

from typing import List

from enrichment.geolocation import GeoInfo
from parser.events import AuthMethod, EventKind, SshEvent
from utils.config import MonitorSettings

ROOT_ANNOTATION = "🚨 ROOT LOGIN - High Priority!"
REGULAR_ANNOTATION = "ℹ️ Regular user login"
THREAT_ANNOTATION = "⚠️ Potential security threat detected!"


def format_login(event: SshEvent, geo: GeoInfo) -> str:
    icon = "⚠️" if event.is_root else "🔐"
    method = (event.auth_method or AuthMethod.PASSWORD).value
    annotation = ROOT_ANNOTATION if event.is_root else REGULAR_ANNOTATION

    return "\n".join([
        f"{icon} SSH Login Detected",
        "",
        f"👤 User: {event.user}",
        f"🖥️ Server: {event.hostname}",
        f"📍 From: {event.source_ip}",
        str(geo),
        f"🔑 Method: {method}",
        f"⏰ Time: {event.timestamp}",
        "",
        annotation,
    ])


def format_failed(event: SshEvent, geo: GeoInfo) -> str:
    return "\n".join([
        "🚨 SSH Failed Login Attempt",
        "",
        f"👤 User: {event.user}",
        f"🖥️ Server: {event.hostname}",
        f"📍 From: {event.source_ip}",
        str(geo),
        f"⏰ Time: {event.timestamp}",
        "",
        THREAT_ANNOTATION,
    ])


def format_logout(event: SshEvent, geo: GeoInfo) -> str:
    return "\n".join([
        "🔓 SSH Session Ended",
        "",
        f"👤 User: {event.user}",
        f"🖥️ Server: {event.hostname}",
        f"📍 From: {event.source_ip}",
        str(geo),
        f"⏰ Time: {event.timestamp}",
    ])


FORMATTERS = {
    EventKind.LOGIN_SUCCESS: format_login,
    EventKind.LOGIN_FAILED: format_failed,
    EventKind.LOGOUT: format_logout,
}


def format_event(event: SshEvent, geo: GeoInfo) -> str:
    """Render the notification text for any classified event."""
    return FORMATTERS[event.kind](event, geo)


def format_startup(settings: MonitorSettings, version: str, log_source: str) -> str:
    """Startup announcement listing enabled notifications and rate limits."""
    notify = settings.notifications
    limits = settings.rate_limit

    enabled: List[str] = []
    if notify.successful_logins:
        enabled.append("• ✅ Successful logins")
    if notify.failed_logins:
        if limits.failed_seconds == 0:
            enabled.append("• ❌ Failed login attempts (NO rate limit)")
        else:
            enabled.append("• ❌ Failed login attempts")
    if notify.logouts:
        enabled.append("• 🔓 Session logouts")
    if notify.root_logins:
        enabled.append("• ⚠️ Root logins (high priority)")

    failed_limit = "No limit (all logged)" if limits.failed_seconds == 0 else f"{limits.failed_seconds}s"

    return "\n".join([
        f"🔍 SSH Monitor v{version} started",
        "",
        "🛡️ Now monitoring SSH connections",
        f"📡 Source: {log_source}",
        "🔔 Notifications enabled for:",
        *(enabled or ["• (none)"]),
        "",
        "📊 Rate limits:",
        f"• ✅ Successful logins: {limits.login_seconds}s",
        f"• ❌ Failed attempts: {failed_limit}",
        f"• 🔓 Logouts: {limits.logout_seconds}s",
        f"📝 Logs: {settings.paths.log_file}",
    ])
