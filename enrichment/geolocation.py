"""
geolocation.py

Resolves source IP addresses to a human-readable location string
using the ip-api.com line endpoint.
"""

import ipaddress
from dataclasses import dataclass
from typing import Optional

import requests

from utils import app_logger
from utils.config import GeoSettings

LOCAL_NETWORKS = [
    ipaddress.ip_network("10.0.0.0/8"),
    ipaddress.ip_network("172.16.0.0/12"),
    ipaddress.ip_network("192.168.0.0/16"),
    ipaddress.ip_network("127.0.0.0/8"),
    ipaddress.ip_network("::1/128"),
]

LOCAL_MARKER = "🏠 Local Network"
FAIL_SENTINEL = "fail"


@dataclass(frozen=True)
class GeoInfo:
    """Display string for an IP; `source` is one of local, resolved, fallback."""
    display: str
    source: str

    def __str__(self) -> str:
        return self.display

    @classmethod
    def local(cls) -> "GeoInfo":
        return cls(LOCAL_MARKER, "local")

    @classmethod
    def resolved(cls, location: str) -> "GeoInfo":
        return cls(f"🌍 {location}", "resolved")

    @classmethod
    def fallback(cls, ip: str) -> "GeoInfo":
        return cls(f"🌐 External IP: {ip}", "fallback")


def is_local_address(ip: str) -> bool:
    """True for private/loopback ranges and the literal `localhost`."""
    if ip == "localhost":
        return True
    try:
        address = ipaddress.ip_address(ip)
    except ValueError:
        return False
    if address.version == 6 and address.ipv4_mapped:
        address = address.ipv4_mapped
    return any(address in network for network in LOCAL_NETWORKS if address.version == network.version)


def _is_lookup_candidate(ip: str) -> bool:
    if not ip or ip == "unknown":
        return False
    try:
        ipaddress.ip_address(ip)
    except ValueError:
        return False
    return True


class GeoResolver:
    """
    Maps an IP address to a GeoInfo. Never raises.
    """

    def __init__(self, settings: GeoSettings, session: Optional[requests.Session] = None) -> None:
        self.settings = settings
        self.session = session or requests.Session()
        self.logger = app_logger

    def resolve(self, ip: str) -> GeoInfo:
        """
        Resolve `ip` to a display string.

        Private addresses short-circuit without a network call. Any
        failure of the lookup degrades to the raw-IP fallback marker.
        """
        if is_local_address(ip):
            return GeoInfo.local()

        if not self.settings.enabled or not _is_lookup_candidate(ip):
            return GeoInfo.fallback(ip)

        location = self._lookup(ip)
        if location:
            return GeoInfo.resolved(location)
        return GeoInfo.fallback(ip)

    def _lookup(self, ip: str) -> Optional[str]:
        url = self.settings.url.format(ip=ip)
        try:
            response = self.session.get(
                url,
                params={"fields": self.settings.fields},
                timeout=self.settings.timeout,
            )
        except requests.exceptions.Timeout:
            self.logger.warning(f"Geolocation lookup timed out for {ip}")
            return None
        except requests.exceptions.RequestException as e:
            self.logger.warning(f"Geolocation lookup failed for {ip}: {e}")
            return None

        if response.status_code != 200:
            self.logger.warning(f"Geolocation service returned HTTP {response.status_code} for {ip}")
            return None

        lines = [part.strip() for part in response.text.splitlines() if part.strip()]
        if not lines or lines[0] == FAIL_SENTINEL:
            self.logger.debug(f"Geolocation service has no data for {ip}")
            return None

        return ", ".join(lines)
