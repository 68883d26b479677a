"""Request utility functions for handling common request operations."""

import ipaddress
import logging
from dataclasses import dataclass

from fastapi import Request

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeviceContext:
    """Client-supplied device metadata for the current request.

    Every field is best-effort and spoofable; it drives device trust and
    session display, never an authentication decision on its own.
    """

    device_id: str | None = None
    ip: str | None = None
    user_agent: str | None = None
    device_type: str | None = None
    platform: str | None = None
    browser: str | None = None
    country: str | None = None
    city: str | None = None
    latitude: float | None = None
    longitude: float | None = None


def _is_valid_ip(ip_str: str) -> bool:
    """Check if a string is a valid IP address."""
    try:
        ipaddress.ip_address(ip_str)
        return True
    except ValueError:
        return False


def get_client_ip(request: Request) -> str | None:
    """Get the client IP address from a request.

    X-Real-IP is only honoured when the direct peer is localhost (a local
    reverse proxy). X-Forwarded-For is NOT trusted as it can be easily spoofed.
    """
    if request.client and request.client.host in ("127.0.0.1", "::1", "localhost"):
        real_ip = request.headers.get("X-Real-IP")
        if real_ip:
            ip = real_ip.strip()
            if _is_valid_ip(ip):
                return ip
            else:
                logger.warning(f"Invalid X-Real-IP: {real_ip}")

    if request.client:
        return request.client.host

    return None


def get_bearer_token(request: Request) -> str | None:
    """Extract the token from an ``Authorization: Bearer <token>`` header."""
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None
    token = auth_header[7:].strip()
    # Some clients send the literal string "null" when they have no token
    if not token or token == "null":
        return None
    return token


def _header(request: Request, name: str, max_length: int = 255) -> str | None:
    value = request.headers.get(name)
    if value is None:
        return None
    value = value.strip()
    return value[:max_length] or None


def _float_header(request: Request, name: str) -> float | None:
    value = _header(request, name, 32)
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def get_device_context(request: Request) -> DeviceContext:
    """Build a DeviceContext from the X-Device-* and geo hint headers."""
    return DeviceContext(
        device_id=_header(request, "X-Device-Id"),
        ip=get_client_ip(request),
        user_agent=_header(request, "User-Agent", 1024),
        device_type=_header(request, "X-Device-Type"),
        platform=_header(request, "X-Platform"),
        browser=_header(request, "X-Browser"),
        country=_header(request, "X-Country", 100),
        city=_header(request, "X-City", 100),
        latitude=_float_header(request, "X-Latitude"),
        longitude=_float_header(request, "X-Longitude"),
    )
