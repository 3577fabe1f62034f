"""URL validation for extraction and download targets: prevents SSRF attacks."""

from __future__ import annotations

import asyncio
import ipaddress
import socket
from urllib.parse import urlparse

_ALLOWED_SCHEMES = {"http", "https"}


def is_private_ip(ip_str: str) -> bool:
    """Check if an IP address is anything other than globally routable."""
    try:
        addr = ipaddress.ip_address(ip_str.split("%", 1)[0])
    except ValueError:
        return True  # Invalid IP → reject
    return not addr.is_global


async def validate_url(url: str) -> bool:
    """Validate a target URL.

    Returns True if the URL uses http/https and every address its host
    resolves to is public. Returns False otherwise, including when the
    host does not resolve.
    """
    try:
        parsed = urlparse(url)
        if parsed.scheme.lower() not in _ALLOWED_SCHEMES:
            return False
        if not parsed.hostname:
            return False

        loop = asyncio.get_running_loop()
        infos = await loop.getaddrinfo(parsed.hostname, None)
        if not infos:
            return False
        return not any(is_private_ip(str(info[4][0])) for info in infos)
    except (socket.gaierror, ValueError, OSError, UnicodeError):
        return False
