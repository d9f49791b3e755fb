"""
URL Security Validator

Provides SSRF (Server-Side Request Forgery) protection for image URLs
that the gateway downloads on behalf of clients.
"""

import asyncio
import ipaddress
import logging
import socket
from urllib.parse import urlparse

from onemin_gateway.common.errors import ValidationError

logger = logging.getLogger(__name__)

# Private IP ranges that should be blocked
PRIVATE_IP_RANGES = [
    ipaddress.ip_network("0.0.0.0/8"),        # "This" network
    ipaddress.ip_network("127.0.0.0/8"),      # Loopback
    ipaddress.ip_network("10.0.0.0/8"),       # Class A private
    ipaddress.ip_network("172.16.0.0/12"),    # Class B private
    ipaddress.ip_network("192.168.0.0/16"),   # Class C private
    ipaddress.ip_network("169.254.0.0/16"),   # Link-local
    ipaddress.ip_network("::1/128"),          # IPv6 loopback
    ipaddress.ip_network("fc00::/7"),         # IPv6 private
    ipaddress.ip_network("fe80::/10"),        # IPv6 link-local
]


def is_private_ip(ip_str: str) -> bool:
    """
    Check if an IP address is private/internal

    Args:
        ip_str: IP address string

    Returns:
        bool: True if the IP is private
    """
    try:
        ip = ipaddress.ip_address(ip_str)
    except ValueError:
        return False
    return any(ip in network for network in PRIVATE_IP_RANGES)


def _is_ip_literal(hostname: str) -> bool:
    try:
        ipaddress.ip_address(hostname)
    except ValueError:
        return False
    return True


async def resolve_ips(hostname: str) -> list[str]:
    """
    Resolve hostname to every address it maps to

    Returns:
        list[str]: Resolved addresses, empty if resolution fails
    """
    loop = asyncio.get_running_loop()
    try:
        infos = await loop.getaddrinfo(hostname, None)
    except (socket.gaierror, UnicodeError):
        return []
    return list(dict.fromkeys(str(info[4][0]) for info in infos))


async def validate_image_url(url: str, block_private: bool = True) -> str:
    """
    Validate a remote image URL before downloading it

    Args:
        url: The URL to validate
        block_private: Reject URLs that point at (or resolve to) private addresses

    Returns:
        str: The validated URL

    Raises:
        ValidationError: If the URL is invalid or potentially dangerous
    """
    if not url:
        raise ValidationError(message="Image URL cannot be empty", code="invalid_image_url")

    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https"):
        raise ValidationError(
            message="Image URL must use http or https scheme",
            code="invalid_image_url",
            details={"scheme": parsed.scheme},
        )

    hostname = parsed.hostname
    if not hostname:
        raise ValidationError(
            message="Image URL must contain a valid hostname",
            code="invalid_image_url",
        )

    if not block_private:
        return url

    if hostname.lower() == "localhost" or is_private_ip(hostname):
        logger.warning("Image URL rejected: private host '%s'", hostname)
        raise ValidationError(
            message="Private IP addresses are not allowed",
            code="private_ip_not_allowed",
        )

    if _is_ip_literal(hostname):
        return url

    for resolved_ip in await resolve_ips(hostname):
        if is_private_ip(resolved_ip):
            logger.warning(
                "Image URL rejected: hostname '%s' resolves to private IP '%s'",
                hostname,
                resolved_ip,
            )
            raise ValidationError(
                message="URL resolves to a private IP address",
                code="private_ip_resolution",
            )

    return url
