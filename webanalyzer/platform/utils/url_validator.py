"""
URL and host validation.

Guards the pipeline against server-side request forgery: a URL is only
accepted when its scheme is http/https, it is not absurdly long, and every
address its host maps to is publicly routable. DNS failures are treated as
"not allowed" (fail closed).
"""
import asyncio
import ipaddress
import socket
from typing import Iterable, List, Optional, Tuple, Union
from urllib.parse import urlparse

from webanalyzer.features.analysis.schemas.analysis import HostValidationResult
from webanalyzer.platform.config import settings
from webanalyzer.platform.logger import get_logger

logger = get_logger(__name__)

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]

BLOCKED_IPV4_NETWORKS = [
    ipaddress.ip_network("10.0.0.0/8"),
    ipaddress.ip_network("172.16.0.0/12"),
    ipaddress.ip_network("192.168.0.0/16"),
    ipaddress.ip_network("127.0.0.0/8"),      # loopback
    ipaddress.ip_network("169.254.0.0/16"),   # link-local
    ipaddress.ip_network("0.0.0.0/8"),
    ipaddress.ip_network("224.0.0.0/4"),      # multicast
    ipaddress.ip_network("240.0.0.0/4"),      # reserved
]

BLOCKED_IPV6_NETWORKS = [
    ipaddress.ip_network("::1/128"),          # loopback
    ipaddress.ip_network("::/128"),           # unspecified
    ipaddress.ip_network("fc00::/7"),         # unique local
    ipaddress.ip_network("fe80::/10"),        # link-local
    ipaddress.ip_network("ff00::/8"),         # multicast
]


def validate_url(url: str, max_length: Optional[int] = None) -> Tuple[bool, str]:
    """
    Syntax-level checks. Returns (is_valid, error_message).
    """
    max_length = max_length or settings.MAX_URL_LENGTH

    if not url or not url.strip():
        return False, "URL cannot be empty"

    if len(url) > max_length:
        return False, f"URL too long (max {max_length} characters)"

    try:
        parsed = urlparse(url.strip())
    except ValueError as e:
        return False, f"Invalid URL format: {e}"

    if parsed.scheme not in ("http", "https"):
        return False, "Invalid protocol. Only http and https are allowed."

    if not parsed.hostname:
        return False, "Invalid URL format: missing host"

    return True, ""


def parse_ip(host: str) -> Optional[IPAddress]:
    """Return the address if `host` is an IP literal, else None."""
    try:
        return ipaddress.ip_address(host.strip("[]"))
    except ValueError:
        return None


def is_blocked_address(address: IPAddress) -> bool:
    if isinstance(address, ipaddress.IPv6Address):
        # ::ffff:10.0.0.1 reaches the same host as 10.0.0.1
        if address.ipv4_mapped is not None:
            return is_blocked_address(address.ipv4_mapped)
        return any(address in network for network in BLOCKED_IPV6_NETWORKS)
    return any(address in network for network in BLOCKED_IPV4_NETWORKS)


async def resolve_host(hostname: str, timeout: Optional[float] = None) -> List[str]:
    """Resolve all A/AAAA records for a hostname (single attempt)."""
    loop = asyncio.get_running_loop()
    infos = await asyncio.wait_for(
        loop.getaddrinfo(hostname, None, type=socket.SOCK_STREAM),
        timeout=timeout or settings.DNS_TIMEOUT,
    )
    return list(dict.fromkeys(info[4][0] for info in infos))


def _first_blocked(addresses: Iterable[str]) -> Optional[str]:
    for raw in addresses:
        # getaddrinfo may append a zone id to link-local IPv6 results
        address = parse_ip(raw.split("%", 1)[0])
        if address is None or is_blocked_address(address):
            return raw
    return None


class HostValidator:
    """
    Decides whether a URL may be fetched by the workers.

    `resolver` is an awaitable callable hostname -> list of address strings;
    tests inject a fake one.
    """

    def __init__(self, resolver=None, enabled: Optional[bool] = None, max_length: Optional[int] = None):
        self.resolver = resolver or resolve_host
        self.enabled = settings.HOST_VALIDATION_ENABLED if enabled is None else enabled
        self.max_length = max_length or settings.MAX_URL_LENGTH

    async def validate(self, raw_url: str) -> HostValidationResult:
        is_valid, error_message = validate_url(raw_url, self.max_length)
        if not is_valid:
            return HostValidationResult(allowed=False, reason=error_message)

        if not self.enabled:
            return HostValidationResult(allowed=True)

        hostname = urlparse(raw_url.strip()).hostname

        literal = parse_ip(hostname)
        if literal is not None:
            if is_blocked_address(literal):
                logger.warning(f"Blocked private/reserved IP literal: {hostname}")
                return HostValidationResult(
                    allowed=False, reason="URL host is a private or disallowed IP."
                )
            return HostValidationResult(allowed=True)

        try:
            addresses = await self.resolver(hostname)
        except Exception as e:
            # Any resolution failure (NXDOMAIN, timeout, bad label) fails closed
            logger.warning(f"DNS resolution failed for {hostname}: {e}")
            return HostValidationResult(
                allowed=False, reason=f"Could not resolve host {hostname}."
            )

        if not addresses:
            logger.warning(f"DNS resolution returned no addresses for {hostname}")
            return HostValidationResult(
                allowed=False, reason=f"Could not resolve host {hostname}."
            )

        blocked = _first_blocked(addresses)
        if blocked:
            logger.warning(f"Host {hostname} resolves to disallowed address {blocked}")
            return HostValidationResult(
                allowed=False, reason="URL host resolves to a private or disallowed IP."
            )

        return HostValidationResult(allowed=True)
