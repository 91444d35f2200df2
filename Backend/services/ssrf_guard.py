# Backend/services/ssrf_guard.py
"""
SSRF guard for outbound preview requests.

Resolves the hostname of a URL (all address families) and refuses to let the
caller connect when any resolved address is private, loopback or link-local.
Nothing is cached: every check resolves again, right before the connection it
protects, so a DNS answer that changes between lookups cannot slip through a
stale verdict.
"""

from __future__ import annotations

import asyncio
import ipaddress
import socket
from typing import Awaitable, Callable, List, Optional
from urllib.parse import urlsplit

from app.core.logging import get_logger
from services.preview_errors import ErrorKind, PreviewError

logger = get_logger(module="ssrf_guard")

Resolver = Callable[[str], Awaitable[List[str]]]

BLOCKED_NETWORKS = (
    ipaddress.ip_network("10.0.0.0/8"),
    ipaddress.ip_network("172.16.0.0/12"),
    ipaddress.ip_network("192.168.0.0/16"),
    ipaddress.ip_network("127.0.0.0/8"),
    ipaddress.ip_network("169.254.0.0/16"),
    ipaddress.ip_network("0.0.0.0/8"),
    ipaddress.ip_network("fc00::/7"),
    ipaddress.ip_network("fe80::/10"),
    ipaddress.ip_network("::1/128"),
    ipaddress.ip_network("::/128"),
)


def is_blocked_address(ip: str) -> bool:
    """True if `ip` falls in one of the blocked ranges. Unparseable input is blocked."""
    try:
        addr = ipaddress.ip_address(ip.split("%", 1)[0])
    except ValueError:
        return True

    if isinstance(addr, ipaddress.IPv6Address) and addr.ipv4_mapped is not None:
        addr = addr.ipv4_mapped

    return any(addr.version == net.version and addr in net for net in BLOCKED_NETWORKS)


async def system_resolver(host: str) -> List[str]:
    """Resolve `host` through the event loop's getaddrinfo, without blocking the loop."""
    loop = asyncio.get_running_loop()
    infos = await loop.getaddrinfo(host, None, family=socket.AF_UNSPEC, type=socket.SOCK_STREAM)
    # sockaddr is (ip, port) for IPv4 and (ip, port, flow, scope) for IPv6
    return [sockaddr[0] for _, _, _, _, sockaddr in infos]


class SSRFGuard:
    """Vets the destination of a URL before a request is issued."""

    def __init__(self, *, resolver: Optional[Resolver] = None, timeout_s: float = 5.0) -> None:
        self.resolver = resolver or system_resolver
        self.timeout_s = timeout_s

    async def resolve(self, host: str) -> List[str]:
        try:
            addresses = await asyncio.wait_for(self.resolver(host), timeout=self.timeout_s)
        except asyncio.TimeoutError as exc:
            logger.warning("dns_lookup_timeout", host=host, timeout_s=self.timeout_s)
            raise PreviewError(ErrorKind.RESOLUTION_FAILED) from exc
        except (socket.gaierror, UnicodeError, OSError) as exc:
            logger.info("dns_lookup_failed", host=host, error=str(exc))
            raise PreviewError(ErrorKind.RESOLUTION_FAILED) from exc

        if not addresses:
            raise PreviewError(ErrorKind.RESOLUTION_FAILED)
        return addresses

    async def check(self, url: str) -> List[str]:
        """
        Raise PreviewError(BlockedDestination) if any address of the URL's host
        is blocked, PreviewError(ResolutionFailed) if the host does not resolve.

        Returns the resolved addresses.
        """
        try:
            host = urlsplit(url).hostname
        except ValueError as exc:
            raise PreviewError(ErrorKind.INVALID_URL) from exc
        if not host:
            raise PreviewError(ErrorKind.INVALID_URL)

        addresses = await self.resolve(host)
        for ip in addresses:
            if is_blocked_address(ip):
                logger.warning("ssrf_blocked", host=host, address=ip)
                raise PreviewError(ErrorKind.BLOCKED_DESTINATION)

        logger.debug("ssrf_cleared", host=host, addresses=addresses)
        return addresses
