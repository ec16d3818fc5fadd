"""Decide whether a discovered instance lives on the local network.

The answer picks the slot the base URL goes into on
:class:`~haonboard.models.ConnectionSettings`: internal URLs are preferred
while the device is on a home network. :func:`is_internal` never raises;
anything ambiguous counts as external.
"""

from __future__ import annotations

import asyncio
import ipaddress
import logging
import socket
from typing import Awaitable, Callable, Iterable, Optional

from haonboard.models import DiscoveredInstance

logger = logging.getLogger(__name__)

Resolver = Callable[[str], Awaitable[Iterable[str]]]

PRIVATE_NETWORKS = tuple(
    ipaddress.ip_network(cidr)
    for cidr in (
        "10.0.0.0/8",
        "172.16.0.0/12",
        "192.168.0.0/16",
        "169.254.0.0/16",
        "fc00::/7",
        "fe80::/10",
    )
)


def is_private_address(address: str) -> bool:
    """Return ``True`` for RFC 1918, link-local, and unique-local addresses.

    IPv4-mapped IPv6 addresses are judged by their IPv4 part. Scope ids
    (``fe80::1%en0``) are ignored. Unparseable input is not private.
    """
    try:
        ip = ipaddress.ip_address(address.split("%", 1)[0])
    except ValueError:
        return False
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        ip = ip.ipv4_mapped
    return any(ip.version == net.version and ip in net for net in PRIVATE_NETWORKS)


async def resolve_host(host: str) -> list[str]:
    """Resolve *host* to its addresses using the running loop's resolver."""
    loop = asyncio.get_running_loop()
    infos = await loop.getaddrinfo(host, None, type=socket.SOCK_STREAM)
    return [str(info[4][0]) for info in infos]


async def is_internal(
    instance: DiscoveredInstance,
    resolver: Optional[Resolver] = None,
) -> bool:
    """Return whether *instance* is reachable on a private network.

    1. No host in ``base_url`` -> ``False``.
    2. Host among ``announced_from`` -> ``True`` (no resolution).
    3. Otherwise ``True`` iff any resolved address is private.

    Args:
        instance: The probed instance.
        resolver: Coroutine mapping a host name to addresses; defaults to
            :func:`resolve_host`.
    """
    host = instance.host
    if not host:
        return False
    if host in instance.announced_from:
        logger.debug("%s was announced locally", host)
        return True

    resolve = resolver or resolve_host
    try:
        addresses = list(await resolve(host))
    except (OSError, UnicodeError) as exc:
        logger.debug("Could not resolve %s: %s", host, exc)
        return False

    internal = any(is_private_address(address) for address in addresses)
    logger.debug("%s resolves to %s (internal=%s)", host, addresses, internal)
    return internal
