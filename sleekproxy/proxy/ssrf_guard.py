"""
SSRF guard.

Decides whether a target hostname may be fetched. The decision is computed
fresh for every request, right before the upstream fetch, and fails closed:
an unresolvable host is denied, and a host with any private address is
denied even when its other addresses are public.
"""

import asyncio
import ipaddress
import logging
import socket
from typing import Awaitable, Callable, Iterable, List, Optional

from .models import HostDecision

logger = logging.getLogger("uvicorn.error")

Resolver = Callable[[str], Awaitable[List[str]]]

PRIVATE_IPV4_NETWORKS = (
    ipaddress.ip_network("10.0.0.0/8"),
    ipaddress.ip_network("172.16.0.0/12"),
    ipaddress.ip_network("192.168.0.0/16"),
    ipaddress.ip_network("127.0.0.0/8"),
    ipaddress.ip_network("169.254.0.0/16"),
)

PRIVATE_IPV6_NETWORKS = (
    ipaddress.ip_network("::1/128"),
    # fe80 prefix (link-local)
    ipaddress.ip_network("fe80::/16"),
    # fc / fd prefixes (unique-local)
    ipaddress.ip_network("fc00::/7"),
)


def is_private(address: str) -> bool:
    """
    Classify a single address string.

    IPv4-mapped IPv6 addresses are unwrapped before classification.
    Anything that does not parse as an IP address counts as private.
    """
    try:
        ip = ipaddress.ip_address(address.split("%", 1)[0])
    except ValueError:
        return True

    if ip.version == 6 and ip.ipv4_mapped is not None:
        ip = ip.ipv4_mapped

    networks = PRIVATE_IPV4_NETWORKS if ip.version == 4 else PRIVATE_IPV6_NETWORKS
    return any(ip in network for network in networks)


async def resolve_host(hostname: str) -> List[str]:
    """Resolve every A/AAAA address of `hostname` via the event loop."""
    loop = asyncio.get_running_loop()
    infos = await loop.getaddrinfo(hostname, None, proto=socket.IPPROTO_TCP)
    addresses: List[str] = []
    for _family, _type, _proto, _canonname, sockaddr in infos:
        if sockaddr[0] not in addresses:
            addresses.append(sockaddr[0])
    return addresses


class SSRFGuard:
    def __init__(
        self,
        allowed_hosts: Optional[Iterable[str]] = None,
        block_private: bool = True,
        resolver: Optional[Resolver] = None,
    ):
        self.allowed_hosts = frozenset(h.lower() for h in (allowed_hosts or ()) if h)
        self.block_private = block_private
        self._resolve = resolver or resolve_host

    async def authorize(self, hostname: str) -> HostDecision:
        host = (hostname or "").lower()
        if not host:
            return HostDecision.deny("No hostname")

        if self.allowed_hosts and host not in self.allowed_hosts:
            logger.warning(f"[SSRF] {host} is not on the allowlist")
            return HostDecision.deny(f"Host {host} is not allowed")

        if not self.block_private:
            return HostDecision.allow()

        try:
            addresses = await self._resolve(host)
        except (OSError, UnicodeError, ValueError) as e:
            logger.warning(f"[SSRF] DNS resolution failed for {host}: {e}")
            return HostDecision.deny(f"Could not resolve host {host}")

        if not addresses:
            logger.warning(f"[SSRF] {host} resolved to no addresses")
            return HostDecision.deny(f"Could not resolve host {host}")

        for address in addresses:
            if is_private(address):
                logger.warning(f"[SSRF] {host} resolves to private address {address}")
                return HostDecision.deny(
                    f"Host {host} resolves to a private or internal address"
                )

        return HostDecision.allow()
