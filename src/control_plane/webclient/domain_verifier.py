import asyncio
import ipaddress
import socket
from typing import Awaitable, Callable

import httpx

from control_plane.configs.logging_config import get_logger
from control_plane.domain.entities.tenancy import Domain

log = get_logger(__name__)

TOKEN_PREFIX = "avantle-verification="

ERR_UNRESOLVABLE = "hostname could not be resolved"
ERR_NON_PUBLIC = "hostname resolves to a non-public address"
ERR_UNREACHABLE = "verification URL could not be fetched"
ERR_TOKEN_MISSING = "verification token not found at verification URL"

AddressResolver = Callable[[str], Awaitable[list[str]]]


async def resolve_addresses(hostname: str) -> list[str]:
    loop = asyncio.get_running_loop()
    infos = await loop.getaddrinfo(hostname, None, type=socket.SOCK_STREAM)
    return sorted({info[4][0] for info in infos})


def is_public_address(address: str) -> bool:
    try:
        ip = ipaddress.ip_address(address.split("%", 1)[0])
    except ValueError:
        return False
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        ip = ip.ipv4_mapped
    return not (
        ip.is_private
        or ip.is_loopback
        or ip.is_link_local
        or ip.is_multicast
        or ip.is_reserved
        or ip.is_unspecified
    )


class DomainVerifier:
    """
    Checks that a hostname serves its verification token.

    The token `avantle-verification=<domain id>` must appear in the body of
    `{scheme}://{hostname}{path}`. The hostname is resolved first and every
    address it maps to must be public; redirects are not followed. Returns the
    list of problems found; an empty list means the domain is verified.
    """

    def __init__(
        self,
        scheme: str = "https",
        path: str = "/.well-known/avantle-verification.txt",
        timeout: float = 5.0,
        client: httpx.AsyncClient = None,
        resolver: AddressResolver = None,
    ):
        self.scheme = scheme
        self.path = path
        self.timeout = timeout
        self._client = client
        self._resolve = resolver or resolve_addresses

    def url_for(self, hostname: str) -> str:
        return f"{self.scheme}://{hostname}{self.path}"

    @staticmethod
    def expected_token(domain: Domain) -> str:
        return f"{TOKEN_PREFIX}{domain.id}"

    async def verify(self, domain: Domain) -> list[str]:
        hostname = domain.hostname
        try:
            addresses = await self._resolve(hostname)
        except OSError as e:
            log.info(
                "webclient.domain_verify resolve_failed hostname=%s error=%s", hostname, str(e)
            )
            return [ERR_UNRESOLVABLE]
        if not addresses:
            return [ERR_UNRESOLVABLE]
        blocked = [a for a in addresses if not is_public_address(a)]
        if blocked:
            log.warning(
                "webclient.domain_verify non_public hostname=%s addresses=%s", hostname, blocked
            )
            return [ERR_NON_PUBLIC]

        url = self.url_for(hostname)
        try:
            if self._client is not None:
                resp = await self._client.get(url, timeout=self.timeout, follow_redirects=False)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    resp = await client.get(url, follow_redirects=False)
        except httpx.HTTPError as e:
            log.info("webclient.domain_verify fetch_failed hostname=%s error=%s", hostname, str(e))
            return [ERR_UNREACHABLE]

        if resp.status_code != 200:
            log.info(
                "webclient.domain_verify bad_status hostname=%s status=%s",
                hostname,
                resp.status_code,
            )
            return [ERR_UNREACHABLE]

        if self.expected_token(domain) not in resp.text:
            log.info("webclient.domain_verify token_missing hostname=%s", hostname)
            return [ERR_TOKEN_MISSING]

        return []
