"""SSRF defense for cover URLs.

Hey future me - cover URLs come from search APIs, bestseller feeds and random
producers. Any of them can point us at http://169.254.169.254/ (cloud metadata) or
an internal admin box. So before EVERY fetch:

1. https only. No plaintext fetches, no file://, no gopher://.
2. Host must be on the allowlist (or a subdomain of an entry).
3. Resolve DNS and reject if ANY address is loopback, link-local, private or
   unspecified. On top of the ipaddress classification we also check raw string
   prefixes - IPv4-mapped IPv6 classification has burned people before.
4. DNS failure = reject. Never fail open.

NO caching of verdicts! DNS answers change (rebinding), so re-check every call.
"""

from __future__ import annotations

import asyncio
import ipaddress
import logging
import re
import socket
from collections.abc import Callable, Iterable
from urllib.parse import urlsplit

logger = logging.getLogger(__name__)

DEFAULT_ALLOWED_HOSTS: frozenset[str] = frozenset(
    {
        "books.google.com",
        "books.googleusercontent.com",
        "covers.openlibrary.org",
        "images-na.ssl-images-amazon.com",
        "images-eu.ssl-images-amazon.com",
        "m.media-amazon.com",
        "images.amazon.com",
        "d1w7fb2mkkr3kw.cloudfront.net",
        "us.archive.org",
        "syndetics.com",
        "cdn.penguin.com",
        "images.penguinrandomhouse.com",
        "static.nytimes.com",
        "static01.nyt.com",
        "longitood.com",
    }
)

_BLOCKED_PREFIXES: tuple[str, ...] = ("169.254.", "127.", "10.", "192.168.")
_PRIVATE_172 = re.compile(r"^172\.(1[6-9]|2\d|3[0-1])\..*")

Resolver = Callable[[str], list[str]]


def resolve_host(host: str) -> list[str]:
    """Resolve all A/AAAA addresses of a host.

    Raises:
        OSError: When resolution fails (socket.gaierror is a subclass)
    """
    infos = socket.getaddrinfo(host, None, proto=socket.IPPROTO_TCP)
    return [str(info[4][0]) for info in infos]


def is_blocked_address(address: str) -> bool:
    """True if a resolved address points somewhere internal.

    Unparseable addresses are blocked too.
    """
    # Scoped IPv6 like fe80::1%eth0
    bare = address.split("%", 1)[0]
    try:
        ip = ipaddress.ip_address(bare)
    except ValueError:
        return True

    candidates: list[ipaddress.IPv4Address | ipaddress.IPv6Address] = [ip]
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        candidates.append(ip.ipv4_mapped)

    for candidate in candidates:
        if (
            candidate.is_unspecified
            or candidate.is_loopback
            or candidate.is_link_local
            or candidate.is_private
        ):
            return True
        text = str(candidate)
        if text.startswith(_BLOCKED_PREFIXES) or _PRIVATE_172.match(text):
            return True
    return False


class UrlSafetyValidator:
    """Decides whether a cover URL may be fetched."""

    def __init__(
        self,
        allowed_hosts: Iterable[str] | None = None,
        resolver: Resolver | None = None,
    ) -> None:
        """Initialize validator.

        Args:
            allowed_hosts: Host allowlist (defaults to the known cover CDNs)
            resolver: DNS resolver returning address strings (tests inject fakes)
        """
        hosts = DEFAULT_ALLOWED_HOSTS if allowed_hosts is None else allowed_hosts
        self.allowed_hosts = frozenset(h.strip().lower() for h in hosts if h.strip())
        self._resolver = resolver or resolve_host

    def is_allowed_host(self, host: str | None) -> bool:
        """Allowlist check - exact match or subdomain of an allowed host."""
        if not host:
            return False
        host = host.strip().lower().rstrip(".")
        return any(
            host == allowed or host.endswith("." + allowed)
            for allowed in self.allowed_hosts
        )

    def is_allowed(self, url: str | None) -> bool:
        """Full check: scheme, allowlist, then DNS. Blocking (does DNS I/O)."""
        if url is None or not url.strip():
            return False
        try:
            parts = urlsplit(url.strip())
            host = parts.hostname
        except ValueError:
            logger.warning("Blocked unparseable cover URL: %s", url)
            return False

        if parts.scheme != "https":
            logger.warning("Blocked non-https cover URL: %s", url)
            return False

        if not self.is_allowed_host(host):
            logger.warning("Blocked cover URL with host not on allowlist: %s", url)
            return False

        try:
            addresses = self._resolver(host)  # type: ignore[arg-type]
        except (OSError, UnicodeError) as e:
            logger.warning("Blocked cover URL, DNS resolution failed for %s: %s", host, e)
            return False

        if not addresses:
            logger.warning("Blocked cover URL, no DNS records for %s", host)
            return False

        for address in addresses:
            if is_blocked_address(address):
                logger.warning(
                    "Blocked cover URL resolving to internal address",
                    extra={"url": url, "host": host, "address": address},
                )
                return False
        return True

    async def is_allowed_async(self, url: str | None) -> bool:
        """Same as is_allowed, with DNS resolution off the event loop."""
        return await asyncio.to_thread(self.is_allowed, url)
