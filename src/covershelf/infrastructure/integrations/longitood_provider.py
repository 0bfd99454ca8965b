"""Longitood cover provider.

Hey future me - Longitood is a tiny free service that scrapes Goodreads covers:

    GET https://bookcover.longitood.com/bookcover/{isbn}  ->  {"url": "https://..."}

404 means "no cover for this ISBN". That is an ANSWER, not an outage, so it's
raised as ProviderNoResult and the resilience policy won't count it against the
breaker. 5xx/network errors propagate and DO count.
"""

import logging

import httpx

from covershelf.domain.entities import CoverCandidateUrl, CoverVariant
from covershelf.domain.exceptions import ProviderNoResult
from covershelf.domain.ports import ICoverProvider
from covershelf.infrastructure.integrations._isbn import clean_isbn
from covershelf.infrastructure.integrations.http_pool import HttpClientPool

logger = logging.getLogger(__name__)


class LongitoodCoverProvider(ICoverProvider):
    """Looks up cover URLs via the Longitood book cover API."""

    API_BASE_URL = "https://bookcover.longitood.com/bookcover"

    def __init__(self, client: httpx.AsyncClient | None = None) -> None:
        self._client = client

    @property
    def provider_name(self) -> str:
        return "longitood"

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = await HttpClientPool.get_client()
        return self._client

    async def find_candidates(self, isbn: str) -> list[CoverCandidateUrl]:
        cleaned = clean_isbn(isbn)
        if cleaned is None:
            raise ProviderNoResult(f"Not an ISBN: {isbn!r}")

        client = await self._get_client()
        response = await client.get(f"{self.API_BASE_URL}/{cleaned}")
        if response.status_code == 404:
            raise ProviderNoResult(f"Longitood has no cover for {cleaned}")
        response.raise_for_status()

        try:
            payload = response.json()
        except ValueError as e:
            raise ProviderNoResult(f"Longitood returned non-JSON for {cleaned}") from e

        url = payload.get("url") if isinstance(payload, dict) else None
        if not isinstance(url, str) or not url.strip():
            raise ProviderNoResult(f"Longitood returned no url for {cleaned}")

        logger.debug("Longitood cover for %s: %s", cleaned, url)
        return [
            CoverCandidateUrl(
                url=url.strip(), source=self.provider_name, variant=CoverVariant.LARGE
            )
        ]
