"""Google Books cover provider.

Hey future me - Google Books hides covers in volumeInfo.imageLinks:

    {"items": [{"volumeInfo": {"imageLinks": {"thumbnail": "http://books.google...",
                                              "smallThumbnail": "...", ...}}}]}

The keys ARE our variant names (thumbnail, small, medium, large, extraLarge...).
Links come back as http:// and with "&edge=curl" (fake page-curl effect) - we
upgrade to https and strip the curl. Search results rarely include more than
thumbnail/smallThumbnail unless you hit the volume endpoint, so we take what we get.
"""

import logging
import re
from typing import Any

import httpx

from covershelf.domain.entities import CoverCandidateUrl, CoverVariant
from covershelf.domain.exceptions import ProviderNoResult
from covershelf.domain.ports import ICoverProvider
from covershelf.infrastructure.integrations._isbn import clean_isbn
from covershelf.infrastructure.integrations.http_pool import HttpClientPool

logger = logging.getLogger(__name__)

_EDGE_CURL = re.compile(r"&edge=curl", re.IGNORECASE)


def normalize_google_image_url(url: str) -> str:
    """Force https and drop the page-curl effect."""
    if url.startswith("http://"):
        url = "https://" + url[len("http://") :]
    return _EDGE_CURL.sub("", url)


def parse_image_links(payload: dict[str, Any], source: str) -> list[CoverCandidateUrl]:
    """Extract candidates from a volumes search response, biggest variant first."""
    candidates: list[CoverCandidateUrl] = []
    for item in payload.get("items") or []:
        links = (item.get("volumeInfo") or {}).get("imageLinks") or {}
        for key, url in links.items():
            if not isinstance(url, str) or not url:
                continue
            try:
                variant = CoverVariant.parse(key)
            except ValueError:
                logger.debug("Skipping unknown Google Books image link %s", key)
                continue
            candidates.append(
                CoverCandidateUrl(
                    url=normalize_google_image_url(url), source=source, variant=variant
                )
            )
        if candidates:
            # First volume with images wins, later hits are usually other editions
            break

    order = list(CoverVariant)
    candidates.sort(key=lambda c: order.index(c.variant))
    return candidates


class GoogleBooksCoverProvider(ICoverProvider):
    """Looks up cover URLs via the Google Books volumes API."""

    API_URL = "https://www.googleapis.com/books/v1/volumes"

    def __init__(
        self, api_key: str | None = None, client: httpx.AsyncClient | None = None
    ) -> None:
        self.api_key = api_key
        self._client = client

    @property
    def provider_name(self) -> str:
        return "google-books"

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = await HttpClientPool.get_client()
        return self._client

    async def find_candidates(self, isbn: str) -> list[CoverCandidateUrl]:
        cleaned = clean_isbn(isbn)
        if cleaned is None:
            raise ProviderNoResult(f"Not an ISBN: {isbn!r}")

        params = {"q": f"isbn:{cleaned}", "maxResults": "5"}
        if self.api_key:
            params["key"] = self.api_key

        client = await self._get_client()
        response = await client.get(self.API_URL, params=params)
        # 400 = query Google can't parse, 404 = nothing there. Neither is an outage,
        # 403/429/5xx still raise.
        if response.status_code in (400, 404):
            raise ProviderNoResult(
                f"Google Books answered {response.status_code} for {cleaned}"
            )
        response.raise_for_status()

        candidates = parse_image_links(response.json(), self.provider_name)
        if not candidates:
            raise ProviderNoResult(f"Google Books has no cover for {cleaned}")
        return candidates
