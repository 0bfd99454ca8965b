"""Bounded cover downloader.

Hey future me - two limits keep a hostile or broken CDN from hurting us:
- TIME: every request gets download_timeout_seconds (the resilience policy adds its
  own outer timeout on top)
- SIZE: we stream the body and stop reading the moment it exceeds
  max_file_size_bytes. Content-Length is checked first but never trusted.

Redirects are followed by hand so every hop goes through the SSRF validator again.
A CDN redirecting to http://169.254.169.254/ gets UnsafeUrlError, not a fetch.
"""

from __future__ import annotations

import logging

import httpx

from covershelf.config import CoverFetchSettings
from covershelf.domain.entities import DownloadedCover
from covershelf.domain.exceptions import DownloadFailure, UnsafeUrlError
from covershelf.domain.ports import ICoverDownloader
from covershelf.infrastructure.integrations.http_pool import HttpClientPool
from covershelf.infrastructure.security import UrlSafetyValidator

logger = logging.getLogger(__name__)


def _reason_for_status(status: int) -> str:
    if status in (404, 410):
        return "not_available"
    return "http_error"


class CoverDownloadClient(ICoverDownloader):
    """Downloads cover bytes with time, size and redirect limits."""

    def __init__(
        self,
        settings: CoverFetchSettings,
        url_validator: UrlSafetyValidator,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize downloader.

        Args:
            settings: Download limits
            url_validator: Validator used for redirect targets
            client: HTTP client (defaults to the shared HttpClientPool client)
        """
        self.settings = settings
        self.url_validator = url_validator
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = await HttpClientPool.get_client(
                timeout=self.settings.download_timeout_seconds,
                user_agent=self.settings.user_agent,
            )
        return self._client

    async def download(self, url: str) -> DownloadedCover:
        """Download a cover, following at most max_redirects validated redirects."""
        client = await self._get_client()
        current = url
        for _ in range(self.settings.max_redirects + 1):
            result = await self._fetch_once(client, current)
            if isinstance(result, DownloadedCover):
                return result
            if not await self.url_validator.is_allowed_async(result):
                raise UnsafeUrlError(result)
            logger.debug("Following cover redirect %s -> %s", current, result)
            current = result

        raise DownloadFailure(
            f"Too many redirects for {url}",
            reason="too_many_redirects",
            retryable=False,
        )

    async def _fetch_once(
        self, client: httpx.AsyncClient, url: str
    ) -> DownloadedCover | str:
        """Fetch one URL. Returns the cover, or the redirect target to validate next."""
        limit = self.settings.max_file_size_bytes
        try:
            async with client.stream(
                "GET",
                url,
                timeout=self.settings.download_timeout_seconds,
                follow_redirects=False,
            ) as response:
                if response.is_redirect:
                    location = response.headers.get("location")
                    if not location:
                        raise DownloadFailure(
                            f"Redirect without location from {url}",
                            reason="http_error",
                            http_status=response.status_code,
                        )
                    return str(response.url.join(location))

                if response.status_code >= 400:
                    raise DownloadFailure(
                        f"HTTP {response.status_code} for {url}",
                        reason=_reason_for_status(response.status_code),
                        http_status=response.status_code,
                    )

                declared = response.headers.get("content-length")
                if declared and declared.isdigit() and int(declared) > limit:
                    raise DownloadFailure(
                        f"Cover at {url} declares {declared} bytes, limit is {limit}",
                        reason="payload_too_large",
                        retryable=False,
                    )

                body = bytearray()
                async for chunk in response.aiter_bytes():
                    body.extend(chunk)
                    if len(body) > limit:
                        raise DownloadFailure(
                            f"Cover at {url} exceeds {limit} bytes",
                            reason="payload_too_large",
                            retryable=False,
                        )

                if not body:
                    raise DownloadFailure(f"Empty body from {url}", reason="empty_body")

                return DownloadedCover(
                    url=url,
                    data=bytes(body),
                    content_type=response.headers.get("content-type"),
                )
        except httpx.TimeoutException as e:
            raise DownloadFailure(f"Timeout downloading {url}", reason="timeout") from e
        except httpx.HTTPError as e:
            raise DownloadFailure(
                f"Error downloading {url}: {e}", reason="download_error"
            ) from e
