"""Tests for the bounded cover downloader."""

from collections.abc import AsyncIterator

import httpx
import pytest
from pytest_httpx import HTTPXMock

from covershelf.config import CoverFetchSettings
from covershelf.domain.exceptions import DownloadFailure, UnsafeUrlError
from covershelf.infrastructure.integrations.cover_download_client import (
    CoverDownloadClient,
)
from covershelf.infrastructure.security import UrlSafetyValidator

COVER_URL = "https://covers.openlibrary.org/b/isbn/9780140328721-L.jpg"
CDN_URL = "https://m.media-amazon.com/images/I/cover.jpg"

ADDRESSES = {
    "covers.openlibrary.org": ["93.184.216.34"],
    "m.media-amazon.com": ["54.239.1.1"],
    "books.google.com": ["169.254.169.254"],
}


@pytest.fixture
def validator() -> UrlSafetyValidator:
    return UrlSafetyValidator(resolver=lambda host: ADDRESSES.get(host, []))


@pytest.fixture
async def http_client() -> AsyncIterator[httpx.AsyncClient]:
    async with httpx.AsyncClient() as client:
        yield client


def make_downloader(
    validator: UrlSafetyValidator,
    client: httpx.AsyncClient,
    **overrides: object,
) -> CoverDownloadClient:
    settings = CoverFetchSettings(max_file_size_bytes=100, max_redirects=1, **overrides)
    return CoverDownloadClient(settings, validator, client=client)


class TestCoverDownloadClient:
    """Test download limits and error mapping."""

    async def test_download_success(
        self, httpx_mock: HTTPXMock, validator: UrlSafetyValidator, http_client: httpx.AsyncClient
    ) -> None:
        """Test a normal download returns bytes and content type."""
        httpx_mock.add_response(
            url=COVER_URL, content=b"\xff\xd8jpeg", headers={"Content-Type": "image/jpeg"}
        )

        cover = await make_downloader(validator, http_client).download(COVER_URL)

        assert cover.data == b"\xff\xd8jpeg"
        assert cover.content_type == "image/jpeg"
        assert cover.url == COVER_URL

    async def test_body_at_limit_is_accepted(
        self, httpx_mock: HTTPXMock, validator: UrlSafetyValidator, http_client: httpx.AsyncClient
    ) -> None:
        """Test exactly max_file_size_bytes is still fine."""
        httpx_mock.add_response(url=COVER_URL, content=b"x" * 100)

        cover = await make_downloader(validator, http_client).download(COVER_URL)

        assert len(cover.data) == 100

    async def test_oversized_body_rejected(
        self, httpx_mock: HTTPXMock, validator: UrlSafetyValidator, http_client: httpx.AsyncClient
    ) -> None:
        """Test bodies over the limit are refused and not retryable."""
        httpx_mock.add_response(url=COVER_URL, content=b"x" * 101)

        with pytest.raises(DownloadFailure) as exc_info:
            await make_downloader(validator, http_client).download(COVER_URL)

        assert exc_info.value.reason == "payload_too_large"
        assert exc_info.value.retryable is False

    async def test_redirect_to_blocked_host(
        self, httpx_mock: HTTPXMock, validator: UrlSafetyValidator, http_client: httpx.AsyncClient
    ) -> None:
        """Test a redirect target resolving internally is never fetched."""
        httpx_mock.add_response(
            url=COVER_URL,
            status_code=302,
            headers={"Location": "https://books.google.com/internal.jpg"},
        )

        with pytest.raises(UnsafeUrlError):
            await make_downloader(validator, http_client).download(COVER_URL)

        assert len(httpx_mock.get_requests()) == 1

    async def test_redirect_to_plain_http_blocked(
        self, httpx_mock: HTTPXMock, validator: UrlSafetyValidator, http_client: httpx.AsyncClient
    ) -> None:
        """Test a downgrade to http is blocked."""
        httpx_mock.add_response(
            url=COVER_URL,
            status_code=301,
            headers={"Location": "http://covers.openlibrary.org/b/isbn/1-L.jpg"},
        )

        with pytest.raises(UnsafeUrlError):
            await make_downloader(validator, http_client).download(COVER_URL)

    async def test_safe_redirect_followed(
        self, httpx_mock: HTTPXMock, validator: UrlSafetyValidator, http_client: httpx.AsyncClient
    ) -> None:
        """Test allowlisted redirect targets are followed."""
        httpx_mock.add_response(url=COVER_URL, status_code=302, headers={"Location": CDN_URL})
        httpx_mock.add_response(url=CDN_URL, content=b"cover")

        cover = await make_downloader(validator, http_client).download(COVER_URL)

        assert cover.data == b"cover"
        assert cover.url == CDN_URL

    async def test_too_many_redirects(
        self, httpx_mock: HTTPXMock, validator: UrlSafetyValidator, http_client: httpx.AsyncClient
    ) -> None:
        """Test redirect chains longer than max_redirects fail."""
        httpx_mock.add_response(url=COVER_URL, status_code=302, headers={"Location": CDN_URL})
        httpx_mock.add_response(url=CDN_URL, status_code=302, headers={"Location": COVER_URL})

        with pytest.raises(DownloadFailure) as exc_info:
            await make_downloader(validator, http_client).download(COVER_URL)

        assert exc_info.value.reason == "too_many_redirects"
        assert exc_info.value.retryable is False

    async def test_not_found(
        self, httpx_mock: HTTPXMock, validator: UrlSafetyValidator, http_client: httpx.AsyncClient
    ) -> None:
        """Test 404 maps to not_available and does not trip the breaker."""
        httpx_mock.add_response(url=COVER_URL, status_code=404)

        with pytest.raises(DownloadFailure) as exc_info:
            await make_downloader(validator, http_client).download(COVER_URL)

        assert exc_info.value.reason == "not_available"
        assert exc_info.value.http_status == 404
        assert exc_info.value.trips_breaker is False

    async def test_server_error(
        self, httpx_mock: HTTPXMock, validator: UrlSafetyValidator, http_client: httpx.AsyncClient
    ) -> None:
        """Test 5xx is a retryable, breaker-tripping failure."""
        httpx_mock.add_response(url=COVER_URL, status_code=503)

        with pytest.raises(DownloadFailure) as exc_info:
            await make_downloader(validator, http_client).download(COVER_URL)

        assert exc_info.value.reason == "http_error"
        assert exc_info.value.retryable is True
        assert exc_info.value.trips_breaker is True

    async def test_timeout(
        self, httpx_mock: HTTPXMock, validator: UrlSafetyValidator, http_client: httpx.AsyncClient
    ) -> None:
        """Test httpx timeouts map to reason timeout."""
        httpx_mock.add_exception(httpx.ReadTimeout("too slow"), url=COVER_URL)

        with pytest.raises(DownloadFailure) as exc_info:
            await make_downloader(validator, http_client).download(COVER_URL)

        assert exc_info.value.reason == "timeout"

    async def test_empty_body(
        self, httpx_mock: HTTPXMock, validator: UrlSafetyValidator, http_client: httpx.AsyncClient
    ) -> None:
        """Test an empty 200 is a failure."""
        httpx_mock.add_response(url=COVER_URL, content=b"")

        with pytest.raises(DownloadFailure) as exc_info:
            await make_downloader(validator, http_client).download(COVER_URL)

        assert exc_info.value.reason == "empty_body"
