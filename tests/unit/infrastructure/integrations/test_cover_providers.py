"""Tests for the ISBN cover providers."""

import re
from collections.abc import AsyncIterator

import httpx
import pytest
from pytest_httpx import HTTPXMock

from covershelf.domain.entities import CoverVariant
from covershelf.domain.exceptions import ProviderNoResult
from covershelf.infrastructure.integrations._isbn import clean_isbn
from covershelf.infrastructure.integrations.google_books_provider import (
    GoogleBooksCoverProvider,
    normalize_google_image_url,
    parse_image_links,
)
from covershelf.infrastructure.integrations.longitood_provider import (
    LongitoodCoverProvider,
)
from covershelf.infrastructure.integrations.open_library_provider import (
    OpenLibraryCoverProvider,
    build_cover_url,
)

ISBN = "978-0-14-032872-1"
CLEAN_ISBN = "9780140328721"


@pytest.fixture
async def http_client() -> AsyncIterator[httpx.AsyncClient]:
    async with httpx.AsyncClient() as client:
        yield client


def test_clean_isbn() -> None:
    """Test ISBN cleanup."""
    assert clean_isbn(ISBN) == CLEAN_ISBN
    assert clean_isbn("0-14-032872-x") == "014032872X"
    assert clean_isbn("12345") is None
    assert clean_isbn(None) is None


class TestOpenLibraryProvider:
    """Test Open Library URL building."""

    def test_build_cover_url(self) -> None:
        """Test the fixed URL pattern."""
        assert build_cover_url(CLEAN_ISBN, "l") == (
            "https://covers.openlibrary.org/b/isbn/9780140328721-L.jpg"
        )
        with pytest.raises(ValueError):
            build_cover_url(CLEAN_ISBN, "XL")

    async def test_candidates_per_size(self) -> None:
        """Test one candidate per configured size."""
        provider = OpenLibraryCoverProvider(sizes=("L", "M"))

        candidates = await provider.find_candidates(ISBN)

        assert [c.variant for c in candidates] == [CoverVariant.LARGE, CoverVariant.MEDIUM]
        assert all(c.source == "open-library" for c in candidates)

    async def test_invalid_isbn(self) -> None:
        """Test garbage ISBNs are a no-result answer."""
        with pytest.raises(ProviderNoResult):
            await OpenLibraryCoverProvider().find_candidates("not-an-isbn")


class TestLongitoodProvider:
    """Test the Longitood API client."""

    async def test_found(self, httpx_mock: HTTPXMock, http_client: httpx.AsyncClient) -> None:
        """Test a JSON url becomes a LARGE candidate."""
        httpx_mock.add_response(
            url=f"https://bookcover.longitood.com/bookcover/{CLEAN_ISBN}",
            json={"url": "https://images-na.ssl-images-amazon.com/images/S/cover.jpg"},
        )

        candidates = await LongitoodCoverProvider(client=http_client).find_candidates(ISBN)

        assert len(candidates) == 1
        assert candidates[0].source == "longitood"
        assert candidates[0].variant is CoverVariant.LARGE

    async def test_not_found_is_no_result(
        self, httpx_mock: HTTPXMock, http_client: httpx.AsyncClient
    ) -> None:
        """Test 404 is a business answer, not an error."""
        httpx_mock.add_response(status_code=404)

        with pytest.raises(ProviderNoResult) as exc_info:
            await LongitoodCoverProvider(client=http_client).find_candidates(ISBN)

        assert exc_info.value.trips_breaker is False

    async def test_missing_url_is_no_result(
        self, httpx_mock: HTTPXMock, http_client: httpx.AsyncClient
    ) -> None:
        """Test a payload without url is no result."""
        httpx_mock.add_response(json={"error": "nope"})

        with pytest.raises(ProviderNoResult):
            await LongitoodCoverProvider(client=http_client).find_candidates(ISBN)

    async def test_server_error_propagates(
        self, httpx_mock: HTTPXMock, http_client: httpx.AsyncClient
    ) -> None:
        """Test 5xx propagates so the breaker counts it."""
        httpx_mock.add_response(status_code=502)

        with pytest.raises(httpx.HTTPStatusError):
            await LongitoodCoverProvider(client=http_client).find_candidates(ISBN)


class TestGoogleBooksProvider:
    """Test the Google Books volumes client."""

    PAYLOAD = {
        "items": [
            {"volumeInfo": {"title": "No images"}},
            {
                "volumeInfo": {
                    "imageLinks": {
                        "smallThumbnail": "http://books.google.com/books/content?id=a&zoom=5&edge=curl",
                        "thumbnail": "http://books.google.com/books/content?id=a&zoom=1&edge=curl",
                        "unknownKey": "http://books.google.com/x",
                    }
                }
            },
            {"volumeInfo": {"imageLinks": {"large": "http://books.google.com/other-edition"}}},
        ]
    }

    def test_normalize_url(self) -> None:
        """Test https upgrade and curl removal."""
        assert (
            normalize_google_image_url("http://books.google.com/c?id=1&zoom=1&edge=curl")
            == "https://books.google.com/c?id=1&zoom=1"
        )

    def test_parse_first_volume_with_images(self) -> None:
        """Test the first volume with images wins, biggest variant first."""
        candidates = parse_image_links(self.PAYLOAD, "google-books")

        assert [c.variant for c in candidates] == [
            CoverVariant.THUMBNAIL,
            CoverVariant.SMALL_THUMBNAIL,
        ]
        assert all(c.url.startswith("https://") for c in candidates)
        assert all("edge=curl" not in c.url for c in candidates)

    async def test_find_candidates_with_api_key(
        self, httpx_mock: HTTPXMock, http_client: httpx.AsyncClient
    ) -> None:
        """Test the search query and key are sent."""
        httpx_mock.add_response(
            url=re.compile(r"https://www\.googleapis\.com/books/v1/volumes\?.*"),
            json=self.PAYLOAD,
        )
        provider = GoogleBooksCoverProvider(api_key="secret", client=http_client)

        candidates = await provider.find_candidates(ISBN)

        request = httpx_mock.get_request()
        assert request is not None
        assert request.url.params["q"] == f"isbn:{CLEAN_ISBN}"
        assert request.url.params["key"] == "secret"
        assert len(candidates) == 2

    async def test_no_items(self, httpx_mock: HTTPXMock, http_client: httpx.AsyncClient) -> None:
        """Test an empty search is a no-result answer."""
        httpx_mock.add_response(json={"totalItems": 0})

        with pytest.raises(ProviderNoResult):
            await GoogleBooksCoverProvider(client=http_client).find_candidates(ISBN)

    @pytest.mark.parametrize("status", [400, 404])
    async def test_client_errors_are_no_result(
        self, httpx_mock: HTTPXMock, http_client: httpx.AsyncClient, status: int
    ) -> None:
        """Test 400/404 answers don't look like an outage."""
        httpx_mock.add_response(status_code=status)

        with pytest.raises(ProviderNoResult):
            await GoogleBooksCoverProvider(client=http_client).find_candidates(ISBN)

    async def test_quota_error_propagates(
        self, httpx_mock: HTTPXMock, http_client: httpx.AsyncClient
    ) -> None:
        """Test 429 stays an HTTP error so the breaker sees it."""
        httpx_mock.add_response(status_code=429)

        with pytest.raises(httpx.HTTPStatusError):
            await GoogleBooksCoverProvider(client=http_client).find_candidates(ISBN)
