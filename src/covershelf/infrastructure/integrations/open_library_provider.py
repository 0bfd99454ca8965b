"""Open Library cover provider.

Hey future me - Open Library covers need NO API call. The URL pattern is fixed:

    https://covers.openlibrary.org/b/isbn/{isbn}-{S|M|L}.jpg

GOTCHA: for unknown ISBNs Open Library answers 200 with a 1x1 pixel GIF instead of
a 404. The processor's minimum-size check rejects those ("too_small"), so we don't
need a HEAD request here.
"""

import logging

from covershelf.domain.entities import CoverCandidateUrl, CoverVariant
from covershelf.domain.exceptions import ProviderNoResult
from covershelf.domain.ports import ICoverProvider
from covershelf.infrastructure.integrations._isbn import clean_isbn

logger = logging.getLogger(__name__)

COVERS_BASE_URL = "https://covers.openlibrary.org/b/isbn"

# Open Library size letter -> our variant
SIZE_VARIANTS: dict[str, CoverVariant] = {
    "L": CoverVariant.LARGE,
    "M": CoverVariant.MEDIUM,
    "S": CoverVariant.SMALL,
}


def build_cover_url(isbn: str, size: str = "L") -> str:
    """Build an Open Library cover URL.

    Raises:
        ValueError: For sizes other than S, M, L
    """
    size = size.upper()
    if size not in SIZE_VARIANTS:
        raise ValueError(f"Unknown Open Library cover size: {size}")
    return f"{COVERS_BASE_URL}/{isbn}-{size}.jpg"


class OpenLibraryCoverProvider(ICoverProvider):
    """Builds Open Library cover URLs for an ISBN."""

    def __init__(self, sizes: tuple[str, ...] = ("L",)) -> None:
        self.sizes = sizes

    @property
    def provider_name(self) -> str:
        return "open-library"

    async def find_candidates(self, isbn: str) -> list[CoverCandidateUrl]:
        cleaned = clean_isbn(isbn)
        if cleaned is None:
            raise ProviderNoResult(f"Not an ISBN: {isbn!r}")
        return [
            CoverCandidateUrl(
                url=build_cover_url(cleaned, size),
                source=self.provider_name,
                variant=SIZE_VARIANTS[size.upper()],
            )
            for size in self.sizes
        ]
