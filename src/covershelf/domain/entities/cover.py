"""Cover entities - candidates, processed payloads and the read-side descriptor.

Hey future me - there is NO "canonical cover" table! Every fetch attempt writes one
CoverCandidate row per (book_id, variant). The canonical cover is picked at READ time
by the ranker (domain/value_objects/cover_ranking.py) or its SQL twin
(infrastructure/persistence/cover_ranking_sql.py). That way a provider adding a
better image later just means a new row, no migration, no pointer update.

FLOW:
    CoverCandidateUrl (producer/provider)
        └─► fetch pipeline ─► DownloadedCover ─► ProcessedCover ─► UploadPayload
                                                                      │
                                     CoverDescriptor ◄── storage gateway
                                            │
                                            └─► CoverCandidate row (upsert)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class CoverVariant(str, Enum):
    """Named size/type bucket of a cover image.

    Values match the keys Google Books uses in volumeInfo.imageLinks so provider
    payloads map 1:1. "canonical" is what we store for our own processed uploads.
    """

    CANONICAL = "canonical"
    EXTRA_LARGE = "extraLarge"
    LARGE = "large"
    MEDIUM = "medium"
    SMALL = "small"
    THUMBNAIL = "thumbnail"
    SMALL_THUMBNAIL = "smallThumbnail"

    @classmethod
    def parse(cls, value: str | CoverVariant) -> CoverVariant:
        """Parse a variant name case-insensitively.

        Raises:
            ValueError: If the name is not a known variant
        """
        if isinstance(value, CoverVariant):
            return value
        lowered = value.strip().lower()
        for variant in cls:
            if variant.value.lower() == lowered:
                return variant
        raise ValueError(f"Unknown cover variant: {value!r}")


@dataclass
class CoverCandidate:
    """One stored image row for a book and variant."""

    book_id: str
    variant: str
    url: str | None = None
    storage_key: str | None = None
    source: str | None = None
    width: int | None = None
    height: int | None = None
    is_high_resolution: bool | None = None  # None = unknown, NOT False
    is_grayscale: bool | None = None
    download_error: str | None = None
    created_at: datetime | None = None

    @property
    def is_storage_held(self) -> bool:
        return bool(self.storage_key)

    @property
    def pixel_area(self) -> int:
        return (self.width or 0) * (self.height or 0)


@dataclass(frozen=True)
class CoverDescriptor:
    """What read clients get back for a book's cover.

    fallback_url is an optional second <img> source (a hotlink) for when the
    storage object can't be fetched at render time.
    """

    canonical_url: str
    source: str
    storage_key: str | None = None
    width: int | None = None
    height: int | None = None
    high_resolution: bool | None = None
    fallback_url: str | None = None


@dataclass(frozen=True)
class CoverCandidateUrl:
    """A candidate URL to fetch, with its provenance."""

    url: str
    source: str = "unknown"
    variant: CoverVariant = CoverVariant.CANONICAL
    width: int | None = None
    height: int | None = None


@dataclass(frozen=True)
class DownloadedCover:
    """Raw bytes fetched from a candidate URL."""

    url: str
    data: bytes
    content_type: str | None = None


@dataclass(frozen=True)
class ProcessedCover:
    """Result of the image processor contract."""

    success: bool
    data: bytes = b""
    extension: str = ".jpg"
    mime_type: str = "image/jpeg"
    width: int | None = None
    height: int | None = None
    is_high_resolution: bool | None = None
    is_grayscale: bool | None = None
    rejection_reason: str | None = None

    @classmethod
    def rejected(cls, reason: str) -> ProcessedCover:
        """Create a failed processing result."""
        return cls(success=False, rejection_reason=reason)


@dataclass(frozen=True)
class UploadPayload:
    """Everything the storage gateway needs to persist one cover."""

    book_id: str
    extension: str
    source: str
    data: bytes
    mime_type: str
    processed: ProcessedCover
    origin_url: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)
