"""Cover source labels - the closed enum plus the free-form label normalizer.

Hey future me - provider labels come in every shape imaginable: "Google Books",
"GOOGLE_BOOKS", "google-books", legacy download tags like "S3" or "Amazon CDN".
They all end up inside storage keys, so normalization MUST be deterministic and
identical on the write path (key generation) and the read path (key probing).

Two stages:
1. Try the closed enum: upper-case, squash non-alphanumerics to "_", match a name.
2. Otherwise slugify: lowercase, anything non url-safe becomes "-", collapse, trim.

Blank input is "unknown". Slugify never returns an empty segment.
"""

from __future__ import annotations

import re
from enum import Enum

UNKNOWN_SEGMENT = "unknown"

_NON_ALNUM_UPPER = re.compile(r"[^A-Z0-9]+")
_WHITESPACE = re.compile(r"\s+")
_NON_SLUG = re.compile(r"[^a-z0-9_-]")
_DASH_RUNS = re.compile(r"-+")


class CoverImageSource(Enum):
    """Known cover sources and their storage key segment."""

    GOOGLE_BOOKS = "google-books"
    OPEN_LIBRARY = "open-library"
    LONGITOOD = "longitood"
    LOCAL_CACHE = "local-cache"
    S3_CACHE = "s3-cache"
    MOCK = "mock"
    NONE = "none"
    UNKNOWN = "unknown"
    # Wildcards used by queries, never valid as a concrete label
    ANY = "any"
    UNDEFINED = "undefined"

    @property
    def key_segment(self) -> str:
        """Segment used inside storage keys."""
        if self in (CoverImageSource.ANY, CoverImageSource.UNDEFINED):
            return UNKNOWN_SEGMENT
        return self.value


_NOT_MAPPABLE = {CoverImageSource.ANY, CoverImageSource.UNDEFINED}


def to_enum_candidate(label: str) -> str:
    """Turn a label into the name it would have as a CoverImageSource member."""
    return _NON_ALNUM_UPPER.sub("_", label.strip().upper()).strip("_")


def map_to_source(label: str | None) -> CoverImageSource | None:
    """Map a free-form label onto the closed enum, or None if it doesn't fit."""
    if label is None or not label.strip():
        return None
    # Exact member names only. "S3" is NOT S3_CACHE, it slugifies to "s3" like the
    # keys already in the bucket.
    candidate = to_enum_candidate(label)
    member = CoverImageSource.__members__.get(candidate)
    if member is None or member in _NOT_MAPPABLE:
        return None
    return member


def slugify_label(label: str) -> str:
    """Slugify a label that didn't map to a known source."""
    slug = label.strip().lower()
    slug = _WHITESPACE.sub("-", slug)
    slug = _NON_SLUG.sub("-", slug)
    slug = _DASH_RUNS.sub("-", slug)
    slug = slug.strip("-")
    return slug or UNKNOWN_SEGMENT


def normalize_source_label(label: str | CoverImageSource | None) -> str:
    """Normalize any source label to its storage key segment.

    Examples:
        "Google Books"  -> "google-books"
        "google_books"  -> "google-books"
        "Amazon CDN!"   -> "amazon-cdn"
        "" / None       -> "unknown"
    """
    if isinstance(label, CoverImageSource):
        return label.key_segment
    if label is None or not label.strip():
        return UNKNOWN_SEGMENT
    mapped = map_to_source(label)
    if mapped is not None:
        return mapped.key_segment
    return slugify_label(label)


def label_variants(label: str | None) -> list[str]:
    """All segment spellings a label may have been stored under, most literal first.

    Hey future me - this is for reading OLD objects. Earlier writers used the raw
    label, or replaced spaces differently, so we probe every spelling instead of
    running a backfill. Order is fixed and duplicates are dropped.
    """
    raw = (label or "").strip().lower()
    canonical = normalize_source_label(label)
    variants = [
        raw,
        raw.replace(" ", "-"),
        raw.replace(" ", "_"),
        canonical,
        canonical.replace("-", "_"),
        canonical.replace("_", "-"),
    ]
    seen: list[str] = []
    for variant in variants:
        if variant and variant not in seen:
            seen.append(variant)
    return seen


def guess_source_from_url(url: str) -> str:
    """Guess the source label from a cover URL.

    Simple host heuristic, used when a producer hands us bare URLs without
    telling us where they came from.
    """
    url_lower = url.lower()
    if "books.google" in url_lower or "googleusercontent" in url_lower:
        return CoverImageSource.GOOGLE_BOOKS.value
    elif "openlibrary.org" in url_lower:
        return CoverImageSource.OPEN_LIBRARY.value
    elif "longitood" in url_lower:
        return CoverImageSource.LONGITOOD.value
    elif "amazon" in url_lower:
        return "amazon"
    return UNKNOWN_SEGMENT
