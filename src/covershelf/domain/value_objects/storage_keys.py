"""Storage key naming for cover objects.

Hey future me - these keys are a COMPATIBILITY CONTRACT. Objects already in storage
were written under exactly this shape, so any change here orphans them:

    images/book-covers/{book_id}-lg-{source_segment}{extension}

book_id is restricted to [A-Za-z0-9_-] so nobody can smuggle "../" into a key.
Extensions outside the closed image set silently become ".jpg".
"""

from __future__ import annotations

import re
from collections.abc import Iterable

from covershelf.domain.exceptions import ValidationError
from covershelf.domain.value_objects.cover_source import (
    CoverImageSource,
    label_variants,
    normalize_source_label,
)

COVER_KEY_PREFIX = "images/book-covers/"
PROVENANCE_KEY_PREFIX = "images/provenance-data/"
DEFAULT_EXTENSION = ".jpg"
SIZE_MARKER = "lg"

_BOOK_ID = re.compile(r"[A-Za-z0-9_-]+")
_ALLOWED_EXTENSION = re.compile(r"\.(jpg|jpeg|png|gif|webp|svg)")
_IMAGE_SUFFIX = re.compile(r"\.(jpg|jpeg|png|gif|webp|svg)$", re.IGNORECASE)


def validate_book_id(book_id: str | None) -> str:
    """Return the book id if it is safe to embed in a key.

    Raises:
        ValidationError: If the id is blank or has characters outside [A-Za-z0-9_-]
    """
    if book_id is None or not book_id.strip():
        raise ValidationError("Book id must not be blank")
    if not _BOOK_ID.fullmatch(book_id):
        raise ValidationError(f"Invalid book id for storage key: {book_id!r}")
    return book_id


def normalize_extension(extension: str | None) -> str:
    """Normalize to a lowercase, dot-prefixed image extension (default ".jpg")."""
    if extension is None or not extension.strip():
        return DEFAULT_EXTENSION
    normalized = extension.strip().lower()
    if not normalized.startswith("."):
        normalized = "." + normalized
    if not _ALLOWED_EXTENSION.fullmatch(normalized):
        return DEFAULT_EXTENSION
    return normalized


def key_for(
    book_id: str,
    extension: str | None,
    source_label: str | CoverImageSource | None,
) -> str:
    """Build the storage key for a book's cover.

    Example:
        key_for("abc123", "JPG", "Google Books")
        -> "images/book-covers/abc123-lg-google-books.jpg"
    """
    validate_book_id(book_id)
    segment = normalize_source_label(source_label)
    return _build_key(book_id, segment, normalize_extension(extension))


def _build_key(book_id: str, segment: str, extension: str) -> str:
    return f"{COVER_KEY_PREFIX}{book_id}-{SIZE_MARKER}-{segment}{extension}"


def provenance_key_for(cover_key: str) -> str:
    """Derive the sibling provenance text key for a cover key.

    The image extension is swapped for ".txt" (or ".txt" is appended when there is
    none) and the file name moves under the provenance prefix.

    Raises:
        ValidationError: If the cover key is blank
    """
    if cover_key is None or not cover_key.strip():
        raise ValidationError("Cover key must not be blank")
    filename = cover_key.rsplit("/", 1)[-1]
    text_name, replaced = _IMAGE_SUFFIX.subn(".txt", filename)
    if not replaced:
        text_name = filename + ".txt"
    return PROVENANCE_KEY_PREFIX + text_name


def candidate_keys(
    book_id: str,
    extension: str | None,
    source_labels: Iterable[str | None],
) -> list[str]:
    """All keys a cover may live under, in probe order.

    Every label expands to its legacy spellings (see label_variants). Duplicates
    across labels are dropped, first occurrence wins.
    """
    validate_book_id(book_id)
    ext = normalize_extension(extension)
    keys: list[str] = []
    for label in source_labels:
        for segment in label_variants(label):
            key = _build_key(book_id, segment, ext)
            if key not in keys:
                keys.append(key)
    return keys
