"""Tests for storage key naming."""

import pytest

from covershelf.domain.exceptions import ValidationError
from covershelf.domain.value_objects.storage_keys import (
    candidate_keys,
    key_for,
    normalize_extension,
    provenance_key_for,
)


class TestKeyFor:
    """Test storage key generation."""

    def test_key_shape(self) -> None:
        """Test the exact key layout existing objects rely on."""
        assert (
            key_for("abc123", ".jpg", "google-books")
            == "images/book-covers/abc123-lg-google-books.jpg"
        )

    def test_equivalent_inputs_give_same_key(self) -> None:
        """Test extension and label spelling don't change the key."""
        assert key_for("abc123", "JPG", "Google Books") == key_for(
            "abc123", ".jpg", "google-books"
        )

    def test_unknown_source(self) -> None:
        """Test blank source labels use the unknown segment."""
        assert key_for("b-1", "png", None) == "images/book-covers/b-1-lg-unknown.png"

    @pytest.mark.parametrize("book_id", ["", "  ", "../etc", "a/b", "abc 123", "ünï"])
    def test_invalid_book_id_rejected(self, book_id: str) -> None:
        """Test ids outside [A-Za-z0-9_-] are rejected."""
        with pytest.raises(ValidationError):
            key_for(book_id, ".jpg", "google-books")

    def test_different_sources_give_different_keys(self) -> None:
        """Test the mapping stays injective across sources."""
        assert key_for("x", ".jpg", "open-library") != key_for("x", ".jpg", "longitood")


class TestNormalizeExtension:
    """Test extension normalization."""

    @pytest.mark.parametrize(
        ("extension", "expected"),
        [
            ("JPG", ".jpg"),
            (".PNG", ".png"),
            (" webp ", ".webp"),
            ("jpeg", ".jpeg"),
            (".svg", ".svg"),
            ("", ".jpg"),
            (None, ".jpg"),
            ("exe", ".jpg"),
            (".tar.gz", ".jpg"),
        ],
    )
    def test_normalize(self, extension: str | None, expected: str) -> None:
        """Test normalization and the .jpg default."""
        assert normalize_extension(extension) == expected


class TestProvenanceKey:
    """Test provenance key derivation."""

    def test_swaps_extension(self) -> None:
        """Test the image extension becomes .txt under the provenance prefix."""
        assert (
            provenance_key_for("images/book-covers/abc-lg-google-books.JPG")
            == "images/provenance-data/abc-lg-google-books.txt"
        )

    def test_appends_when_no_image_extension(self) -> None:
        """Test .txt is appended to names without an image extension."""
        assert provenance_key_for("images/book-covers/abc") == "images/provenance-data/abc.txt"

    def test_blank_key_rejected(self) -> None:
        """Test blank keys raise."""
        with pytest.raises(ValidationError):
            provenance_key_for("  ")


class TestCandidateKeys:
    """Test probe key expansion."""

    def test_order_and_dedup(self) -> None:
        """Test keys follow label order, then spelling order, without duplicates."""
        keys = candidate_keys("abc", ".jpg", ["Google Books", "google-books", "unknown"])
        assert keys == [
            "images/book-covers/abc-lg-google books.jpg",
            "images/book-covers/abc-lg-google-books.jpg",
            "images/book-covers/abc-lg-google_books.jpg",
            "images/book-covers/abc-lg-unknown.jpg",
        ]

    def test_write_key_is_always_probed(self) -> None:
        """Test the key written for a label is among its probe keys."""
        written = key_for("abc", "jpg", "Open Library")
        assert written in candidate_keys("abc", "jpg", ["Open Library"])
