"""Tests for FAILED marker utilities."""

from datetime import UTC, datetime, timedelta

from covershelf.application.services.covers.failed_markers import (
    FailedMarkerReason,
    is_cooling_down,
    make_failed_marker,
    marker_for_error,
    parse_failed_marker,
    should_retry_failed,
)
from covershelf.domain.exceptions import DownloadFailure, ProcessingRejected, UnsafeUrlError

NOW = datetime(2025, 1, 15, 10, 30, tzinfo=UTC)


class TestFailedMarkers:
    """Test marker creation and parsing."""

    def test_make_marker(self) -> None:
        """Test the marker layout."""
        assert make_failed_marker("timeout", NOW) == "FAILED|timeout|2025-01-15T10:30:00+00:00"

    def test_marker_for_errors(self) -> None:
        """Test reasons come from the typed errors."""
        assert marker_for_error(UnsafeUrlError("https://x"), NOW).startswith("FAILED|unsafe_url|")
        assert marker_for_error(
            DownloadFailure("404", reason=FailedMarkerReason.NOT_AVAILABLE), NOW
        ).startswith("FAILED|not_available|")
        assert marker_for_error(
            ProcessingRejected("tiny", reason="too_small"), NOW
        ).startswith("FAILED|processing_rejected:too_small|")
        assert marker_for_error(ProcessingRejected("generic"), NOW).startswith(
            "FAILED|processing_rejected|"
        )

    def test_parse_round_trip(self) -> None:
        """Test parse gives back reason and timestamp."""
        assert parse_failed_marker(make_failed_marker("http_error", NOW)) == (
            True,
            "http_error",
            NOW,
        )

    def test_parse_variants(self) -> None:
        """Test bare, naive, broken and non-markers."""
        assert parse_failed_marker("FAILED") == (True, "unknown", None)
        assert parse_failed_marker("FAILED|timeout|2025-01-15T10:30:00") == (True, "timeout", NOW)
        assert parse_failed_marker("FAILED|timeout|yesterday") == (True, "timeout", None)
        assert parse_failed_marker("https://covers.example/1.jpg") == (False, None, None)
        assert parse_failed_marker(None) == (False, None, None)


class TestShouldRetry:
    """Test the retry cool-down."""

    def test_recent_failure_waits(self) -> None:
        """Test failures younger than the cool-down are not retried."""
        marker = make_failed_marker("timeout", NOW - timedelta(hours=2))
        assert should_retry_failed(marker, 24, NOW) is False

    def test_old_failure_retried(self) -> None:
        """Test failures older than the cool-down are retried."""
        marker = make_failed_marker("timeout", NOW - timedelta(hours=25))
        assert should_retry_failed(marker, 24, NOW) is True

    def test_markers_without_timestamp_retried(self) -> None:
        """Test bare markers are retried and non-markers are not."""
        assert should_retry_failed("FAILED", 24, NOW) is True
        assert should_retry_failed(None, 24, NOW) is False


class TestIsCoolingDown:
    """Test which recent failures block a retry."""

    def test_recent_permanent_failures_wait(self) -> None:
        """Test blocked, rejected and missing covers sit out the window."""
        recent = NOW - timedelta(hours=1)
        for reason in ("unsafe_url", "not_available", "processing_rejected:too_small", "too_large"):
            assert is_cooling_down(make_failed_marker(reason, recent), 24, NOW) is True, reason

    def test_transient_failures_retry_at_once(self) -> None:
        """Test timeouts and upload errors never wait."""
        recent = NOW - timedelta(hours=1)
        assert is_cooling_down(make_failed_marker("timeout", recent), 24, NOW) is False
        assert is_cooling_down(make_failed_marker("upload_error", recent), 24, NOW) is False

    def test_window_expires(self) -> None:
        """Test old or undated markers and clean rows are retried."""
        old = make_failed_marker("unsafe_url", NOW - timedelta(hours=25))
        assert is_cooling_down(old, 24, NOW) is False
        assert is_cooling_down("FAILED", 24, NOW) is False
        assert is_cooling_down(None, 24, NOW) is False
