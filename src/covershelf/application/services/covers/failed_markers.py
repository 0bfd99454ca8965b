# Hey future me - FAILED marker utilities for cover fetches!
#
# Failed attempts are recorded in book_image_links.download_error as
#     FAILED|{reason}|{ISO timestamp}
#
# 1. WHY it failed: the reason code of the typed pipeline error
# 2. WHEN it failed: drives the retry cool-down
# 3. Always starts with FAILED, so a plain prefix check finds them
"""FAILED marker utilities for cover fetches."""

from __future__ import annotations

from datetime import UTC, datetime

from covershelf.domain.exceptions import CoverPipelineError, ProcessingRejected


class FailedMarkerReason:
    """Standard failure reason codes.

    They are stored in the DB, don't rename them.
    """

    UNSAFE_URL = "unsafe_url"
    DOWNLOAD_ERROR = "download_error"
    NOT_AVAILABLE = "not_available"  # 404/410, provider has no image
    TIMEOUT = "timeout"
    HTTP_ERROR = "http_error"
    PROCESSING_REJECTED = "processing_rejected"
    TOO_LARGE = "too_large"
    UPLOAD_ERROR = "upload_error"
    UNKNOWN = "unknown"


# Retry failed covers after this many hours
FAILED_RETRY_HOURS = 24


def make_failed_marker(reason: str, now: datetime | None = None) -> str:
    """Create a FAILED marker with reason and timestamp.

    Returns:
        Marker string like "FAILED|not_available|2025-01-15T10:30:00+00:00"
    """
    timestamp = (now or datetime.now(UTC)).isoformat()
    return f"FAILED|{reason}|{timestamp}"


def marker_for_error(error: CoverPipelineError, now: datetime | None = None) -> str:
    """Marker for a typed pipeline error.

    Processing rejections keep the processor's own reason as a suffix
    (processing_rejected:too_small) so we can tell junk images apart later.
    """
    reason = error.reason
    if isinstance(error, ProcessingRejected) and reason != error.default_reason:
        reason = f"{FailedMarkerReason.PROCESSING_REJECTED}:{reason}"
    return make_failed_marker(reason, now)


def parse_failed_marker(marker: str | None) -> tuple[bool, str | None, datetime | None]:
    """Parse a FAILED marker to extract reason and timestamp.

    Returns:
        Tuple of (is_failed, reason, failed_at)
    """
    if not marker or not marker.startswith("FAILED"):
        return (False, None, None)

    parts = marker.split("|", 2)
    if len(parts) >= 3:
        reason = parts[1]
        try:
            failed_at = datetime.fromisoformat(parts[2].replace("Z", "+00:00"))
        except ValueError:
            failed_at = None
        if failed_at is not None and failed_at.tzinfo is None:
            failed_at = failed_at.replace(tzinfo=UTC)
        return (True, reason, failed_at)

    # Bare "FAILED" without details
    return (True, FailedMarkerReason.UNKNOWN, None)


def should_retry_failed(
    marker: str | None,
    retry_hours: int = FAILED_RETRY_HOURS,
    now: datetime | None = None,
) -> bool:
    """Check if a FAILED marker is old enough to retry.

    Markers without a timestamp are always retried.
    """
    is_failed, _, failed_at = parse_failed_marker(marker)
    if not is_failed:
        return False
    if failed_at is None:
        return True
    hours_since_failure = ((now or datetime.now(UTC)) - failed_at).total_seconds() / 3600
    return hours_since_failure >= retry_hours


# Failures that retrying right away won't fix. Transient ones (timeouts, upload
# errors) are retried on the next resolution.
PERMANENT_REASONS = frozenset(
    {
        FailedMarkerReason.UNSAFE_URL,
        FailedMarkerReason.NOT_AVAILABLE,
        FailedMarkerReason.PROCESSING_REJECTED,
        FailedMarkerReason.TOO_LARGE,
    }
)


def is_cooling_down(
    marker: str | None,
    retry_hours: int = FAILED_RETRY_HOURS,
    now: datetime | None = None,
) -> bool:
    """True if the marker is a permanent failure still inside the retry window."""
    is_failed, reason, _ = parse_failed_marker(marker)
    if not is_failed or reason is None:
        return False
    # processing_rejected:too_small -> processing_rejected
    if reason.split(":", 1)[0] not in PERMANENT_REASONS:
        return False
    return not should_retry_failed(marker, retry_hours, now)
