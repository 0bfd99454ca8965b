"""Domain exceptions."""

from typing import Any


class DomainException(Exception):
    """Base exception for all domain exceptions."""

    # Hey future me, we store message as an attribute so code can inspect it without
    # parsing str(exception). Never raise this directly - use a specific subclass.
    def __init__(self, message: str, *args: Any) -> None:
        super().__init__(message, *args)
        self.message = message


class ValidationError(DomainException):
    """Input validation failed.

    Example:
        raise ValidationError("Invalid book id for storage key: ../etc")
    """

    pass


class ConfigurationError(DomainException):
    """Application misconfiguration.

    Example:
        raise ConfigurationError("Storage base path is not a directory")
    """

    pass


# =============================================================================
# Cover pipeline errors
# Hey future me - every stage of the fetch pipeline converts its own failures into
# one of these. The orchestrator reads .retryable and .reason, the resilience policy
# reads .trips_breaker. Nothing else needs to know about httpx or Pillow errors.
# =============================================================================


class CoverPipelineError(DomainException):
    """Base for typed cover fetch failures."""

    retryable: bool = False
    trips_breaker: bool = True
    default_reason: str = "unknown"

    def __init__(
        self,
        message: str,
        reason: str | None = None,
        retryable: bool | None = None,
    ) -> None:
        super().__init__(message)
        self.reason = reason or self.default_reason
        if retryable is not None:
            self.retryable = retryable


class UnsafeUrlError(CoverPipelineError):
    """URL blocked by the safety validator. Same URL, same verdict."""

    trips_breaker = False
    default_reason = "unsafe_url"

    def __init__(self, url: str) -> None:
        super().__init__(f"Blocked unsafe cover URL: {url}")
        self.url = url


class DownloadFailure(CoverPipelineError):
    """Network, timeout or HTTP error while fetching cover bytes."""

    retryable = True
    default_reason = "download_error"

    def __init__(
        self,
        message: str,
        reason: str | None = None,
        http_status: int | None = None,
        retryable: bool | None = None,
    ) -> None:
        super().__init__(message, reason=reason, retryable=retryable)
        self.http_status = http_status
        # 404/410 etc. mean "no cover here", not "provider is sick".
        # 429 and 5xx are real faults and should count against the breaker.
        if http_status is not None and 400 <= http_status < 500 and http_status != 429:
            self.trips_breaker = False


class ProcessingRejected(CoverPipelineError):
    """Image processor declared the bytes unusable."""

    trips_breaker = False
    default_reason = "processing_rejected"


class CoverTooLarge(CoverPipelineError):
    """Processed bytes exceed the configured ceiling."""

    trips_breaker = False
    default_reason = "too_large"

    def __init__(self, size: int, limit: int) -> None:
        super().__init__(f"Processed cover is {size} bytes, limit is {limit}")
        self.size = size
        self.limit = limit


class UploadFailure(CoverPipelineError):
    """Storage gateway error during upload."""

    retryable = True
    default_reason = "upload_error"


class RateLimitedError(CoverPipelineError):
    """Provider rate limit exhausted - back off, don't hammer."""

    retryable = True
    trips_breaker = False
    default_reason = "rate_limited"


class CircuitOpenError(CoverPipelineError):
    """Circuit breaker is open for the provider."""

    retryable = True
    trips_breaker = False
    default_reason = "circuit_open"


class ProviderNoResult(CoverPipelineError):
    """Provider answered but has no cover (e.g. 404 for an ISBN).

    This is a business answer, NOT a fault. It must never trip the breaker.
    """

    trips_breaker = False
    default_reason = "not_available"


__all__ = [
    "CircuitOpenError",
    "ConfigurationError",
    "CoverPipelineError",
    "CoverTooLarge",
    "DomainException",
    "DownloadFailure",
    "ProcessingRejected",
    "ProviderNoResult",
    "RateLimitedError",
    "UnsafeUrlError",
    "UploadFailure",
    "ValidationError",
]
