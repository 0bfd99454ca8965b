"""Fetch-and-process pipeline for ONE cover URL.

Hey future me - this is a small state machine. Every attempt walks these stages in
order and stops at the first terminal state (in brackets):

    REQUESTED
      └─► VALIDATING ──► [BLOCKED]              SSRF validator said no (not retryable)
            └─► DOWNLOADING ──► [DOWNLOAD_FAILED] network/timeout/HTTP (retryable)
                  │          ──► [RATE_LIMITED] / [CIRCUIT_OPEN]  resilience said "back off"
                  └─► PROCESSING ──► [PROCESSING_REJECTED]  image unusable (not retryable)
                        └─► SIZE_CHECK ──► [TOO_LARGE]       processed bytes over the ceiling
                              └─► UPLOADING ──► [UPLOAD_FAILED] storage error (retryable)
                                    └─► [PERSISTED]

Blank book id / url never reach VALIDATING: [INVALID_INPUT], no network call at all.

CANCELLATION: the download runs inside the caller's task. If the task is cancelled
(or the resilience timeout fires) we never get to UPLOADING - CancelledError is
re-raised after logging CANCELLED, a timeout ends in DOWNLOAD_FAILED. Either way the
storage gateway is not called.

The pipeline does NOT write cover rows. It returns a FetchOutcome and the
resolution service decides what to persist.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum

from covershelf.domain.entities import (
    CoverDescriptor,
    DownloadedCover,
    ProcessedCover,
    UploadPayload,
)
from covershelf.domain.exceptions import (
    CircuitOpenError,
    CoverPipelineError,
    CoverTooLarge,
    DownloadFailure,
    ProcessingRejected,
    RateLimitedError,
    UnsafeUrlError,
    UploadFailure,
)
from covershelf.domain.ports import (
    ICoverDownloader,
    ICoverProcessor,
    ICoverStorageGateway,
)
from covershelf.infrastructure.resilience import ResilienceOutcome, ResiliencePolicy
from covershelf.infrastructure.security import UrlSafetyValidator

logger = logging.getLogger(__name__)


class FetchState(str, Enum):
    """States of one fetch attempt."""

    REQUESTED = "requested"
    INVALID_INPUT = "invalid_input"
    VALIDATING = "validating"
    BLOCKED = "blocked"
    DOWNLOADING = "downloading"
    DOWNLOAD_FAILED = "download_failed"
    RATE_LIMITED = "rate_limited"
    CIRCUIT_OPEN = "circuit_open"
    PROCESSING = "processing"
    PROCESSING_REJECTED = "processing_rejected"
    SIZE_CHECK = "size_check"
    TOO_LARGE = "too_large"
    UPLOADING = "uploading"
    UPLOAD_FAILED = "upload_failed"
    PERSISTED = "persisted"
    CANCELLED = "cancelled"


TERMINAL_STATES = frozenset(
    {
        FetchState.INVALID_INPUT,
        FetchState.BLOCKED,
        FetchState.DOWNLOAD_FAILED,
        FetchState.RATE_LIMITED,
        FetchState.CIRCUIT_OPEN,
        FetchState.PROCESSING_REJECTED,
        FetchState.TOO_LARGE,
        FetchState.UPLOAD_FAILED,
        FetchState.PERSISTED,
        FetchState.CANCELLED,
    }
)

# Back-off outcomes: the provider protected itself, nothing is wrong with the cover
BACKOFF_STATES = frozenset({FetchState.RATE_LIMITED, FetchState.CIRCUIT_OPEN})


@dataclass
class FetchOutcome:
    """Result of one pipeline run."""

    book_id: str
    url: str
    state: FetchState = FetchState.REQUESTED
    history: list[FetchState] = field(default_factory=lambda: [FetchState.REQUESTED])
    descriptor: CoverDescriptor | None = None
    processed: ProcessedCover | None = None
    error: CoverPipelineError | None = None

    @property
    def succeeded(self) -> bool:
        return self.state is FetchState.PERSISTED

    @property
    def retryable(self) -> bool:
        return self.error.retryable if self.error is not None else False

    def advance(self, state: FetchState) -> None:
        self.state = state
        self.history.append(state)


class CoverFetchPipeline:
    """Validate → download → process → size check → upload, for one URL."""

    def __init__(
        self,
        url_validator: UrlSafetyValidator,
        downloader: ICoverDownloader,
        processor: ICoverProcessor,
        storage: ICoverStorageGateway,
        max_file_size_bytes: int,
        download_policy: ResiliencePolicy | None = None,
    ) -> None:
        """Initialize pipeline.

        Args:
            url_validator: SSRF validator, runs before every download
            downloader: Bounded HTTP downloader
            processor: Image processor (black box)
            storage: Storage gateway for processed covers
            max_file_size_bytes: Ceiling for PROCESSED bytes
            download_policy: Resilience policy guarding downloads (None = unguarded)
        """
        self.url_validator = url_validator
        self.downloader = downloader
        self.processor = processor
        self.storage = storage
        self.max_file_size_bytes = max_file_size_bytes
        self.download_policy = download_policy

    async def run(self, book_id: str, url: str, source: str = "unknown") -> FetchOutcome:
        """Run one fetch attempt. Never raises except for cancellation."""
        outcome = FetchOutcome(book_id=book_id, url=url)

        if not book_id or not book_id.strip() or not url or not url.strip():
            return self._fail(
                outcome,
                FetchState.INVALID_INPUT,
                CoverPipelineError(
                    "Book id and url must not be blank", reason="invalid_input"
                ),
            )
        url = url.strip()

        outcome.advance(FetchState.VALIDATING)
        if not await self.url_validator.is_allowed_async(url):
            return self._fail(outcome, FetchState.BLOCKED, UnsafeUrlError(url))

        outcome.advance(FetchState.DOWNLOADING)
        try:
            downloaded = await self._download(url)
        except asyncio.CancelledError:
            self._log_cancelled(outcome)
            raise
        except UnsafeUrlError as e:
            return self._fail(outcome, FetchState.BLOCKED, e)
        except RateLimitedError as e:
            return self._fail(outcome, FetchState.RATE_LIMITED, e)
        except CircuitOpenError as e:
            return self._fail(outcome, FetchState.CIRCUIT_OPEN, e)
        except CoverPipelineError as e:
            return self._fail(outcome, FetchState.DOWNLOAD_FAILED, e)

        outcome.advance(FetchState.PROCESSING)
        try:
            processed = await self.processor.process(downloaded.data, book_id)
        except asyncio.CancelledError:
            self._log_cancelled(outcome)
            raise
        except Exception as e:
            logger.exception("Cover processor crashed for book %s", book_id)
            return self._fail(
                outcome,
                FetchState.PROCESSING_REJECTED,
                ProcessingRejected(f"Processor error: {e}", reason="processor_error"),
            )
        outcome.processed = processed
        if not processed.success:
            reason = processed.rejection_reason or "processing_rejected"
            return self._fail(
                outcome,
                FetchState.PROCESSING_REJECTED,
                ProcessingRejected(f"Processor rejected cover: {reason}", reason=reason),
            )

        outcome.advance(FetchState.SIZE_CHECK)
        if len(processed.data) > self.max_file_size_bytes:
            return self._fail(
                outcome,
                FetchState.TOO_LARGE,
                CoverTooLarge(len(processed.data), self.max_file_size_bytes),
            )

        outcome.advance(FetchState.UPLOADING)
        payload = UploadPayload(
            book_id=book_id,
            extension=processed.extension,
            source=source,
            data=processed.data,
            mime_type=processed.mime_type,
            processed=processed,
            origin_url=url,
        )
        try:
            descriptor = await self.storage.upload_processed_cover(payload)
        except asyncio.CancelledError:
            self._log_cancelled(outcome)
            raise
        except UploadFailure as e:
            return self._fail(outcome, FetchState.UPLOAD_FAILED, e)
        except Exception as e:
            return self._fail(
                outcome,
                FetchState.UPLOAD_FAILED,
                UploadFailure(f"Storage gateway error: {e}"),
            )

        outcome.descriptor = descriptor
        outcome.advance(FetchState.PERSISTED)
        logger.info(
            "Cover stored for book %s",
            book_id,
            extra={
                "book_id": book_id,
                "state": outcome.state.value,
                "url": url,
                "storage_key": descriptor.storage_key,
            },
        )
        return outcome

    async def _download(self, url: str) -> DownloadedCover:
        """Download through the resilience policy, mapping its outcome to exceptions."""
        if self.download_policy is None:
            return await self.downloader.download(url)

        result = await self.download_policy.execute(lambda: self.downloader.download(url))
        if result.outcome is ResilienceOutcome.SUCCESS and result.value is not None:
            return result.value
        if result.outcome is ResilienceOutcome.RATE_LIMITED:
            raise RateLimitedError(f"Download rate limited for {url}")
        if result.outcome is ResilienceOutcome.CIRCUIT_OPEN:
            raise CircuitOpenError(f"Download circuit open for {url}")
        if result.outcome is ResilienceOutcome.TIMED_OUT:
            raise DownloadFailure(f"Download timed out for {url}", reason="timeout")
        if isinstance(result.error, CoverPipelineError):
            raise result.error
        raise DownloadFailure(f"Download failed for {url}: {result.error}")

    def _fail(
        self, outcome: FetchOutcome, state: FetchState, error: CoverPipelineError
    ) -> FetchOutcome:
        outcome.error = error
        outcome.advance(state)
        log = logger.info if state in BACKOFF_STATES else logger.warning
        log(
            "Cover fetch for book %s ended in %s: %s",
            outcome.book_id,
            state.value,
            error.message,
            extra={
                "book_id": outcome.book_id,
                "state": state.value,
                "url": outcome.url,
                "reason": error.reason,
                "retryable": error.retryable,
            },
        )
        return outcome

    @staticmethod
    def _log_cancelled(outcome: FetchOutcome) -> None:
        outcome.advance(FetchState.CANCELLED)
        logger.info(
            "Cover fetch for book %s cancelled during %s",
            outcome.book_id,
            outcome.history[-2].value,
            extra={"book_id": outcome.book_id, "url": outcome.url},
        )
