"""Cover resolution - the entry points callers use.

Hey future me - two operations, both NEVER raise for "no cover":

resolve_cover(book_id, candidate_urls)
    Tries candidates in the caller's order through the fetch pipeline. First one
    that makes it to PERSISTED wins and is upserted. Failures are recorded as
    FAILED markers on their variant row and we move on to the next candidate.
    Rate-limited / circuit-open attempts are NOT recorded (nothing is wrong with
    the cover, the provider just asked us to back off).
    A URL that failed permanently (blocked, rejected, 404) on the same variant is
    skipped until its marker is older than failed_retry_hours.
    No uploads possible (storage switched off)? Then we validate the URL and store
    it as a hotlink instead.

fetch_existing_cover(book_id)
    Read-only. Ranks the stored rows (errored rows never surface) and falls back to
    probing storage keys for covers written before the DB knew about them.

Zero usable candidates → None → the UI renders the placeholder (get_display_url).
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from sqlalchemy.exc import SQLAlchemyError

from covershelf.config import CoverFetchSettings
from covershelf.domain.entities import CoverCandidateUrl, CoverDescriptor
from covershelf.domain.exceptions import CoverPipelineError, UnsafeUrlError, ValidationError
from covershelf.domain.ports import ICoverStorageGateway
from covershelf.domain.value_objects.cover_ranking import build_descriptor, is_high_resolution
from covershelf.domain.value_objects.cover_source import (
    guess_source_from_url,
    normalize_source_label,
)
from covershelf.domain.value_objects.storage_keys import DEFAULT_EXTENSION, validate_book_id
from covershelf.infrastructure.persistence import (
    BookRepository,
    CoverCandidateRepository,
    Database,
)
from covershelf.infrastructure.security import UrlSafetyValidator

from .candidate_collector import CoverCandidateCollector
from .failed_markers import is_cooling_down, marker_for_error
from .fetch_pipeline import BACKOFF_STATES, CoverFetchPipeline, FetchState

logger = logging.getLogger(__name__)

CandidateInput = str | CoverCandidateUrl


class CoverResolutionService:
    """Resolves, stores and looks up book covers."""

    def __init__(
        self,
        db: Database,
        pipeline: CoverFetchPipeline,
        storage: ICoverStorageGateway,
        url_validator: UrlSafetyValidator,
        settings: CoverFetchSettings,
        collector: CoverCandidateCollector | None = None,
    ) -> None:
        self.db = db
        self.pipeline = pipeline
        self.storage = storage
        self.url_validator = url_validator
        self.settings = settings
        self.collector = collector

    @staticmethod
    def _as_candidate(candidate: CandidateInput) -> CoverCandidateUrl:
        if isinstance(candidate, CoverCandidateUrl):
            return candidate
        url = candidate.strip()
        return CoverCandidateUrl(url=url, source=guess_source_from_url(url))

    async def resolve_cover(
        self, book_id: str, candidate_urls: Sequence[CandidateInput]
    ) -> CoverDescriptor | None:
        """Resolve and store a cover from candidate URLs, best effort.

        Args:
            book_id: Catalog item id ([A-Za-z0-9_-]+)
            candidate_urls: URLs (or CoverCandidateUrl) in preference order

        Returns:
            Descriptor of the stored cover, or None if no candidate worked
        """
        try:
            validate_book_id(book_id)
        except ValidationError as e:
            logger.warning("Not resolving cover: %s", e.message)
            return None

        candidates = [self._as_candidate(c) for c in candidate_urls if c]
        candidates = [c for c in candidates if c.url.strip()]
        if not candidates:
            logger.info("No cover candidates for book %s", book_id)
            return None

        async with self.db.session_scope() as session:
            await BookRepository(session).ensure_exists(book_id)

        upload_available = self.storage.is_upload_available()
        for candidate in candidates:
            if await self._is_cooling_down(book_id, candidate):
                logger.debug(
                    "Skipping %s for book %s, it failed recently", candidate.url, book_id
                )
                continue
            if upload_available:
                descriptor = await self._fetch_and_store(book_id, candidate)
            else:
                descriptor = await self._store_hotlink(book_id, candidate)
            if descriptor is not None:
                return descriptor

        logger.info(
            "No cover resolved for book %s after %d candidates",
            book_id,
            len(candidates),
            extra={"book_id": book_id},
        )
        return None

    async def resolve_for_isbn(
        self,
        book_id: str,
        isbn: str,
        extra_candidates: Sequence[CandidateInput] = (),
    ) -> CoverDescriptor | None:
        """Resolve a cover from caller candidates first, then provider lookups."""
        candidates: list[CandidateInput] = list(extra_candidates)
        if self.collector is not None:
            candidates.extend(await self.collector.collect(isbn))
        return await self.resolve_cover(book_id, candidates)

    async def _is_cooling_down(self, book_id: str, candidate: CoverCandidateUrl) -> bool:
        """Same URL failed permanently on this variant within failed_retry_hours?"""
        async with self.db.session_scope() as session:
            row = await CoverCandidateRepository(session).get_variant(
                book_id, candidate.variant
            )
        if row is None or row.url != candidate.url:
            return False
        return is_cooling_down(row.download_error, self.settings.failed_retry_hours)

    async def _fetch_and_store(
        self, book_id: str, candidate: CoverCandidateUrl
    ) -> CoverDescriptor | None:
        outcome = await self.pipeline.run(book_id, candidate.url, candidate.source)

        if outcome.succeeded and outcome.descriptor is not None:
            descriptor = outcome.descriptor
            processed = outcome.processed
            async with self.db.session_scope() as session:
                await CoverCandidateRepository(session).upsert_variant(
                    book_id,
                    candidate.variant,
                    url=descriptor.canonical_url,
                    source=descriptor.source,
                    width=descriptor.width,
                    height=descriptor.height,
                    is_high_resolution=descriptor.high_resolution,
                    storage_key=descriptor.storage_key,
                    is_grayscale=processed.is_grayscale if processed else None,
                )
            return descriptor

        if (
            outcome.error is not None
            and outcome.state not in BACKOFF_STATES
            and outcome.state is not FetchState.INVALID_INPUT
        ):
            await self._record_failure(book_id, candidate, outcome.error)
        return None

    async def _store_hotlink(
        self, book_id: str, candidate: CoverCandidateUrl
    ) -> CoverDescriptor | None:
        """Uploads are off: keep the validated external URL as a hotlink row."""
        if not await self.url_validator.is_allowed_async(candidate.url):
            await self._record_failure(book_id, candidate, UnsafeUrlError(candidate.url))
            return None

        source = normalize_source_label(candidate.source)
        high_res = is_high_resolution(candidate.width, candidate.height)
        async with self.db.session_scope() as session:
            stored = await CoverCandidateRepository(session).upsert_variant(
                book_id,
                candidate.variant,
                url=candidate.url,
                source=source,
                width=candidate.width,
                height=candidate.height,
                is_high_resolution=high_res,
            )
        if not stored:
            return None
        return CoverDescriptor(
            canonical_url=candidate.url,
            source=source,
            width=candidate.width,
            height=candidate.height,
            high_resolution=high_res,
        )

    async def _record_failure(
        self, book_id: str, candidate: CoverCandidateUrl, error: CoverPipelineError
    ) -> None:
        # Audit trail only - losing one marker must not stop the next candidate
        try:
            async with self.db.session_scope() as session:
                await CoverCandidateRepository(session).record_failure(
                    book_id,
                    candidate.variant,
                    marker_for_error(error),
                    url=candidate.url,
                    source=normalize_source_label(candidate.source),
                )
        except SQLAlchemyError:
            logger.exception("Could not record cover failure for book %s", book_id)

    async def fetch_existing_cover(self, book_id: str) -> CoverDescriptor | None:
        """Look up the current cover without any network fetch."""
        if not book_id or not book_id.strip():
            return None

        async with self.db.session_scope() as session:
            rows = await CoverCandidateRepository(session).list_rankable(book_id)

        descriptor = build_descriptor(rows, self.storage.public_url)
        if descriptor is not None:
            return descriptor

        if not self.storage.is_read_available():
            return None
        return await self.storage.find_first_available_cover(
            book_id, DEFAULT_EXTENSION, self.settings.source_labels
        )

    def get_display_url(self, descriptor: CoverDescriptor | None) -> str:
        """URL to render: the cover, or the placeholder when there is none."""
        if descriptor is None:
            return self.settings.placeholder_url
        return descriptor.canonical_url
