# Hey future me - CoverResolutionWorker runs MANY cover resolutions at once!
#
# Each book is its own asyncio task. An asyncio.Semaphore caps how many run at the
# same time (cover_fetch.max_concurrency). That cap is deliberately independent of
# the per-provider rate limits: the limiter protects the provider, the semaphore
# protects us (sockets, memory for image bytes, DB connections).
#
# Two ways in:
# - resolve_many(requests): one-shot batch, returns {book_id: descriptor | None}.
#   Duplicate book_ids are merged into ONE resolution, never raced.
# - start() + submit(request): long-running queue consumer, like the other workers
#
# No ordering across books. One book's failure (even an unexpected exception) never
# touches another book's task. Every task gets its own correlation id so the logs of
# 8 concurrent resolutions can be told apart.
"""Cover Resolution Worker - bounded concurrent cover resolution."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from covershelf.application.services.covers import CoverResolutionService
from covershelf.domain.entities import CoverCandidateUrl, CoverDescriptor
from covershelf.infrastructure.observability.logging import set_correlation_id

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CoverResolutionRequest:
    """One book to resolve. isbn triggers provider lookups after the given URLs."""

    book_id: str
    candidate_urls: tuple[str | CoverCandidateUrl, ...] = ()
    isbn: str | None = None


def merge_requests(
    requests: Iterable[CoverResolutionRequest],
) -> list[CoverResolutionRequest]:
    """One request per book_id, keeping first-seen order.

    Duplicates are merged: candidate URLs are concatenated (first request's URLs
    first, repeats dropped) and the first non-empty isbn wins.
    """
    merged: dict[str, CoverResolutionRequest] = {}
    for request in requests:
        existing = merged.get(request.book_id)
        if existing is None:
            merged[request.book_id] = request
            continue
        urls = existing.candidate_urls + tuple(
            url for url in request.candidate_urls if url not in existing.candidate_urls
        )
        merged[request.book_id] = CoverResolutionRequest(
            book_id=request.book_id,
            candidate_urls=urls,
            isbn=existing.isbn or request.isbn,
        )
    return list(merged.values())


class CoverResolutionWorker:
    """Resolves covers for many books with bounded concurrency."""

    def __init__(
        self,
        service: CoverResolutionService,
        max_concurrency: int = 8,
        queue_size: int = 0,
    ) -> None:
        """Initialize worker.

        Args:
            service: Resolution service doing the actual work
            max_concurrency: Max books resolved at the same time
            queue_size: Max queued requests for submit() (0 = unbounded)
        """
        self.service = service
        self.max_concurrency = max_concurrency
        self._queue: asyncio.Queue[CoverResolutionRequest] = asyncio.Queue(queue_size)
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._running = False
        self._task: asyncio.Task[None] | None = None
        self._in_flight: set[asyncio.Task[Any]] = set()
        self._stats = {"resolved": 0, "no_cover": 0, "errors": 0}
        self._last_resolved_at: datetime | None = None

    async def _resolve_one(self, request: CoverResolutionRequest) -> CoverDescriptor | None:
        """Resolve one book in its own logging context. Never raises (except cancel)."""
        set_correlation_id()
        try:
            if request.isbn:
                descriptor = await self.service.resolve_for_isbn(
                    request.book_id, request.isbn, request.candidate_urls
                )
            else:
                descriptor = await self.service.resolve_cover(
                    request.book_id, request.candidate_urls
                )
        except Exception:
            self._stats["errors"] += 1
            logger.exception("Cover resolution crashed for book %s", request.book_id)
            return None

        self._stats["resolved" if descriptor is not None else "no_cover"] += 1
        self._last_resolved_at = datetime.now(UTC)
        return descriptor

    async def resolve_many(
        self, requests: Iterable[CoverResolutionRequest]
    ) -> dict[str, CoverDescriptor | None]:
        """Resolve a batch concurrently (bounded) and wait for all of it."""

        async def _bounded(request: CoverResolutionRequest) -> CoverDescriptor | None:
            async with self._semaphore:
                return await self._resolve_one(request)

        batch = merge_requests(requests)
        results = await asyncio.gather(*(_bounded(request) for request in batch))
        return {request.book_id: result for request, result in zip(batch, results)}

    async def submit(self, request: CoverResolutionRequest) -> None:
        """Queue a request for the running worker."""
        await self._queue.put(request)

    async def start(self) -> None:
        """Start consuming submitted requests."""
        if self._running:
            logger.warning("CoverResolutionWorker is already running")
            return
        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info(
            "CoverResolutionWorker started (max_concurrency=%d)", self.max_concurrency
        )

    async def stop(self) -> None:
        """Stop the worker and cancel resolutions still in flight."""
        self._running = False
        if self._task:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        for task in list(self._in_flight):
            task.cancel()
        if self._in_flight:
            await asyncio.gather(*self._in_flight, return_exceptions=True)
        dropped = self._drain_queue()
        logger.info("CoverResolutionWorker stopped (%d queued requests dropped)", dropped)

    def _drain_queue(self) -> int:
        # Requests nobody will pick up any more still count for join()
        dropped = 0
        while True:
            try:
                self._queue.get_nowait()
            except asyncio.QueueEmpty:
                return dropped
            self._queue.task_done()
            dropped += 1

    async def join(self) -> None:
        """Wait until every submitted request has been processed."""
        await self._queue.join()

    def get_status(self) -> dict[str, Any]:
        """Get worker status for monitoring."""
        return {
            "name": "Cover Resolution Worker",
            "running": self._running,
            "status": "active" if self._running else "stopped",
            "max_concurrency": self.max_concurrency,
            "queued": self._queue.qsize(),
            "in_flight": len(self._in_flight),
            "stats": dict(self._stats),
            "last_resolved_at": (
                self._last_resolved_at.isoformat() if self._last_resolved_at else None
            ),
        }

    async def _run_loop(self) -> None:
        while self._running:
            request = await self._queue.get()
            try:
                await self._semaphore.acquire()
            except asyncio.CancelledError:
                self._queue.task_done()
                raise
            task = asyncio.create_task(self._run_queued(request))
            self._in_flight.add(task)
            task.add_done_callback(self._in_flight.discard)

    async def _run_queued(self, request: CoverResolutionRequest) -> None:
        try:
            await self._resolve_one(request)
        finally:
            self._semaphore.release()
            self._queue.task_done()
