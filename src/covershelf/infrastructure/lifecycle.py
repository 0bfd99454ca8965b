"""Startup and shutdown wiring.

Hey future me - this is the ONE place that knows how all the pieces fit together.
Everything else gets its collaborators injected, which is what lets the tests swap
in fakes. Usage:

    async with cover_shelf_lifespan() as app:
        descriptor = await app.resolution_service.resolve_for_isbn("book-1", "9780140449136")

On exit the worker is stopped, the shared HTTP pool closed and the DB disposed,
in that order.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path

from covershelf.application.services.covers import (
    CoverCandidateCollector,
    CoverFetchPipeline,
    CoverResolutionService,
)
from covershelf.application.workers import CoverResolutionWorker
from covershelf.config import Settings, get_settings
from covershelf.domain.exceptions import ConfigurationError
from covershelf.infrastructure.imaging import PillowCoverProcessor
from covershelf.infrastructure.integrations.cover_download_client import (
    CoverDownloadClient,
)
from covershelf.infrastructure.integrations.google_books_provider import (
    GoogleBooksCoverProvider,
)
from covershelf.infrastructure.integrations.http_pool import HttpClientPool
from covershelf.infrastructure.integrations.longitood_provider import (
    LongitoodCoverProvider,
)
from covershelf.infrastructure.integrations.open_library_provider import (
    OpenLibraryCoverProvider,
)
from covershelf.infrastructure.observability import configure_logging
from covershelf.infrastructure.persistence import Database
from covershelf.infrastructure.resilience import ResilienceRegistry
from covershelf.infrastructure.security import UrlSafetyValidator
from covershelf.infrastructure.storage import LocalDiskCoverStorage

logger = logging.getLogger(__name__)

DOWNLOAD_POLICY_NAME = "cover-download"


@dataclass
class CoverShelfApp:
    """Fully wired application objects."""

    settings: Settings
    db: Database
    resilience: ResilienceRegistry
    resolution_service: CoverResolutionService
    worker: CoverResolutionWorker


def _ensure_storage_dir(settings: Settings) -> None:
    base_path = Path(settings.storage.base_path)
    try:
        base_path.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise ConfigurationError(f"Cannot create storage directory {base_path}: {e}") from e
    if not base_path.is_dir():
        raise ConfigurationError(f"Storage base path is not a directory: {base_path}")


def build_app(settings: Settings, db: Database | None = None) -> CoverShelfApp:
    """Wire every collaborator from settings (no I/O besides the storage dir check)."""
    if settings.storage.upload_enabled or settings.storage.read_enabled:
        _ensure_storage_dir(settings)

    db = db or Database(settings)
    resilience = ResilienceRegistry(settings.resilience)
    validator = UrlSafetyValidator()
    storage = LocalDiskCoverStorage(settings.storage)
    fetch_settings = settings.cover_fetch

    pipeline = CoverFetchPipeline(
        url_validator=validator,
        downloader=CoverDownloadClient(fetch_settings, validator),
        processor=PillowCoverProcessor(),
        storage=storage,
        max_file_size_bytes=fetch_settings.max_file_size_bytes,
        download_policy=resilience.get(DOWNLOAD_POLICY_NAME),
    )
    collector = CoverCandidateCollector(
        providers=[
            GoogleBooksCoverProvider(api_key=fetch_settings.google_books_api_key),
            OpenLibraryCoverProvider(),
            LongitoodCoverProvider(),
        ],
        resilience=resilience,
    )
    service = CoverResolutionService(
        db=db,
        pipeline=pipeline,
        storage=storage,
        url_validator=validator,
        settings=fetch_settings,
        collector=collector,
    )
    worker = CoverResolutionWorker(service, max_concurrency=fetch_settings.max_concurrency)
    return CoverShelfApp(
        settings=settings,
        db=db,
        resilience=resilience,
        resolution_service=service,
        worker=worker,
    )


@asynccontextmanager
async def cover_shelf_lifespan(
    settings: Settings | None = None,
) -> AsyncGenerator[CoverShelfApp, None]:
    """Start everything, yield the wired app, shut down cleanly."""
    settings = settings or get_settings()
    configure_logging(
        log_level=settings.observability.log_level,
        json_format=settings.observability.log_json,
        app_name=settings.app_name,
    )
    app = build_app(settings)
    await app.db.create_tables()
    await app.worker.start()
    logger.info("CoverShelf started")
    try:
        yield app
    finally:
        await app.worker.stop()
        await HttpClientPool.close()
        await app.db.close()
        logger.info("CoverShelf stopped")
