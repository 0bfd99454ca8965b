"""Repositories for books and cover candidates.

Hey future me - ALL cover writes are upserts keyed on (book_id, image_type). That
ON CONFLICT clause is the only serialization point between concurrent resolutions
of the same book: last writer wins on scalar fields, which is fine because every
writer is an idempotent re-resolution.

Two rules the upsert enforces that are easy to break:
- storage_key is COALESCE(new, existing): a later hotlink write never downgrades a
  storage-held cover back to a hotlink.
- The DO UPDATE only fires when something actually differs, so repeating the same
  upsert leaves the row (including updated_at) untouched.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any

from sqlalchemy import case, delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from covershelf.domain.entities import CoverCandidate, CoverVariant
from covershelf.domain.exceptions import ConfigurationError, ValidationError
from covershelf.infrastructure.persistence.cover_ranking_sql import canonical_cover_query
from covershelf.infrastructure.persistence.models import (
    BookModel,
    CoverCandidateModel,
    utc_now,
)

logger = logging.getLogger(__name__)

# "preferred"/"fallback" are read-side labels and "s3" was a legacy pseudo-type.
# None of them are variants, storing them would poison the ranking.
REJECTED_IMAGE_TYPES = frozenset({"preferred", "fallback", "s3"})
REJECTED_URL_MARKERS = ("placeholder-book-cover.svg", "localhost", "127.0.0.1")


def _dialect_insert(session: AsyncSession) -> Any:
    """Dialect-specific insert() that supports on_conflict_do_*."""
    dialect = session.get_bind().dialect.name
    if dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    elif dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    else:
        raise ConfigurationError(f"Upserts are not supported on {dialect}")
    return insert


def _variant_name(variant: str | CoverVariant) -> str:
    if isinstance(variant, CoverVariant):
        return variant.value
    return variant.strip()


def clean_storage_key(storage_key: str | None) -> str | None:
    """Blank keys become NULL, otherwise COALESCE would keep '' over a real key."""
    if storage_key is None:
        return None
    storage_key = storage_key.strip()
    return storage_key or None


def skip_reason(variant: str, url: str | None) -> str | None:
    """Why a row must not be stored, or None if it's fine."""
    if not variant:
        return "blank image type"
    if variant.lower() in REJECTED_IMAGE_TYPES:
        return f"image type {variant!r} is not a cover variant"
    if url:
        lowered = url.lower()
        for marker in REJECTED_URL_MARKERS:
            if marker in lowered:
                return f"url contains {marker!r}"
    return None


def to_entity(model: CoverCandidateModel) -> CoverCandidate:
    """Map an ORM row to the domain entity."""
    return CoverCandidate(
        book_id=model.book_id,
        variant=model.image_type,
        url=model.url,
        storage_key=model.storage_key,
        source=model.source,
        width=model.width,
        height=model.height,
        is_high_resolution=model.is_high_resolution,
        is_grayscale=model.is_grayscale,
        download_error=model.download_error,
        created_at=model.created_at,
    )


class BookRepository:
    """Books are created by producers; we only make sure the FK target exists."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def ensure_exists(
        self, book_id: str, title: str | None = None, isbn: str | None = None
    ) -> None:
        """Insert the book row if it is missing (no-op otherwise)."""
        insert = _dialect_insert(self.session)
        stmt = (
            insert(BookModel)
            .values(id=book_id, title=title, isbn=isbn, created_at=utc_now())
            .on_conflict_do_nothing(index_elements=["id"])
        )
        await self.session.execute(stmt)

    async def get(self, book_id: str) -> BookModel | None:
        return await self.session.get(BookModel, book_id)

    async def delete(self, book_id: str) -> None:
        """Delete a book. Its cover rows go with it (ON DELETE CASCADE)."""
        await self.session.execute(delete(BookModel).where(BookModel.id == book_id))


class CoverCandidateRepository:
    """Idempotent writes and filtered reads of cover candidate rows."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def upsert_variant(
        self,
        book_id: str,
        variant: str | CoverVariant,
        url: str | None,
        source: str | None,
        width: int | None = None,
        height: int | None = None,
        is_high_resolution: bool | None = None,
        storage_key: str | None = None,
        is_grayscale: bool | None = None,
    ) -> bool:
        """Insert or update one variant row.

        Returns:
            False if the row was skipped (rejected image type or junk URL)

        Raises:
            ValidationError: If book_id is blank
        """
        if not book_id or not book_id.strip():
            raise ValidationError("Book id must not be blank")
        image_type = _variant_name(variant)
        reason = skip_reason(image_type, url)
        if reason is not None:
            logger.warning(
                "Skipping cover row for book %s: %s",
                book_id,
                reason,
                extra={"book_id": book_id, "image_type": image_type, "url": url},
            )
            return False

        storage_key = clean_storage_key(storage_key)
        now = utc_now()
        insert = _dialect_insert(self.session)
        table = CoverCandidateModel.__table__
        stmt = insert(CoverCandidateModel).values(
            id=str(uuid.uuid4()),
            book_id=book_id,
            image_type=image_type,
            url=url,
            source=source,
            width=width,
            height=height,
            is_high_resolution=is_high_resolution,
            is_grayscale=is_grayscale,
            storage_key=storage_key,
            download_error=None,
            s3_uploaded_at=now if storage_key else None,
            created_at=now,
            updated_at=now,
        )
        excluded = stmt.excluded
        merged_storage_key = func.coalesce(excluded.storage_key, table.c.storage_key)
        merged_grayscale = func.coalesce(excluded.is_grayscale, table.c.is_grayscale)
        changed = or_(
            table.c.url.is_distinct_from(excluded.url),
            table.c.source.is_distinct_from(excluded.source),
            table.c.width.is_distinct_from(excluded.width),
            table.c.height.is_distinct_from(excluded.height),
            table.c.is_high_resolution.is_distinct_from(excluded.is_high_resolution),
            table.c.storage_key.is_distinct_from(merged_storage_key),
            table.c.is_grayscale.is_distinct_from(merged_grayscale),
            table.c.download_error.is_not(None),
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[table.c.book_id, table.c.image_type],
            set_={
                "url": excluded.url,
                "source": excluded.source,
                "width": excluded.width,
                "height": excluded.height,
                "is_high_resolution": excluded.is_high_resolution,
                "storage_key": merged_storage_key,
                "is_grayscale": merged_grayscale,
                "download_error": None,
                "s3_uploaded_at": case(
                    (excluded.storage_key.is_not(None), excluded.s3_uploaded_at),
                    else_=table.c.s3_uploaded_at,
                ),
                "updated_at": excluded.updated_at,
            },
            where=changed,
        )
        await self.session.execute(stmt)
        if is_grayscale is not None:
            await self._propagate_grayscale(book_id, is_grayscale)
        logger.debug(
            "Upserted cover %s/%s (storage_key=%s)", book_id, image_type, storage_key
        )
        return True

    async def _propagate_grayscale(self, book_id: str, is_grayscale: bool) -> None:
        # Grayscale is a property of the book's artwork, not of one variant. Siblings
        # that were never analyzed would otherwise rank as "color" and beat this row.
        stmt = (
            update(CoverCandidateModel)
            .where(
                CoverCandidateModel.book_id == book_id,
                CoverCandidateModel.is_grayscale.is_(None),
            )
            .values(is_grayscale=is_grayscale)
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(stmt)

    async def record_failure(
        self,
        book_id: str,
        variant: str | CoverVariant,
        reason: str,
        url: str | None = None,
        source: str | None = None,
    ) -> None:
        """Write a download_error marker for one variant.

        Other variants of the book are untouched. A storage-held row is never
        marked failed: a later failed re-fetch must not hide bytes we already own.
        """
        if not book_id or not book_id.strip():
            raise ValidationError("Book id must not be blank")
        image_type = _variant_name(variant)
        now = utc_now()
        insert = _dialect_insert(self.session)
        table = CoverCandidateModel.__table__
        stmt = insert(CoverCandidateModel).values(
            id=str(uuid.uuid4()),
            book_id=book_id,
            image_type=image_type,
            url=url,
            source=source,
            download_error=reason,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[table.c.book_id, table.c.image_type],
            set_={
                # The marker belongs to the URL that failed, keep them together
                "url": func.coalesce(stmt.excluded.url, table.c.url),
                "source": func.coalesce(stmt.excluded.source, table.c.source),
                "download_error": stmt.excluded.download_error,
                "updated_at": stmt.excluded.updated_at,
            },
            where=table.c.storage_key.is_(None),
        )
        await self.session.execute(stmt)

    async def get_variant(
        self, book_id: str, variant: str | CoverVariant
    ) -> CoverCandidate | None:
        """Get one row regardless of its error state."""
        stmt = select(CoverCandidateModel).where(
            CoverCandidateModel.book_id == book_id,
            CoverCandidateModel.image_type == _variant_name(variant),
        ).execution_options(populate_existing=True)
        model = (await self.session.execute(stmt)).scalar_one_or_none()
        return to_entity(model) if model is not None else None

    async def list_rankable(self, book_id: str) -> list[CoverCandidate]:
        """All rows of a book that may surface on the read path (no download_error)."""
        stmt = select(CoverCandidateModel).where(
            CoverCandidateModel.book_id == book_id,
            CoverCandidateModel.download_error.is_(None),
        ).execution_options(populate_existing=True)
        result = await self.session.execute(stmt)
        return [to_entity(model) for model in result.scalars().all()]

    async def find_canonical(self, book_id: str) -> CoverCandidate | None:
        """Canonical cover picked by the SQL ranking window."""
        stmt = canonical_cover_query([book_id])
        model = (await self.session.execute(stmt)).scalars().first()
        return to_entity(model) if model is not None else None

    async def find_canonical_many(self, book_ids: list[str]) -> dict[str, CoverCandidate]:
        """Canonical covers for several books in one query."""
        result = await self.session.execute(canonical_cover_query(book_ids))
        return {model.book_id: to_entity(model) for model in result.scalars().all()}
