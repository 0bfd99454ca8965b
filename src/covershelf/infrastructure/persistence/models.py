"""SQLAlchemy ORM models for CoverShelf."""

import uuid
from datetime import UTC, datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def utc_now() -> datetime:
    """Get current UTC time."""
    return datetime.now(UTC)


# Hey future me - SQLite drops tzinfo on the way back. Use this before comparing
# DB datetimes with datetime.now(UTC).
def ensure_utc_aware(dt: datetime) -> datetime:
    """Ensure datetime is UTC-aware, assuming naive datetimes are UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class BookModel(Base):
    """A catalog item that can have covers.

    Book ids are opaque and supplied by the producer. They end up inside storage
    keys, so they are restricted to [A-Za-z0-9_-] before they get here.
    """

    __tablename__ = "books"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    title: Mapped[str | None] = mapped_column(String(512), nullable=True)
    isbn: Mapped[str | None] = mapped_column(String(17), nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )

    # Deleting a book deletes its covers - the ONLY delete path for candidates
    cover_candidates: Mapped[list["CoverCandidateModel"]] = relationship(
        back_populates="book",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


# Listen up - one row per (book_id, image_type). The UniqueConstraint is what the
# upsert's ON CONFLICT targets; never dedupe at read time instead. Rows with
# download_error set are an audit trail and are filtered out of every read path.
class CoverCandidateModel(Base):
    """One cover variant of a book (hotlink or storage-held)."""

    __tablename__ = "book_image_links"
    __table_args__ = (
        UniqueConstraint("book_id", "image_type", name="uq_book_image_links_book_type"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    book_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("books.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    image_type: Mapped[str] = mapped_column(String(32), nullable=False)
    url: Mapped[str | None] = mapped_column(Text, nullable=True)
    storage_key: Mapped[str | None] = mapped_column(Text, nullable=True)
    source: Mapped[str | None] = mapped_column(String(64), nullable=True)
    width: Mapped[int | None] = mapped_column(Integer, nullable=True)
    height: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_high_resolution: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    is_grayscale: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    download_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    s3_uploaded_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False
    )

    book: Mapped[BookModel] = relationship(back_populates="cover_candidates")
