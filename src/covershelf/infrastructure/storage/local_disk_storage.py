"""Local disk storage gateway.

Hey future me - this is the "bucket on a disk" implementation of the storage port.
Keys are exactly the object-storage keys (images/book-covers/...), so moving to a
real bucket later is a copy, not a rename.

All file I/O runs in asyncio.to_thread - a slow disk must not block the loop that
is downloading 50 other covers.

GOTCHA: find_first_available_cover probes legacy raw-label spellings, and raw
labels can contain anything (even "../"). Every path is resolved and checked to
stay inside base_path before we touch it.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from datetime import UTC, datetime
from pathlib import Path

from covershelf.config import StorageSettings
from covershelf.domain.entities import CoverDescriptor, UploadPayload
from covershelf.domain.exceptions import UploadFailure, ValidationError
from covershelf.domain.ports import ICoverStorageGateway
from covershelf.domain.value_objects.cover_source import normalize_source_label
from covershelf.domain.value_objects.storage_keys import (
    candidate_keys,
    key_for,
    provenance_key_for,
)

logger = logging.getLogger(__name__)


class LocalDiskCoverStorage(ICoverStorageGateway):
    """Stores processed covers below a base directory."""

    def __init__(self, settings: StorageSettings) -> None:
        self.settings = settings
        self.base_path = Path(settings.base_path).resolve()

    def is_upload_available(self) -> bool:
        return self.settings.upload_enabled

    def is_read_available(self) -> bool:
        return self.settings.read_enabled

    def public_url(self, storage_key: str) -> str:
        return f"{self.settings.public_base_url}/{storage_key}"

    def _path_for(self, key: str) -> Path | None:
        path = (self.base_path / key).resolve()
        if not path.is_relative_to(self.base_path):
            return None
        return path

    async def upload_processed_cover(self, payload: UploadPayload) -> CoverDescriptor:
        try:
            key = key_for(payload.book_id, payload.extension, payload.source)
        except ValidationError as e:
            raise UploadFailure(str(e), retryable=False) from e

        path = self._path_for(key)
        if path is None:
            raise UploadFailure(f"Storage key escapes base path: {key}", retryable=False)

        try:
            await asyncio.to_thread(self._write, path, payload.data)
            if self.settings.write_provenance:
                await self._write_provenance(key, payload)
        except OSError as e:
            raise UploadFailure(f"Could not write cover {key}: {e}") from e

        logger.info(
            "Stored cover %s (%d bytes)",
            key,
            len(payload.data),
            extra={"book_id": payload.book_id, "storage_key": key},
        )
        processed = payload.processed
        return CoverDescriptor(
            canonical_url=self.public_url(key),
            source=normalize_source_label(payload.source),
            storage_key=key,
            width=processed.width,
            height=processed.height,
            high_resolution=processed.is_high_resolution,
        )

    async def _write_provenance(self, key: str, payload: UploadPayload) -> None:
        lines = [
            f"book_id: {payload.book_id}",
            f"source: {payload.source}",
            f"origin_url: {payload.origin_url or ''}",
            f"mime_type: {payload.mime_type}",
            f"stored_at: {datetime.now(UTC).isoformat()}",
        ]
        lines.extend(f"{name}: {value}" for name, value in sorted(payload.metadata.items()))
        path = self._path_for(provenance_key_for(key))
        if path is not None:
            await asyncio.to_thread(self._write, path, ("\n".join(lines) + "\n").encode())

    @staticmethod
    def _write(path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        # Write then rename so readers never see half a JPEG
        tmp_path = path.with_name(path.name + ".part")
        tmp_path.write_bytes(data)
        tmp_path.replace(path)

    async def find_first_available_cover(
        self,
        book_id: str,
        extension: str,
        source_labels: Sequence[str],
    ) -> CoverDescriptor | None:
        try:
            keys = candidate_keys(book_id, extension, source_labels)
        except ValidationError:
            logger.warning("Not probing storage for invalid book id %r", book_id)
            return None

        for key in keys:
            path = self._path_for(key)
            if path is None:
                continue
            if await asyncio.to_thread(path.is_file):
                segment = key.rsplit("-lg-", 1)[-1].rsplit(".", 1)[0]
                return CoverDescriptor(
                    canonical_url=self.public_url(key),
                    source=normalize_source_label(segment),
                    storage_key=key,
                )
        return None
