"""Storage gateway port.

Hey future me - the gateway owns WHERE bytes live. It builds keys through
domain/value_objects/storage_keys.py so that writes and probing reads agree.
"""

from abc import ABC, abstractmethod
from collections.abc import Sequence

from covershelf.domain.entities import CoverDescriptor, UploadPayload


class ICoverStorageGateway(ABC):
    """Durable object storage for processed covers."""

    @abstractmethod
    def is_upload_available(self) -> bool:
        """Whether uploads can be attempted right now."""
        ...

    @abstractmethod
    def is_read_available(self) -> bool:
        """Whether existence probes can be attempted right now."""
        ...

    @abstractmethod
    async def upload_processed_cover(self, payload: UploadPayload) -> CoverDescriptor:
        """Persist processed bytes and describe the stored object.

        Raises:
            UploadFailure: On any storage error
        """
        ...

    @abstractmethod
    async def find_first_available_cover(
        self,
        book_id: str,
        extension: str,
        source_labels: Sequence[str],
    ) -> CoverDescriptor | None:
        """Probe candidate keys in order and describe the first object that exists."""
        ...

    @abstractmethod
    def public_url(self, storage_key: str) -> str:
        """URL under which clients can fetch a stored object."""
        ...
