"""Image processor port.

Future me note:
The processor is a black box for the pipeline - bytes in, ProcessedCover out.
It never raises for "bad image" content, it returns ProcessedCover.rejected(reason).
"""

from abc import ABC, abstractmethod

from covershelf.domain.entities import ProcessedCover


class ICoverProcessor(ABC):
    """Validates, measures and transcodes raw cover bytes."""

    @abstractmethod
    async def process(self, data: bytes, book_id: str) -> ProcessedCover:
        """Process raw bytes for a book."""
        ...
