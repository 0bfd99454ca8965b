"""Cover downloader port."""

from abc import ABC, abstractmethod

from covershelf.domain.entities import DownloadedCover


class ICoverDownloader(ABC):
    """Fetches raw cover bytes over HTTP."""

    @abstractmethod
    async def download(self, url: str) -> DownloadedCover:
        """Download bytes from a URL that already passed the safety check.

        Raises:
            DownloadFailure: On network errors, timeouts, HTTP errors or oversized bodies
            UnsafeUrlError: If a redirect points somewhere we must not go
        """
        ...
