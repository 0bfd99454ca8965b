"""Ports - interfaces the application layer talks to.

Infrastructure implements them, the application layer only sees these ABCs.
"""

from .cover_downloader import ICoverDownloader
from .cover_processor import ICoverProcessor
from .cover_provider import ICoverProvider
from .cover_storage import ICoverStorageGateway

__all__ = [
    "ICoverDownloader",
    "ICoverProcessor",
    "ICoverProvider",
    "ICoverStorageGateway",
]
