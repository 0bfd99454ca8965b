"""CoverShelf - book cover resolution and ingestion."""

__version__ = "0.1.0"
