"""Background workers."""

from .cover_resolution_worker import CoverResolutionRequest, CoverResolutionWorker

__all__ = ["CoverResolutionRequest", "CoverResolutionWorker"]
