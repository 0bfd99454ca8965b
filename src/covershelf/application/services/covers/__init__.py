"""Cover resolution services."""

from .candidate_collector import CoverCandidateCollector
from .cover_resolution_service import CoverResolutionService
from .fetch_pipeline import CoverFetchPipeline, FetchOutcome, FetchState

__all__ = [
    "CoverCandidateCollector",
    "CoverFetchPipeline",
    "CoverResolutionService",
    "FetchOutcome",
    "FetchState",
]
