"""Domain entities."""

from .cover import (
    CoverCandidate,
    CoverCandidateUrl,
    CoverDescriptor,
    CoverVariant,
    DownloadedCover,
    ProcessedCover,
    UploadPayload,
)

__all__ = [
    "CoverCandidate",
    "CoverCandidateUrl",
    "CoverDescriptor",
    "CoverVariant",
    "DownloadedCover",
    "ProcessedCover",
    "UploadPayload",
]
