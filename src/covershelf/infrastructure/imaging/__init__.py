"""Image processing."""

from .pillow_processor import PillowCoverProcessor

__all__ = ["PillowCoverProcessor"]
