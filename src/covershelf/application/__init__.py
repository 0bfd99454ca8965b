"""Application layer - cover resolution use cases and workers."""
