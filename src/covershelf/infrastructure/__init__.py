"""Infrastructure layer - HTTP, persistence, storage, imaging, resilience."""
