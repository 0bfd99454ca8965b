"""Domain layer - cover entities, naming and ranking rules."""
