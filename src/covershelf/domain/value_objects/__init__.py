"""Domain value objects - pure functions and enums, no I/O."""
