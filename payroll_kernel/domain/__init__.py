"""Domain layer: pure value objects and the status transition table."""
