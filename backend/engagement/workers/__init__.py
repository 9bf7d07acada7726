"""Long-running drivers and the background task pool."""
