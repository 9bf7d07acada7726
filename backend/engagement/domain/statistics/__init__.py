"""Per-user statistics aggregation."""
