"""Popular-sessions cache."""
