"""Session lifecycle and engagement engine."""
