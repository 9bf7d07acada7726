"""Session reminder dispatch."""
