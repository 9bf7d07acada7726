"""Client construction and outbound adapters."""
