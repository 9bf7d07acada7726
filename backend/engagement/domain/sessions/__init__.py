"""Session states, transitions and the reminder catalog."""
