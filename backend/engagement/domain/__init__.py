"""Domain logic for sessions, reminders, statistics and popularity."""
