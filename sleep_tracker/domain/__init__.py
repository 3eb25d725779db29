"""Domain layer for the sleep tracker application."""
