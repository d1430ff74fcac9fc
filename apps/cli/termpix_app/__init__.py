"""Terminal image viewer application."""
