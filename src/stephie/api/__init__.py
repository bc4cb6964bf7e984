"""REST API for admin and scheduled operations."""
