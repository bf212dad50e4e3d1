"""HTTP middleware for the jobdeck API."""
