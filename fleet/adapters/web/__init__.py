"""Status web API."""
