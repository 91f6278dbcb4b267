"""Adapters for storage, notifications, sessions and the status API."""
