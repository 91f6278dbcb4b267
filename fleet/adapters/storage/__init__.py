"""Storage adapters."""

from fleet.adapters.storage.json_store import JsonStorage

__all__ = ["JsonStorage"]
