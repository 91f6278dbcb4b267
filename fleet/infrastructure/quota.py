"""Per-account, per-action hourly quota tracking."""

import sys
import threading
import time
from typing import Callable, Dict, List, Optional

from fleet.adapters.storage.json_store import JsonStorage
from fleet.domain.models import ActionRecord
from fleet.ports.outbound import StoragePort

HISTORY_KEY = "activity_history"
DEFAULT_WINDOW_SECONDS = 3600.0
# Records older than this are dropped whenever an account writes
GC_HORIZON_SECONDS = 24 * 3600


def _log(msg: str):
    print(msg, file=sys.stderr)


class QuotaIOError(Exception):
    """Raised when the activity history cannot be read or written."""


class QuotaTracker:
    """Rolling log of action timestamps per (account, action type).

    Every call reloads the durable history so that concurrently scheduled
    accounts (and other processes sharing the file) see recent writes.
    Reads fail open: an unreadable history counts as empty. Writes that
    fail are logged and dropped.
    """

    def __init__(
        self,
        storage: Optional[StoragePort] = None,
        window_seconds: float = DEFAULT_WINDOW_SECONDS,
        clock: Callable[[], float] = time.time,
        history_key: str = HISTORY_KEY,
    ):
        self._storage = storage if storage is not None else JsonStorage()
        self._window_ms = int(window_seconds * 1000)
        self._clock = clock
        self._key = history_key
        self._write_lock = threading.Lock()

    @property
    def window_seconds(self) -> float:
        return self._window_ms / 1000

    def _now_ms(self, now: Optional[float]) -> int:
        return int(round((self._clock() if now is None else now) * 1000))

    # -- persistence --

    def _read(self) -> dict:
        try:
            return self._storage.load(self._key)
        except (OSError, ValueError) as e:
            raise QuotaIOError(f"activity history unreadable: {e}") from e

    def _write(self, data: dict):
        try:
            self._storage.save(self._key, data)
        except (OSError, TypeError, ValueError) as e:
            raise QuotaIOError(f"activity history unwritable: {e}") from e

    def _load(self) -> dict:
        try:
            return self._read()
        except QuotaIOError as e:
            _log(f"[QuotaTracker] {e}, treating as empty")
            return {}

    @staticmethod
    def _history(data: dict, account_id: str, action_type: str) -> List[int]:
        entry = data.get(account_id)
        if not isinstance(entry, dict):
            return []
        values = entry.get(action_type)
        if not isinstance(values, list):
            return []
        return [int(v) for v in values if isinstance(v, (int, float)) and not isinstance(v, bool)]

    def _window(self, account_id: str, action_type: str, now_ms: int) -> List[int]:
        start = now_ms - self._window_ms
        history = self._history(self._load(), account_id, action_type)
        return [t for t in history if start < t <= now_ms]

    # -- queries --

    def recent_count(self, account_id: str, action_type: str, now: Optional[float] = None) -> int:
        """Number of actions inside the trailing window."""
        return len(self._window(account_id, action_type, self._now_ms(now)))

    def can_act(
        self,
        account_id: str,
        action_type: str,
        limit_per_hour: int,
        now: Optional[float] = None,
    ) -> bool:
        """True if another action fits under the limit right now."""
        if limit_per_hour <= 0:
            return False
        return self.recent_count(account_id, action_type, now) < limit_per_hour

    def time_until_available(
        self,
        account_id: str,
        action_type: str,
        limit_per_hour: int,
        now: Optional[float] = None,
    ) -> float:
        """Seconds until the next action is allowed, 0 if allowed now.

        The wait is measured to the moment the oldest in-window action ages
        out, since that slot vacates first.
        """
        now_ms = self._now_ms(now)
        window = self._window(account_id, action_type, now_ms)
        if limit_per_hour > 0 and len(window) < limit_per_hour:
            return 0.0
        if not window:
            # A zero limit never opens up; re-check after a full window
            return self.window_seconds
        window.sort()
        wait_ms = window[0] + self._window_ms - now_ms
        return max(0.0, wait_ms / 1000)

    def status(self, account_id: str, limits: Dict[str, int], now: Optional[float] = None) -> Dict[str, dict]:
        """Per action type: count, limit, availability and wait."""
        result = {}
        for action_type, limit in limits.items():
            result[action_type] = {
                "count": self.recent_count(account_id, action_type, now),
                "limit": limit,
                "available": self.can_act(account_id, action_type, limit, now),
                "wait_seconds": round(self.time_until_available(account_id, action_type, limit, now), 3),
            }
        return result

    # -- writes --

    def record(self, account_id: str, action_type: str, now: Optional[float] = None) -> ActionRecord:
        """Append one action, pruning this account's entries older than 24h."""
        now_ms = self._now_ms(now)
        with self._write_lock:
            self._append(self._load(), account_id, action_type, now_ms)
        return ActionRecord(account_id=account_id, action_type=action_type, timestamp_ms=now_ms)

    def record_within_limit(
        self,
        account_id: str,
        action_type: str,
        limit_per_hour: int,
        now: Optional[float] = None,
    ) -> Optional[ActionRecord]:
        """Check and record in one step; None if the window is already full."""
        now_ms = self._now_ms(now)
        with self._write_lock:
            data = self._load()
            start = now_ms - self._window_ms
            count = sum(1 for t in self._history(data, account_id, action_type) if start < t <= now_ms)
            if limit_per_hour <= 0 or count >= limit_per_hour:
                return None
            self._append(data, account_id, action_type, now_ms)
        return ActionRecord(account_id=account_id, action_type=action_type, timestamp_ms=now_ms)

    def _append(self, data: dict, account_id: str, action_type: str, now_ms: int):
        cutoff = now_ms - GC_HORIZON_SECONDS * 1000
        entry = data.get(account_id)
        if not isinstance(entry, dict):
            entry = {}
        for kind in list(entry):
            entry[kind] = [t for t in self._history(data, account_id, kind) if t > cutoff]
        entry.setdefault(action_type, []).append(now_ms)
        data[account_id] = entry
        try:
            self._write(data)
        except QuotaIOError as e:
            _log(f"[QuotaTracker] {e}, continuing without persisting")
