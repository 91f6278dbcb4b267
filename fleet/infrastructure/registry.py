"""Session registry: one warm session per account, guarded by a profile lock."""

import asyncio
import sys
import time
from typing import Awaitable, Callable, Dict, List, Optional

from fleet.config import AccountConfig, LockConfig
from fleet.domain.models import SessionHandle
from fleet.infrastructure.lock import LockBusyError, LockContentionError, ResourceLock
from fleet.ports.outbound import ActionSession


def _log(msg: str):
    print(msg, file=sys.stderr)


class SessionRegistry:
    """Holds at most one live SessionHandle per account.

    ``acquire`` returns the warm handle when it is still connected, and
    otherwise launches a fresh session under the account's profile lock.
    The registry never evicts on its own; the scheduler decides when.
    """

    def __init__(
        self,
        session: ActionSession,
        lock_config: Optional[LockConfig] = None,
        lock_factory: Optional[Callable[[AccountConfig], ResourceLock]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.time,
    ):
        self._session = session
        self._lock_config = lock_config or LockConfig()
        self._lock_factory = lock_factory or self._default_lock
        self._sleep = sleep
        self._clock = clock
        self._handles: Dict[str, SessionHandle] = {}
        self._locks: Dict[str, ResourceLock] = {}
        self._account_locks: Dict[str, asyncio.Lock] = {}

    def _default_lock(self, account: AccountConfig) -> ResourceLock:
        return ResourceLock(
            account.profile_dir or f"profiles/{account.tracker_id}",
            stale_after_seconds=self._lock_config.stale_after_seconds,
        )

    def _account_lock(self, account_id: str) -> asyncio.Lock:
        lock = self._account_locks.get(account_id)
        if lock is None:
            lock = asyncio.Lock()
            self._account_locks[account_id] = lock
        return lock

    @property
    def live_count(self) -> int:
        return len(self._handles)

    def has_session(self, account_id: str) -> bool:
        return account_id in self._handles

    def get(self, account_id: str) -> Optional[SessionHandle]:
        return self._handles.get(account_id)

    def snapshot(self) -> List[dict]:
        """Live sessions for status reporting."""
        return [
            {
                "account_id": h.account_id,
                "connected": h.connected,
                "last_used": h.last_used,
                "created_at": h.created_at,
                "uses": h.uses,
            }
            for h in self._handles.values()
        ]

    async def acquire(self, account: AccountConfig) -> SessionHandle:
        """Return the account's warm session or launch a new one.

        Raises LockContentionError when the profile stays locked after all
        retries.
        """
        async with self._account_lock(account.account_id):
            handle = self._handles.get(account.account_id)
            if handle is not None:
                if await self._is_connected(handle):
                    handle.last_used = self._clock()
                    handle.uses += 1
                    return handle
                _log(f"[{account.account_id}] session disconnected, relaunching")
                await self._discard(account.account_id)

            handle = await self._launch(account)
            self._handles[account.account_id] = handle
            return handle

    async def _is_connected(self, handle: SessionHandle) -> bool:
        try:
            handle.connected = bool(await self._session.is_connected(handle.resource))
        except Exception as e:
            _log(f"[{handle.account_id}] connection check failed: {e}")
            handle.connected = False
        return handle.connected

    async def _launch(self, account: AccountConfig) -> SessionHandle:
        cfg = self._lock_config
        lock = self._locks.get(account.account_id) or self._lock_factory(account)
        self._locks[account.account_id] = lock
        last_error: Optional[Exception] = None

        for attempt in range(1, cfg.max_attempts + 1):
            try:
                await asyncio.to_thread(lock.acquire)
                resource = await self._session.open(account)
                now = self._clock()
                _log(f"[{account.account_id}] session launched (attempt {attempt}/{cfg.max_attempts})")
                return SessionHandle(
                    account_id=account.account_id,
                    resource=resource,
                    connected=True,
                    last_used=now,
                    created_at=now,
                    uses=1,
                )
            except LockBusyError as e:
                last_error = e
            except asyncio.CancelledError:
                lock.release()
                raise
            except Exception as e:
                last_error = e
                await asyncio.to_thread(lock.release)
            _log(
                f"[{account.account_id}] failed to launch session "
                f"(attempt {attempt}/{cfg.max_attempts}): {last_error}"
            )
            if attempt >= cfg.max_attempts:
                break

            force = attempt > cfg.graceful_attempts
            try:
                await lock.break_stale(force=force)
            except Exception as e:
                _log(f"[{account.account_id}] stale lock recovery failed: {e}")

            wait = cfg.backoff_base_seconds + cfg.backoff_step_seconds * attempt
            _log(f"[{account.account_id}] waiting {wait:.0f}s before retrying...")
            await self._sleep(wait)

        raise LockContentionError(
            f"{account.account_id}: could not start session after "
            f"{cfg.max_attempts} attempts: {last_error}"
        )

    async def _discard(self, account_id: str):
        handle = self._handles.pop(account_id, None)
        try:
            if handle is not None:
                await self._session.close(handle.resource)
        except Exception as e:
            _log(f"[{account_id}] error while closing session: {e}")
        finally:
            lock = self._locks.get(account_id)
            if lock is not None:
                await asyncio.to_thread(lock.release)

    async def close(self, account_id: str) -> bool:
        """Close the account's session. Returns True if one was open."""
        async with self._account_lock(account_id):
            if account_id not in self._handles:
                return False
            await self._discard(account_id)
            _log(f"[{account_id}] session closed")
            return True

    async def evict_if_idle(self, account_id: str, predicate: Callable[[SessionHandle], bool]) -> bool:
        """Close the account's session if ``predicate(handle)`` holds."""
        handle = self._handles.get(account_id)
        if handle is None or not predicate(handle):
            return False
        return await self.close(account_id)

    async def release_all(self):
        """Close every session (shutdown path)."""
        for account_id in list(self._handles):
            await self.close(account_id)
