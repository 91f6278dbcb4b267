"""Exclusive profile locks with stale-lock recovery.

A session binds to an account's profile directory. Ownership of that
directory is marked by a lock artifact created atomically inside it. An
artifact left behind by a crashed or hung holder is broken in two stages:
first gracefully (only if the holder process is dead, or if an artifact from
another host is too old), then forcibly (terminate processes still using
the profile and delete all lock artifacts).
"""

import asyncio
import json
import os
import socket
import sys
import time
from pathlib import Path
from typing import Awaitable, Callable, Optional, Sequence

LOCK_FILENAME = ".fleet.lock"
# Artifacts browsers leave in a profile they still believe they own
FOREIGN_ARTIFACTS = ("SingletonLock", "SingletonCookie", "SingletonSocket")


def _log(msg: str):
    print(msg, file=sys.stderr)


class LockBusyError(Exception):
    """Raised when the lock artifact is held by someone else."""


class LockContentionError(Exception):
    """Raised when a profile could not be locked after all retries."""


def pid_running(pid: Optional[int]) -> bool:
    if pid is None or pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # Exists, owned by another user
        return True
    except OSError:
        return False
    return True


async def _run_subprocess(cmd_args):
    """Run a subprocess command and return process/stdout/stderr."""
    proc = await asyncio.create_subprocess_exec(
        *cmd_args,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    stdout, stderr = await proc.communicate()
    return proc, stdout, stderr


# POSIX extended regex metacharacters
_ERE_SPECIAL = set("\\.[]{}()*+?^$|")


def profile_pattern(path: str) -> str:
    """pkill -f pattern matching ``path`` as a whole path component.

    ``/profiles/a1`` matches ``--user-data-dir=/profiles/a1`` and
    ``/profiles/a1/Default`` but not ``/profiles/a10``.
    """
    escaped = "".join("\\" + c if c in _ERE_SPECIAL else c for c in path)
    return escaped + "(/|\"|'| |$)"


async def terminate_profile_processes(fragment: str) -> bool:
    """Kill processes whose command line contains the profile path ``fragment``.

    Returns True if anything was signalled. Only POSIX hosts with pkill
    are supported; elsewhere this is a logged no-op.
    """
    if os.name != "posix":
        _log(f"[ResourceLock] process termination unsupported on {os.name}")
        return False
    try:
        proc, _, stderr = await asyncio.wait_for(
            _run_subprocess(["pkill", "-f", profile_pattern(fragment)]), timeout=10.0,
        )
    except FileNotFoundError:
        _log("[ResourceLock] pkill not available")
        return False
    except asyncio.TimeoutError:
        _log(f"[ResourceLock] pkill timed out for {fragment!r}")
        return False
    # pkill: 0 = matched, 1 = nothing matched
    if proc.returncode == 0:
        _log(f"[ResourceLock] forcefully killed processes holding profile {fragment!r}")
        return True
    if proc.returncode != 1:
        _log(f"[ResourceLock] pkill failed ({proc.returncode}): {stderr.decode(errors='replace').strip()}")
    return False


class ResourceLock:
    """Named exclusive token bound to a profile directory."""

    def __init__(
        self,
        resource_path: str,
        stale_after_seconds: float = 600.0,
        foreign_artifacts: Sequence[str] = FOREIGN_ARTIFACTS,
        terminator: Callable[[str], Awaitable[bool]] = terminate_profile_processes,
        clock: Callable[[], float] = time.time,
    ):
        self.resource_path = Path(resource_path).resolve()
        self.lock_path = self.resource_path / LOCK_FILENAME
        self._stale_after = stale_after_seconds
        self._foreign = tuple(foreign_artifacts)
        self._terminator = terminator
        self._clock = clock
        self._held = False

    @property
    def held(self) -> bool:
        return self._held

    @property
    def fragment(self) -> str:
        """Path fragment used to match processes using this profile."""
        return str(self.resource_path)

    def read_holder(self) -> Optional[dict]:
        """Return the artifact's payload, ``{}`` if unparsable, None if absent."""
        try:
            raw = self.lock_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError:
            return {}
        try:
            data = json.loads(raw)
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}

    def acquire(self):
        """Create the lock artifact; raise LockBusyError if it exists."""
        if self._held:
            return
        self.resource_path.mkdir(parents=True, exist_ok=True)
        payload = json.dumps({
            "pid": os.getpid(),
            "host": socket.gethostname(),
            "acquired_at": self._clock(),
        })
        try:
            fd = os.open(str(self.lock_path), os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            holder = self.read_holder() or {}
            raise LockBusyError(
                f"{self.resource_path} locked by pid={holder.get('pid')} host={holder.get('host')}"
            )
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(payload)
        self._held = True

    def release(self):
        """Remove the artifact if this instance owns it."""
        if not self._held:
            return
        self._held = False
        try:
            self.lock_path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            _log(f"[ResourceLock] failed to remove {self.lock_path}: {e}")

    def is_stale(self) -> bool:
        """True if the holder process is gone.

        Artifacts from another host, or unreadable ones, are judged by age.
        """
        holder = self.read_holder()
        if holder is None:
            return False
        if not holder:
            # Unreadable artifact, judge by file age
            try:
                age = self._clock() - self.lock_path.stat().st_mtime
            except OSError:
                return False
            return age > self._stale_after
        if holder.get("host") not in (None, socket.gethostname()):
            # Liveness cannot be checked across hosts, judge by age
            acquired_at = holder.get("acquired_at")
            if not isinstance(acquired_at, (int, float)):
                return False
            return self._clock() - acquired_at > self._stale_after
        pid = holder.get("pid")
        return not pid_running(pid if isinstance(pid, int) else None)

    def _delete_artifacts(self, names: Sequence[str]) -> int:
        removed = 0
        for name in names:
            path = self.resource_path / name
            try:
                # SingletonLock is usually a dangling symlink
                if path.is_symlink() or path.exists():
                    path.unlink()
                    removed += 1
                    _log(f"[ResourceLock] deleted stale lock artifact {path}")
            except OSError as e:
                _log(f"[ResourceLock] failed to delete {path}: {e}")
        return removed

    async def break_stale(self, force: bool = False) -> bool:
        """Try to clear a stale lock. Returns True if anything was removed.

        Graceful mode removes our artifact only when it is stale. Forced mode
        terminates processes still using the profile, then deletes our
        artifact and the foreign ones regardless of staleness.
        """
        if self._held:
            return False
        if not force:
            if await asyncio.to_thread(self.is_stale):
                return await asyncio.to_thread(self._delete_artifacts, [LOCK_FILENAME]) > 0
            return False
        killed = await self._terminator(self.fragment)
        removed = await asyncio.to_thread(self._delete_artifacts, [LOCK_FILENAME, *self._foreign])
        return bool(killed) or removed > 0
