"""Process-lifecycle run context: exit signal and rotation state."""

import asyncio
from typing import Dict, Optional


class RunContext:
    """Owned by the launcher and passed into the scheduler for one run.

    ``exit_requested`` is polled at safe points between discrete steps; it
    never interrupts a step in progress. Rotation indices (e.g. which API
    key a content generator should use next) live here instead of in
    module globals so separate runs and tests never share them.
    """

    def __init__(self):
        self._exit = asyncio.Event()
        self._reason: Optional[str] = None
        self._rotation: Dict[str, int] = {}

    @property
    def exit_requested(self) -> bool:
        return self._exit.is_set()

    @property
    def exit_reason(self) -> Optional[str]:
        return self._reason

    def request_exit(self, reason: str = "requested"):
        if not self._exit.is_set():
            self._reason = reason
            self._exit.set()

    async def sleep(self, seconds: float) -> bool:
        """Sleep up to ``seconds``; return True if woken by an exit request."""
        if seconds <= 0:
            return self.exit_requested
        try:
            await asyncio.wait_for(self._exit.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return False
        return True

    async def wait_for_exit(self):
        await self._exit.wait()

    def next_rotation(self, name: str, size: int) -> int:
        """Round-robin index in ``range(size)`` for the named rotation."""
        if size <= 0:
            raise ValueError(f"rotation {name!r} needs a positive size")
        index = self._rotation.get(name, -1) + 1
        index %= size
        self._rotation[name] = index
        return index

    def reset_rotation(self, name: str):
        self._rotation.pop(name, None)
