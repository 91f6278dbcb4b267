"""Outbound ports: interfaces for the collaborators the scheduler drives."""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable


@dataclass
class ActionOutcome:
    """One side-effecting action reported by an ActionSession."""

    action_type: str
    success: bool
    detail: Optional[str] = None


class ActionExecutionError(Exception):
    """Raised when an ActionSession fails while performing actions."""


@runtime_checkable
class CancellationToken(Protocol):
    """Polled by long action sequences between their discrete steps."""

    @property
    def exit_requested(self) -> bool: ...


@runtime_checkable
class ActionSession(Protocol):
    """Capability that opens, drives and closes a per-account session.

    Page interaction and content generation live behind this interface;
    the scheduler only consumes the outcomes.
    """

    async def open(self, account: Any) -> Any: ...
    async def is_connected(self, resource: Any) -> bool: ...

    async def perform_enabled_actions(
        self,
        resource: Any,
        behavior: Dict[str, bool],
        limits: Dict[str, int],
        context: Optional[CancellationToken] = None,
    ) -> List[ActionOutcome]: ...

    async def close(self, resource: Any) -> None: ...


@runtime_checkable
class Notifier(Protocol):
    """Interface for operator notifications."""

    async def notify(self, account_id: str, kind: str, detail: str) -> None: ...


@runtime_checkable
class StoragePort(Protocol):
    """Interface for persistent document storage."""

    def load(self, key: str) -> dict: ...
    def save(self, key: str, data: dict) -> None: ...
