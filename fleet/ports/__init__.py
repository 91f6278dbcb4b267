"""Port interfaces (Hexagonal Architecture)."""

from fleet.ports.outbound import (
    ActionExecutionError,
    ActionOutcome,
    ActionSession,
    CancellationToken,
    Notifier,
    StoragePort,
)

__all__ = [
    "ActionExecutionError",
    "ActionOutcome",
    "ActionSession",
    "CancellationToken",
    "Notifier",
    "StoragePort",
]
