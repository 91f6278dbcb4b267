"""Passthrough ActionSession used when no real session factory is configured."""

import sys
import uuid
from typing import Any, Dict, List, Optional

from fleet.ports.outbound import ActionOutcome, CancellationToken


def _log(msg: str):
    print(msg, file=sys.stderr)


class DryRunSession:
    """Opens nothing and performs nothing; every cycle reports zero outcomes."""

    def __init__(self):
        self._open: Dict[str, str] = {}

    async def open(self, account: Any) -> str:
        resource = f"dry-run-{uuid.uuid4().hex[:8]}"
        self._open[resource] = getattr(account, "account_id", str(account))
        _log(f"[{self._open[resource]}] dry-run session opened ({resource})")
        return resource

    async def is_connected(self, resource: Any) -> bool:
        return resource in self._open

    async def perform_enabled_actions(
        self,
        resource: Any,
        behavior: Dict[str, bool],
        limits: Dict[str, int],
        context: Optional[CancellationToken] = None,
    ) -> List[ActionOutcome]:
        enabled = [t for t, on in behavior.items() if on]
        _log(f"[{self._open.get(resource, '?')}] dry run, would perform: {', '.join(enabled) or 'nothing'}")
        return []

    async def close(self, resource: Any) -> None:
        self._open.pop(resource, None)
