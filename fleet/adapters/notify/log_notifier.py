"""Notifier that writes to stderr."""

import sys
from datetime import datetime


class LogNotifier:
    """Default Notifier used when no webhook is configured."""

    def __init__(self, stream=None):
        self._stream = stream

    async def notify(self, account_id: str, kind: str, detail: str) -> None:
        print(
            f"[{datetime.now().isoformat()}] [{account_id}] {kind}: {detail}",
            file=self._stream or sys.stderr,
        )
