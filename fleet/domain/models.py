"""Domain models for scheduling decisions and session handles."""

from dataclasses import dataclass, field
from typing import Any, Optional

# ScheduleDecision.action values
RUN = "run"
WAIT = "wait"
SKIP = "skip"


@dataclass(frozen=True)
class ActionRecord:
    account_id: str
    action_type: str
    timestamp_ms: int


@dataclass
class ScheduleDecision:
    """What the scheduler decided for one account in one cycle."""

    account_id: str
    action: str  # "run" | "wait" | "skip"
    wait_seconds: float = 0.0
    reason: str = ""
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "account_id": self.account_id,
            "action": self.action,
            "wait_seconds": round(self.wait_seconds, 3),
            "reason": self.reason,
            "error": self.error,
        }


@dataclass
class SessionHandle:
    """Registry-owned handle around the resource returned by ActionSession.open."""

    account_id: str
    resource: Any
    connected: bool = True
    last_used: float = 0.0
    created_at: float = 0.0
    uses: int = field(default=0)
