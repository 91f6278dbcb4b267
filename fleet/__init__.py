"""smol-fleet: multi-account session scheduler package."""

from fleet.config import AccountConfig, AppConfig, CONFIG, __version__, load_accounts
from fleet.domain.models import ScheduleDecision, SessionHandle
from fleet.domain.scheduler import Scheduler
from fleet.infrastructure.context import RunContext
from fleet.infrastructure.gate import ConcurrencyGate, gate
from fleet.infrastructure.lock import LockBusyError, LockContentionError, ResourceLock
from fleet.infrastructure.quota import QuotaIOError, QuotaTracker
from fleet.infrastructure.registry import SessionRegistry
from fleet.ports.outbound import ActionExecutionError, ActionOutcome

__all__ = [
    "__version__",
    "CONFIG",
    "AccountConfig",
    "AppConfig",
    "load_accounts",
    "ScheduleDecision",
    "SessionHandle",
    "Scheduler",
    "RunContext",
    "ConcurrencyGate",
    "gate",
    "LockBusyError",
    "LockContentionError",
    "ResourceLock",
    "QuotaIOError",
    "QuotaTracker",
    "SessionRegistry",
    "ActionExecutionError",
    "ActionOutcome",
]
