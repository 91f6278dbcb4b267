"""Domain layer: scheduling decisions and account state."""

from fleet.domain.models import RUN, SKIP, WAIT, ActionRecord, ScheduleDecision, SessionHandle
from fleet.domain.schedule import is_sleep_time, random_delay, seconds_until_wake

__all__ = [
    "RUN",
    "SKIP",
    "WAIT",
    "ActionRecord",
    "ScheduleDecision",
    "SessionHandle",
    "is_sleep_time",
    "random_delay",
    "seconds_until_wake",
]
