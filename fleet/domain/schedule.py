"""Sleep windows and randomized delays for account activity."""

import random
from datetime import datetime
from typing import Optional


def is_sleep_time(
    sleep_start_hour: Optional[int],
    sleep_end_hour: Optional[int],
    now: Optional[datetime] = None,
) -> bool:
    """Return True if the local hour falls inside the sleep window.

    Windows may cross midnight (e.g. 23 -> 7). A window with either bound
    missing, or with equal bounds, never sleeps.
    """
    if sleep_start_hour is None or sleep_end_hour is None:
        return False
    if sleep_start_hour == sleep_end_hour:
        return False
    hour = (now or datetime.now()).hour
    if sleep_start_hour > sleep_end_hour:
        return hour >= sleep_start_hour or hour < sleep_end_hour
    return sleep_start_hour <= hour < sleep_end_hour


def seconds_until_wake(
    sleep_start_hour: Optional[int],
    sleep_end_hour: Optional[int],
    now: Optional[datetime] = None,
) -> float:
    """Seconds until the sleep window ends, 0 when not sleeping."""
    now = now or datetime.now()
    if not is_sleep_time(sleep_start_hour, sleep_end_hour, now):
        return 0.0
    wake = now.replace(hour=sleep_end_hour, minute=0, second=0, microsecond=0)
    delta = (wake - now).total_seconds()
    if delta <= 0:
        delta += 24 * 3600
    return delta


def random_delay(min_seconds: float, max_seconds: float, rng: Optional[random.Random] = None) -> float:
    """Uniform random delay in [min_seconds, max_seconds]."""
    if max_seconds <= min_seconds:
        return max(0.0, min_seconds)
    return (rng or random).uniform(min_seconds, max_seconds)
