"""Escalating lockout after repeated failed logins."""
from datetime import timedelta
from typing import Optional

FREE_FAILURES = 4
LOCKOUT_STEP = timedelta(minutes=15)


def failures_to_lockout(failure_count: int) -> Optional[timedelta]:
    """Return how long to lock an account after ``failure_count`` consecutive failures.

    The first four failures are free; from the fifth on each failure adds
    another 15 minutes (5 -> 15 min, 6 -> 30 min, ...).
    """
    if failure_count <= FREE_FAILURES:
        return None
    return LOCKOUT_STEP * (failure_count - FREE_FAILURES)
