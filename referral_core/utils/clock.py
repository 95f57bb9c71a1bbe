"""
Clock source shared by the budget guard, rate limiter and cache store.
"""
from datetime import datetime, timezone


class SystemClock:
    """Wall clock in UTC. Swap for a manual clock in tests."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
