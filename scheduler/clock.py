"""
Time source for the scheduler.

Every "now" in scoring, notice checks and deadlines comes from a Clock,
so results are reproducible when a FixedClock is injected.
"""

from datetime import datetime, timedelta


class Clock:
    """Wall clock (naive local time, matching session timestamps)."""

    def now(self) -> datetime:
        return datetime.now()


class FixedClock(Clock):
    """A clock frozen at a given instant. Can be moved forward manually."""

    def __init__(self, moment: datetime):
        self._moment = moment

    def now(self) -> datetime:
        return self._moment

    def advance(self, delta: timedelta) -> None:
        self._moment = self._moment + delta
