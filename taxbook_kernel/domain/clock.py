"""
Injectable time source.

Approval, cancellation, filing and classification timestamps, receipt
numbers and "today" in overdue checks all come from the Clock a service
was built with.  Nothing in the core calls ``datetime.now()`` directly.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone


class Clock(ABC):

    @abstractmethod
    def now(self) -> datetime:
        """Timezone-aware current time."""

    def today(self) -> date:
        """Calendar date of ``now()`` in UTC."""
        return self.now().astimezone(timezone.utc).date()


class SystemClock(Clock):

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Frozen clock for tests.

    Naive datetimes are taken as UTC.  ``advance`` moves the frozen instant
    forward, e.g. past a return's due date.
    """

    def __init__(self, at: datetime | None = None):
        at = at or datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
        self._now = at if at.tzinfo else at.replace(tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._now

    def advance(self, days: int = 0, seconds: int = 0) -> datetime:
        self._now += timedelta(days=days, seconds=seconds)
        return self._now
