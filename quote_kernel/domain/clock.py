"""
Injectable time source.

Services, the state machine and the timeout sweeper take a ``Clock`` in
their constructor and never call ``datetime.now()`` themselves, so every
``requested_at``, ``decided_at``, ``level_activated_at`` and sweep cutoff
can be pinned in tests.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone

DEFAULT_TEST_TIME = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class Clock(ABC):
    """Returns timezone-aware UTC datetimes."""

    @abstractmethod
    def now(self) -> datetime:
        ...


class SystemClock(Clock):

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """Clock that only moves when told to.

    ``now()`` is stable between calls; ``advance_hours`` and ``tick`` move
    it forward and return the new time.
    """

    def __init__(self, start: datetime | None = None):
        self._now = start or DEFAULT_TEST_TIME

    def now(self) -> datetime:
        return self._now

    def set_time(self, when: datetime) -> None:
        self._now = when

    def advance_hours(self, hours: float) -> datetime:
        self._now += timedelta(hours=hours)
        return self._now

    def tick(self) -> datetime:
        """One second forward; distinct timestamps for consecutive writes."""
        self._now += timedelta(seconds=1)
        return self._now
