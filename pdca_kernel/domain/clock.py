"""
Clock -- injectable time source.

Responsibility:
    Services that stamp history entries, completion times or assignment
    times receive a ``Clock`` instead of calling ``datetime.now()``, so a
    goal's workflow history is reproducible in tests.

Architecture position:
    Kernel > Domain -- pure core.  ``SystemClock`` is the one place the
    kernel reads wall-clock time.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone

GOAL_EPOCH = datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)


class Clock(ABC):
    """``now()`` always returns an aware UTC datetime."""

    @abstractmethod
    def now(self) -> datetime:
        ...


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Frozen time for tests.

    Repeated ``now()`` calls return the same instant; only ``advance`` and
    ``set_time`` move it.  Naive datetimes passed in are taken as UTC.
    """

    def __init__(self, start: datetime = GOAL_EPOCH) -> None:
        self._current = self._as_utc(start)

    @staticmethod
    def _as_utc(moment: datetime) -> datetime:
        if moment.tzinfo is None:
            return moment.replace(tzinfo=timezone.utc)
        return moment.astimezone(timezone.utc)

    def now(self) -> datetime:
        return self._current

    def set_time(self, moment: datetime) -> None:
        self._current = self._as_utc(moment)

    def advance(self, seconds: float = 1) -> datetime:
        self._current += timedelta(seconds=seconds)
        return self._current
