"""
Clock -- Injectable time source.

Responsibility:
    Provides an injectable clock interface so that services never call
    ``datetime.now()`` or ``date.today()`` directly.  Refund issue dates,
    default payment dates and the overdue sweep all read "today" from here.

Architecture position:
    Kernel > Domain -- pure, zero I/O (except SystemClock, which is the one
    sanctioned I/O boundary for time).

Failure modes:
    (none)
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone


class Clock(ABC):
    """
    Abstract clock interface.

    Contract:
        All services that need the current time receive a Clock instance
        via constructor injection.

    Guarantees:
        - ``now()`` returns a timezone-aware ``datetime``.
        - ``today()`` is the calendar date of ``now()``.
    """

    @abstractmethod
    def now(self) -> datetime:
        """Get the current time."""
        ...

    def now_utc(self) -> datetime:
        """Get the current UTC time."""
        return self.now().astimezone(timezone.utc)

    def today(self) -> date:
        """Get the current calendar date."""
        return self.now().date()


class SystemClock(Clock):
    """
    Production clock that returns actual system time.

    Non-goals:
        Not suitable for deterministic tests.
    """

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Test clock with controlled time.

    Guarantees:
        - ``now()`` returns the same value on repeated calls until
          ``advance()``, ``advance_days()`` or ``set_time()`` is called.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._fixed_time = fixed_time or datetime(
            2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc
        )
        self._advance_seconds = 0

    def now(self) -> datetime:
        return self._fixed_time + timedelta(seconds=self._advance_seconds)

    def set_time(self, time: datetime) -> None:
        """Set the clock to a specific time."""
        self._fixed_time = time
        self._advance_seconds = 0

    def set_date(self, day: date) -> None:
        """Set the clock to noon UTC on ``day``."""
        self.set_time(datetime(day.year, day.month, day.day, 12, 0, 0, tzinfo=timezone.utc))

    def advance(self, seconds: int = 1) -> None:
        """Advance the clock by the specified seconds."""
        self._advance_seconds += seconds

    def advance_days(self, days: int = 1) -> None:
        self.advance(days * 86400)
