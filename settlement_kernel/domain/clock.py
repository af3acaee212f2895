"""
Injectable time source.

Services take a ``Clock`` instead of reading the wall clock, so a review
cycle's ``submitted_at``, ``finalized_at`` and audit timestamps can be
pinned in tests.  ``SystemClock`` is the only place the kernel touches
real time.
"""

from abc import ABC, abstractmethod
from datetime import UTC, date, datetime, timedelta


class Clock(ABC):
    """Source of timezone-aware instants."""

    @abstractmethod
    def now(self) -> datetime: ...

    def today(self) -> date:
        return self.now().date()


class SystemClock(Clock):

    def now(self) -> datetime:
        return datetime.now(UTC)


class DeterministicClock(Clock):
    """
    Frozen clock for tests.

    ``now()`` keeps returning the same instant until ``advance()`` moves it.
    """

    EPOCH = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)

    def __init__(self, start: datetime | None = None):
        if start is not None and start.tzinfo is None:
            raise ValueError("DeterministicClock needs a timezone-aware start")
        self._current = start or self.EPOCH

    def now(self) -> datetime:
        return self._current

    def advance(self, *, days: int = 0, seconds: int = 0) -> datetime:
        """Move forward and return the new instant."""
        self._current += timedelta(days=days, seconds=seconds)
        return self._current
