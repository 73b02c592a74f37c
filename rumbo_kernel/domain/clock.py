"""
Injectable time source.

Services take a ``Clock`` instead of calling ``datetime.now()`` so that the
opening-balance date of a new product and the age of a cached exchange
rate can be pinned in tests.  ``SystemClock`` is the only place the kernel
reads wall-clock time.
"""

from abc import ABC, abstractmethod
from datetime import UTC, date, datetime, timedelta


class Clock(ABC):
    """Source of timezone-aware UTC datetimes."""

    @abstractmethod
    def now(self) -> datetime:
        ...

    def today(self) -> date:
        return self.now().date()

    def elapsed_since(self, moment: datetime) -> timedelta:
        """Time between ``moment`` and now; negative if ``moment`` is ahead."""
        return self.now() - moment


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(UTC)


class DeterministicClock(Clock):
    """
    Clock that only moves when told to.

    Usage::

        clock = DeterministicClock(datetime(2024, 6, 3, 13, 0, tzinfo=UTC))
        cache = ExchangeRateCache(fetcher, clock=clock)
        cache.get_current_rate()
        clock.advance(3600)      # the cached rate is now stale
    """

    def __init__(self, start: datetime | None = None):
        self._now = start or datetime(2024, 1, 1, 12, 0, tzinfo=UTC)

    def now(self) -> datetime:
        return self._now

    def advance(self, seconds: float = 1) -> None:
        self._now += timedelta(seconds=seconds)
