"""
Injectable source of "today".

The horizon window, the regeneration cutoff and the date repair all start
from the current calendar day.  Services take a ``Clock`` so that none of
them calls ``date.today()`` directly and tests can pin the day.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta


class Clock(ABC):
    @abstractmethod
    def today(self) -> date:
        """Current calendar day in the caller's local zone."""


class SystemClock(Clock):
    def today(self) -> date:
        # Local day, so a key computed just after midnight is not yesterday's.
        return datetime.now().astimezone().date()


class DeterministicClock(Clock):
    """A clock stuck on one day until the test moves it.

    Accepts a ``datetime`` for convenience; only its date part is kept.
    """

    def __init__(self, day: date | datetime = date(2025, 1, 1)):
        self._day = _day_of(day)

    def today(self) -> date:
        return self._day

    def set_time(self, day: date | datetime) -> None:
        self._day = _day_of(day)

    def advance_days(self, days: int = 1) -> None:
        self._day += timedelta(days=days)


def _day_of(value: date | datetime) -> date:
    return value.date() if isinstance(value, datetime) else value
