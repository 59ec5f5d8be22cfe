"""
Pure calendar arithmetic for recurrences.

Contract:
    ``next_occurrence_date``, ``first_occurrence_date`` and
    ``occurrence_window`` are PURE -- no I/O, no clock.  The caller supplies
    every date, including the horizon.

Architecture: recurrence_kernel/domain.  ZERO I/O.

Invariants enforced:
    - Month/year steps never overflow into the following month: the target
      day is clamped to the length of the target month (Jan-30 + 1 month is
      Feb-28, never Mar-02).
    - A window never contains a date after ``end_date`` or the horizon, and
      never more than ``max_occurrences`` dates.
    - ``first_occurrence_date`` is never earlier than ``start_date``.

Weekdays use 0 = Sunday ... 6 = Saturday throughout.
"""

from __future__ import annotations

import calendar
from datetime import date, timedelta

from recurrence_kernel.domain.types import Frequency
from recurrence_kernel.exceptions import (
    InvalidAnchorError,
    InvalidFrequencyError,
    InvalidHorizonError,
)

DEFAULT_MAX_OCCURRENCES = 100

_WEEK_STEP = {Frequency.WEEKLY: 7, Frequency.BIWEEKLY: 14}
_MONTH_STEP = {Frequency.MONTHLY: 1, Frequency.QUARTERLY: 3, Frequency.YEARLY: 12}


# =============================================================================
# Calendar helpers
# =============================================================================


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def add_months(d: date, months: int, day: int | None = None) -> date:
    """Add calendar months, clamping the day to the target month's length.

    ``day`` is the day to aim for (defaults to ``d.day``); it is clamped,
    never rolled over.
    """
    total = d.year * 12 + (d.month - 1) + months
    year, month_index = divmod(total, 12)
    month = month_index + 1
    target = d.day if day is None else day
    return date(year, month, min(target, days_in_month(year, month)))


def weekday_of(d: date) -> int:
    """Day of week with 0 = Sunday."""
    return (d.weekday() + 1) % 7


def day_key(d: date) -> str:
    """Calendar-day fingerprint key (YYYY-MM-DD)."""
    return d.isoformat()


def instance_key(d: date) -> str:
    """Month marker stored on generated occurrences (YYYY-MM)."""
    return f"{d.year:04d}-{d.month:02d}"


def horizon_date(as_of: date, horizon_months: int) -> date:
    return add_months(as_of, horizon_months)


# =============================================================================
# Validation
# =============================================================================


def coerce_frequency(frequency: Frequency | str) -> Frequency:
    """Return a recurring Frequency or raise InvalidFrequencyError."""
    try:
        freq = Frequency(frequency)
    except ValueError:
        raise InvalidFrequencyError(str(frequency)) from None
    if freq is Frequency.NONE:
        raise InvalidFrequencyError(freq.value)
    return freq


def validate_schedule(
    frequency: Frequency | str,
    day_of_month: int | None = None,
    day_of_week: int | None = None,
) -> Frequency:
    """Check a frequency/anchor combination before anything is written.

    Raises:
        InvalidFrequencyError: NONE or unknown frequency.
        InvalidAnchorError: day_of_month outside 1-31 or day_of_week outside 0-6.
    """
    freq = coerce_frequency(frequency)
    if day_of_month is not None and (
        isinstance(day_of_month, bool)
        or not isinstance(day_of_month, int)
        or not 1 <= day_of_month <= 31
    ):
        raise InvalidAnchorError("day_of_month", day_of_month, "1-31")
    if day_of_week is not None and (
        isinstance(day_of_week, bool)
        or not isinstance(day_of_week, int)
        or not 0 <= day_of_week <= 6
    ):
        raise InvalidAnchorError("day_of_week", day_of_week, "0-6")
    return freq


def validate_horizon(horizon_months: int, maximum: int = 24) -> int:
    if (
        isinstance(horizon_months, bool)
        or not isinstance(horizon_months, int)
        or not 1 <= horizon_months <= maximum
    ):
        raise InvalidHorizonError(horizon_months, maximum)
    return horizon_months


def effective_anchors(
    frequency: Frequency | str,
    start_date: date,
    day_of_month: int | None = None,
    day_of_week: int | None = None,
) -> tuple[int | None, int | None]:
    """Fill a missing anchor from the start date.

    Without this a monthly series started on the 31st would drift to the 28th
    after February and stay there.
    """
    freq = coerce_frequency(frequency)
    if freq in _MONTH_STEP and day_of_month is None:
        day_of_month = start_date.day
    if freq in _WEEK_STEP and day_of_week is None:
        day_of_week = weekday_of(start_date)
    return day_of_month, day_of_week


# =============================================================================
# Date calculator
# =============================================================================


def next_occurrence_date(
    current: date,
    frequency: Frequency | str,
    day_of_month: int | None = None,
    day_of_week: int | None = None,
) -> date:
    """Return the occurrence that follows ``current``.

    DAILY adds one day.  WEEKLY/BIWEEKLY add 7/14 days, then move forward
    (0-6 days) onto ``day_of_week``.  MONTHLY/QUARTERLY/YEARLY add 1/3/12
    months and clamp to ``day_of_month`` (or ``current.day``).

    Raises:
        InvalidFrequencyError: frequency is NONE or unknown.
    """
    freq = coerce_frequency(frequency)

    if freq is Frequency.DAILY:
        return current + timedelta(days=1)

    if freq in _WEEK_STEP:
        candidate = current + timedelta(days=_WEEK_STEP[freq])
        if day_of_week is not None:
            candidate += timedelta(days=(day_of_week - weekday_of(candidate)) % 7)
        return candidate

    return add_months(current, _MONTH_STEP[freq], day_of_month)


def first_occurrence_date(
    start_date: date,
    frequency: Frequency | str,
    day_of_month: int | None = None,
    day_of_week: int | None = None,
) -> date:
    """Return the first anchored date on or after ``start_date``."""
    freq = coerce_frequency(frequency)

    if freq in _WEEK_STEP:
        if day_of_week is None:
            return start_date
        return start_date + timedelta(days=(day_of_week - weekday_of(start_date)) % 7)

    if freq in _MONTH_STEP and day_of_month is not None:
        first = start_date.replace(
            day=min(day_of_month, days_in_month(start_date.year, start_date.month))
        )
        if first < start_date:
            return next_occurrence_date(first, freq, day_of_month, day_of_week)
        return first

    return start_date


# =============================================================================
# Window generator
# =============================================================================


def occurrence_window(
    start_date: date,
    end_date: date | None,
    frequency: Frequency | str,
    day_of_month: int | None,
    day_of_week: int | None,
    horizon: date,
    max_occurrences: int = DEFAULT_MAX_OCCURRENCES,
) -> tuple[date, ...]:
    """Ordered occurrence dates from ``start_date`` up to the effective bound.

    The bound is ``min(end_date, horizon)`` (``horizon`` alone when the
    series is open-ended).  At most ``max_occurrences`` dates are returned.
    """
    freq = validate_schedule(frequency, day_of_month, day_of_week)
    bound = horizon if end_date is None else min(end_date, horizon)

    current = first_occurrence_date(start_date, freq, day_of_month, day_of_week)
    if current < start_date:
        current = next_occurrence_date(current, freq, day_of_month, day_of_week)

    dates: list[date] = []
    while current <= bound and len(dates) < max_occurrences:
        dates.append(current)
        current = next_occurrence_date(current, freq, day_of_month, day_of_week)
    return tuple(dates)
