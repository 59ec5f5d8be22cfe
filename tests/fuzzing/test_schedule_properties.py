"""
Hypothesis-based property tests for the occurrence calendar.

Properties checked over random schedules:
- Windows are strictly increasing and stay inside [start_date, bound].
- Windows never exceed the occurrence cap.
- Monthly-family dates land on the anchor day, clamped to month length.
- Weekly-family dates land on the anchor weekday, a fixed step apart.
- Computing the same window twice yields the same dates.
"""

from datetime import date, timedelta

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st
from hypothesis.strategies import composite

from recurrence_kernel.domain.schedule import (
    add_months,
    days_in_month,
    occurrence_window,
    weekday_of,
)
from recurrence_kernel.domain.types import Frequency

_PROFILE = settings(max_examples=200, suppress_health_check=[HealthCheck.too_slow])

start_dates = st.dates(min_value=date(2000, 1, 1), max_value=date(2090, 12, 31))
horizons = st.integers(min_value=1, max_value=24)


@composite
def schedules(draw):
    """A random recurring frequency with anchors valid for it."""
    frequency = draw(st.sampled_from([f for f in Frequency if f is not Frequency.NONE]))
    day_of_month = draw(st.one_of(st.none(), st.integers(min_value=1, max_value=31)))
    day_of_week = draw(st.one_of(st.none(), st.integers(min_value=0, max_value=6)))
    return frequency, day_of_month, day_of_week


class TestWindowProperties:
    @given(schedule=schedules(), start=start_dates, months=horizons)
    @_PROFILE
    def test_strictly_increasing_and_bounded(self, schedule, start, months):
        frequency, dom, dow = schedule
        horizon = add_months(start, months)

        dates = occurrence_window(start, None, frequency, dom, dow, horizon)

        assert all(a < b for a, b in zip(dates, dates[1:]))
        assert all(start <= d <= horizon for d in dates)

    @given(
        schedule=schedules(),
        start=start_dates,
        months=horizons,
        cap=st.integers(min_value=1, max_value=20),
    )
    @_PROFILE
    def test_cap_respected(self, schedule, start, months, cap):
        frequency, dom, dow = schedule
        horizon = add_months(start, months)

        dates = occurrence_window(
            start, None, frequency, dom, dow, horizon, max_occurrences=cap
        )

        assert len(dates) <= cap

    @given(
        schedule=schedules(),
        start=start_dates,
        months=horizons,
        end_offset=st.integers(min_value=0, max_value=400),
    )
    @_PROFILE
    def test_end_date_bounds_window(self, schedule, start, months, end_offset):
        frequency, dom, dow = schedule
        end = start + timedelta(days=end_offset)

        dates = occurrence_window(start, end, frequency, dom, dow, add_months(start, months))

        assert all(d <= end for d in dates)

    @given(schedule=schedules(), start=start_dates, months=horizons)
    @_PROFILE
    def test_deterministic(self, schedule, start, months):
        frequency, dom, dow = schedule
        horizon = add_months(start, months)

        first = occurrence_window(start, None, frequency, dom, dow, horizon)
        second = occurrence_window(start, None, frequency, dom, dow, horizon)

        assert first == second


class TestAnchorProperties:
    @given(
        frequency=st.sampled_from([Frequency.MONTHLY, Frequency.QUARTERLY]),
        dom=st.integers(min_value=1, max_value=31),
        start=start_dates,
        months=horizons,
    )
    @_PROFILE
    def test_monthly_day_clamped(self, frequency, dom, start, months):
        dates = occurrence_window(
            start, None, frequency, dom, None, add_months(start, months)
        )

        for d in dates:
            assert d.day == min(dom, days_in_month(d.year, d.month))

    @given(
        dom=st.integers(min_value=1, max_value=31),
        start=start_dates,
        months=horizons,
    )
    @_PROFILE
    def test_quarterly_three_months_apart(self, dom, start, months):
        dates = occurrence_window(
            start, None, Frequency.QUARTERLY, dom, None, add_months(start, months)
        )

        for a, b in zip(dates, dates[1:]):
            assert (b.year * 12 + b.month) - (a.year * 12 + a.month) == 3

    @given(
        frequency=st.sampled_from([Frequency.WEEKLY, Frequency.BIWEEKLY]),
        dow=st.integers(min_value=0, max_value=6),
        start=start_dates,
        months=horizons,
    )
    @_PROFILE
    def test_weekly_same_weekday(self, frequency, dow, start, months):
        step = 7 if frequency is Frequency.WEEKLY else 14
        dates = occurrence_window(
            start, None, frequency, None, dow, add_months(start, months)
        )

        assert dates
        assert all(weekday_of(d) == dow for d in dates)
        assert all((b - a).days == step for a, b in zip(dates, dates[1:]))
        assert (dates[0] - start).days < 7

    @given(start=start_dates, months=horizons)
    @_PROFILE
    def test_daily_consecutive(self, start, months):
        dates = occurrence_window(
            start, None, Frequency.DAILY, None, None, add_months(start, months)
        )

        assert dates[0] == start
        assert all((b - a).days == 1 for a, b in zip(dates, dates[1:]))
