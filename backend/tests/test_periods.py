r"""backend/tests/test_periods.py"""

from __future__ import annotations

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.append(str(ROOT))

from backend.app.core.errors import InvalidPeriodError  # noqa: E402
from backend.app.models.schemas import Cadence  # noqa: E402
from backend.app.services.periods import (  # noqa: E402
    MonthlyRule,
    as_naive_utc,
    date_range_period,
    lookback_period,
    parse_month,
    previous_period,
    resolve_period,
    rolling_period,
)

NOW = datetime(2024, 3, 20, 12, 0)


def test_rolling_cadences_count_back_from_now() -> None:
    weekly = resolve_period(Cadence.WEEKLY, NOW)
    biweekly = resolve_period(Cadence.BIWEEKLY, NOW)

    assert (weekly.start, weekly.end, weekly.days) == (NOW - timedelta(days=7), NOW, 7)
    assert (biweekly.start, biweekly.days) == (NOW - timedelta(days=14), 14)


def test_monthly_rules() -> None:
    to_date = resolve_period(Cadence.MONTHLY, NOW)
    rolling = resolve_period(Cadence.MONTHLY, NOW, monthly_rule=MonthlyRule.ROLLING)

    assert to_date.start == datetime(2024, 3, 1)
    assert to_date.end == NOW
    assert to_date.days == 30
    assert rolling.start == NOW - timedelta(days=30)


def test_half_month_cadences() -> None:
    first = resolve_period(Cadence.FIRST_HALF, NOW, month="2024-02")
    second = resolve_period(Cadence.SECOND_HALF, NOW, month="2024-02")
    full = resolve_period(Cadence.FULL_MONTH, NOW, month="2024-02")

    assert (first.start, first.end, first.days) == (
        datetime(2024, 2, 1),
        datetime(2024, 2, 15, 23, 59, 59),
        15,
    )
    assert (second.start, second.end, second.days) == (
        datetime(2024, 2, 16),
        datetime(2024, 2, 29, 23, 59, 59),
        14,
    )
    assert (full.start, full.end, full.days) == (
        datetime(2024, 2, 1),
        datetime(2024, 2, 29, 23, 59, 59),
        29,
    )


def test_calendar_cadence_defaults_to_current_month() -> None:
    period = resolve_period(Cadence.FULL_MONTH, NOW)

    assert period.start == datetime(2024, 3, 1)
    assert period.end == datetime(2024, 3, 31, 23, 59, 59)
    assert period.to_period().cadence is Cadence.FULL_MONTH


def test_previous_periods() -> None:
    weekly = resolve_period(Cadence.WEEKLY, NOW)
    previous_week = previous_period(weekly)
    assert previous_week.start == NOW - timedelta(days=14)
    assert previous_week.end < weekly.start
    assert previous_week.end == weekly.start - timedelta(microseconds=1)

    month_to_date = previous_period(resolve_period(Cadence.MONTHLY, NOW))
    assert month_to_date.start == datetime(2024, 2, 1)
    assert month_to_date.end == datetime(2024, 2, 20, 12, 0)
    assert month_to_date.days == 20

    january_second_half = previous_period(resolve_period(Cadence.SECOND_HALF, NOW, month="2024-01"))
    assert january_second_half.start == datetime(2023, 12, 16)
    assert january_second_half.end == datetime(2023, 12, 31, 23, 59, 59)
    assert january_second_half.cadence is Cadence.SECOND_HALF


def test_month_to_date_previous_clamps_to_month_end() -> None:
    end_of_march = datetime(2024, 3, 31, 18, 30)

    previous = previous_period(resolve_period(Cadence.MONTHLY, end_of_march))

    assert previous.start == datetime(2024, 2, 1)
    assert previous.end == datetime(2024, 2, 29, 18, 30)
    assert previous.month == (2024, 2)


def test_lookback_covers_whole_calendar_dates() -> None:
    period = lookback_period(15, NOW)

    assert period.start == datetime(2024, 3, 6)
    assert period.end == NOW
    assert (period.end.date() - period.start.date()).days + 1 == 15
    with pytest.raises(InvalidPeriodError):
        lookback_period(0, NOW)


def test_invalid_inputs_raise_invalid_period() -> None:
    with pytest.raises(InvalidPeriodError):
        resolve_period("quarterly", NOW)
    with pytest.raises(InvalidPeriodError):
        resolve_period(Cadence.FIRST_HALF, NOW, month="2024-13")
    with pytest.raises(InvalidPeriodError):
        resolve_period(Cadence.FULL_MONTH, NOW, allowed=(Cadence.WEEKLY,))
    with pytest.raises(InvalidPeriodError):
        parse_month("March")
    with pytest.raises(InvalidPeriodError):
        rolling_period(0, NOW)
    with pytest.raises(InvalidPeriodError):
        date_range_period(datetime(2024, 3, 5), datetime(2024, 3, 1), NOW)


def test_date_range_defaults_and_timezones() -> None:
    period = date_range_period(None, None, NOW)
    assert period.start == datetime(2024, 3, 1)
    assert period.end == datetime(2024, 3, 31, 23, 59, 59)
    assert period.days == 31

    aware = datetime(2024, 3, 1, 3, 0, tzinfo=timezone(timedelta(hours=-3)))
    assert as_naive_utc(aware) == datetime(2024, 3, 1, 6, 0)
    assert date_range_period(aware, None, NOW).start == datetime(2024, 3, 1, 6, 0)
