r"""backend\app\services\periods.py

Reporting period resolution.

A cadence maps to a fixed day count and a start rule (see ``CADENCE_WINDOWS``);
calendar cadences are anchored to a ``YYYY-MM`` month.  All datetimes are
naive UTC.
"""

from __future__ import annotations

import calendar
import re
from dataclasses import dataclass, replace
from datetime import date, datetime, time, timedelta, timezone
from enum import Enum
from typing import Iterable, Optional, Tuple

from ..core.errors import InvalidPeriodError
from ..models.schemas import Cadence, Period

MONTH_PATTERN = re.compile(r"^(\d{4})-(0[1-9]|1[0-2])$")

END_OF_DAY = time(23, 59, 59)

# Smallest datetime step; keeps adjacent inclusive windows disjoint.
ONE_TICK = timedelta(microseconds=1)


class MonthlyRule(str, Enum):
    """How the ``monthly`` cadence picks its start boundary."""

    MONTH_TO_DATE = "month_to_date"
    ROLLING = "rolling"


@dataclass(frozen=True)
class CadenceWindow:
    days: Optional[int]
    calendar_anchored: bool


# ``days`` is None where the length depends on the anchored month.
CADENCE_WINDOWS = {
    Cadence.WEEKLY: CadenceWindow(days=7, calendar_anchored=False),
    Cadence.BIWEEKLY: CadenceWindow(days=14, calendar_anchored=False),
    Cadence.MONTHLY: CadenceWindow(days=30, calendar_anchored=False),
    Cadence.FIRST_HALF: CadenceWindow(days=15, calendar_anchored=True),
    Cadence.SECOND_HALF: CadenceWindow(days=None, calendar_anchored=True),
    Cadence.FULL_MONTH: CadenceWindow(days=None, calendar_anchored=True),
}


@dataclass(frozen=True)
class ResolvedPeriod:
    start: datetime
    end: datetime
    days: int
    cadence: Optional[Cadence] = None
    monthly_rule: Optional[MonthlyRule] = None
    month: Optional[Tuple[int, int]] = None

    def to_period(self) -> Period:
        return Period(start=self.start, end=self.end, cadence=self.cadence, days=self.days)


# ---------------------------------------------------------------------------
# Time helpers


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def parse_month(value: str) -> Tuple[int, int]:
    match = MONTH_PATTERN.match(value or "")
    if match is None:
        raise InvalidPeriodError(f"Month '{value}' must use the YYYY-MM format.")
    return int(match.group(1)), int(match.group(2))


def month_length(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def month_bounds(year: int, month: int) -> Tuple[datetime, datetime]:
    """Return day 1 00:00:00 and the last day 23:59:59 of a month."""

    start = datetime(year, month, 1)
    end = datetime.combine(start.replace(day=month_length(year, month)).date(), END_OF_DAY)
    return start, end


def previous_month(year: int, month: int) -> Tuple[int, int]:
    if month == 1:
        return year - 1, 12
    return year, month - 1


# ---------------------------------------------------------------------------
# Resolution


def _calendar_period(cadence: Cadence, year: int, month: int) -> ResolvedPeriod:
    first_day, last_moment = month_bounds(year, month)
    length = month_length(year, month)

    if cadence is Cadence.FIRST_HALF:
        start, end, days = first_day, datetime(year, month, 15, 23, 59, 59), 15
    elif cadence is Cadence.SECOND_HALF:
        start, end, days = datetime(year, month, 16), last_moment, length - 15
    else:
        start, end, days = first_day, last_moment, length

    return ResolvedPeriod(start=start, end=end, days=days, cadence=cadence, month=(year, month))


def resolve_period(
    cadence: Cadence,
    now: datetime,
    *,
    month: Optional[str] = None,
    monthly_rule: MonthlyRule = MonthlyRule.MONTH_TO_DATE,
    allowed: Optional[Iterable[Cadence]] = None,
) -> ResolvedPeriod:
    """Map ``cadence`` to concrete boundaries relative to ``now``.

    Calendar cadences use ``month`` (``YYYY-MM``) and default to the month of
    ``now``.  ``allowed`` restricts the cadences a report kind accepts.
    """

    try:
        cadence = Cadence(cadence)
    except ValueError as exc:
        raise InvalidPeriodError(f"Unsupported cadence '{cadence}'.") from exc

    if allowed is not None and cadence not in set(allowed):
        raise InvalidPeriodError(f"Cadence '{cadence.value}' is not supported by this report.")

    window = CADENCE_WINDOWS[cadence]
    if window.calendar_anchored:
        year, month_number = parse_month(month) if month else (now.year, now.month)
        return _calendar_period(cadence, year, month_number)

    if cadence is Cadence.MONTHLY and monthly_rule is MonthlyRule.MONTH_TO_DATE:
        start = datetime(now.year, now.month, 1)
        return ResolvedPeriod(
            start=start,
            end=now,
            days=window.days,
            cadence=cadence,
            monthly_rule=monthly_rule,
            month=(now.year, now.month),
        )

    return ResolvedPeriod(
        start=now - timedelta(days=window.days),
        end=now,
        days=window.days,
        cadence=cadence,
        monthly_rule=monthly_rule if cadence is Cadence.MONTHLY else None,
    )


def previous_period(period: ResolvedPeriod) -> ResolvedPeriod:
    """Return the immediately preceding equivalent period.

    Rolling windows shift back by their day count and end just before the
    current start.  Month-to-date maps to the same span of the previous month
    (day 1 up to the same day and time, clamped to that month's last day) and
    calendar cadences map to the same cadence of the previous month.
    """

    if period.cadence is not None and CADENCE_WINDOWS[period.cadence].calendar_anchored:
        year, month = previous_month(*period.month)
        return _calendar_period(period.cadence, year, month)

    if period.cadence is Cadence.MONTHLY and period.monthly_rule is MonthlyRule.MONTH_TO_DATE:
        year, month = previous_month(*period.month)
        day = min(period.end.day, month_length(year, month))
        end = datetime.combine(date(year, month, day), period.end.time())
        return replace(period, start=datetime(year, month, 1), end=end, days=day, month=(year, month))

    shift = timedelta(days=period.days)
    return replace(period, start=period.start - shift, end=period.start - ONE_TICK)


def rolling_period(days: int, now: datetime) -> ResolvedPeriod:
    """Window of ``days`` days ending at ``now``, with no cadence tag."""

    if days <= 0:
        raise InvalidPeriodError("days must be a positive integer.")
    return ResolvedPeriod(start=now - timedelta(days=days), end=now, days=days)


def lookback_period(days: int, now: datetime) -> ResolvedPeriod:
    """The ``days`` calendar dates of a daily series ending on ``now``'s date."""

    if days <= 0:
        raise InvalidPeriodError("days must be a positive integer.")
    first_day = now.date() - timedelta(days=days - 1)
    return ResolvedPeriod(start=datetime.combine(first_day, time.min), end=now, days=days)


def date_range_period(
    start: Optional[datetime],
    end: Optional[datetime],
    now: datetime,
) -> ResolvedPeriod:
    """Explicit date range, defaulting each missing bound to the current month."""

    month_start, month_end = month_bounds(now.year, now.month)
    start = as_naive_utc(start) or month_start
    end = as_naive_utc(end) or month_end
    if start > end:
        raise InvalidPeriodError("start must not be after end.")
    days = (end.date() - start.date()).days + 1
    return ResolvedPeriod(start=start, end=end, days=days)
