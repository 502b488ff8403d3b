"""Dense daily consumption vectors built from sparse history rows."""

from __future__ import annotations

from datetime import date, datetime
from typing import Iterable, List, Union

import pandas as pd

from ..models.schemas import DailyPoint, HistoryPoint


def build_daily_series(
    history: Iterable[HistoryPoint],
    days: int,
    now: Union[datetime, date],
) -> List[DailyPoint]:
    """Return exactly ``days`` points ending at ``now`` (inclusive), zero-filled.

    Rows on the same date are summed, rows outside the window are ignored and
    negative quantities are clamped to zero.  The result is ascending and never
    contains a date after ``now``.
    """

    if days <= 0:
        return []

    end_day = now.date() if isinstance(now, datetime) else now
    index = pd.date_range(end=pd.Timestamp(end_day), periods=int(days), freq="D")

    rows = [(pd.Timestamp(point.date), max(float(point.qty), 0.0)) for point in history]
    if rows:
        observed = pd.DataFrame(rows, columns=["date", "qty"]).groupby("date")["qty"].sum()
    else:
        observed = pd.Series(dtype=float)

    dense = observed.reindex(index, fill_value=0.0).astype(float)
    return [DailyPoint(date=ts.date(), quantity=float(qty)) for ts, qty in dense.items()]


def quantities(series: Iterable[DailyPoint]) -> List[float]:
    return [point.quantity for point in series]
