r"""backend/tests/test_timeseries.py"""

from __future__ import annotations

import sys
from datetime import date, datetime
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.append(str(ROOT))

from backend.app.models.schemas import HistoryPoint  # noqa: E402
from backend.app.services.timeseries import build_daily_series, quantities  # noqa: E402

NOW = datetime(2024, 3, 20, 12, 0)


def test_sparse_history_is_zero_filled_to_exact_length() -> None:
    history = [
        HistoryPoint(date=date(2024, 3, 8), qty=3),
        HistoryPoint(date=date(2024, 3, 20), qty=1),
    ]

    series = build_daily_series(history, 15, NOW)

    assert len(series) == 15
    assert series[0].date == date(2024, 3, 6)
    assert series[-1].date == date(2024, 3, 20)
    assert quantities(series) == [0, 0, 3] + [0] * 11 + [1]
    assert all(a.date < b.date for a, b in zip(series, series[1:]))


def test_same_day_rows_are_summed_and_out_of_window_rows_ignored() -> None:
    history = [
        HistoryPoint(date=date(2024, 3, 19), qty=2),
        HistoryPoint(date=date(2024, 3, 19), qty=5),
        HistoryPoint(date=date(2024, 1, 1), qty=40),
        HistoryPoint(date=date(2024, 3, 21), qty=9),
    ]

    series = build_daily_series(history, 3, NOW)

    assert [p.date for p in series] == [date(2024, 3, 18), date(2024, 3, 19), date(2024, 3, 20)]
    assert quantities(series) == [0, 7, 0]


def test_negative_quantities_are_clamped() -> None:
    series = build_daily_series([HistoryPoint(date=date(2024, 3, 20), qty=-4)], 2, NOW)

    assert quantities(series) == [0, 0]


def test_empty_history_and_degenerate_windows() -> None:
    assert quantities(build_daily_series([], 7, NOW)) == [0] * 7
    assert build_daily_series([], 0, NOW) == []
    assert len(build_daily_series([], 1, date(2024, 2, 29))) == 1
