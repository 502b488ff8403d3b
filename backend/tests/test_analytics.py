r"""backend/tests/test_analytics.py"""

from __future__ import annotations

import sys
from datetime import date, timedelta
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.append(str(ROOT))

from backend.app.core.config import AnalyticsThresholds  # noqa: E402
from backend.app.models.schemas import (  # noqa: E402
    ConfidenceLevel,
    ConsumptionFrequency,
    DailyPoint,
    ProductSnapshot,
    ReorderCadence,
    StockoutRisk,
    StockStatus,
    TrendDirection,
)
from backend.app.services import analytics_service as analytics  # noqa: E402


def _series(values, end: date = date(2024, 3, 20)):
    start = end - timedelta(days=len(values) - 1)
    return [DailyPoint(date=start + timedelta(days=i), quantity=v) for i, v in enumerate(values)]


def test_flat_vector_is_stable_and_projects_exactly() -> None:
    values = [2.0] * 15

    assert analytics.average_daily(values) == 2.0
    assert analytics.calculate_trend(values) == pytest.approx(0.0)
    assert analytics.trend_direction(analytics.calculate_trend(values)) is TrendDirection.STABLE
    assert analytics.predict_demand(2.0, TrendDirection.STABLE, 15) == 30


def test_reorder_includes_safety_buffer() -> None:
    reorder, buffer = analytics.calculate_reorder(30, 5)

    assert buffer == 6
    assert reorder == 31


def test_reorder_is_zero_when_stock_covers_prediction_and_buffer() -> None:
    reorder, buffer = analytics.calculate_reorder(30, 36)

    assert buffer == 6
    assert reorder == 0
    assert analytics.calculate_reorder(30, 500)[0] == 0


def test_empty_stock_is_always_high_risk() -> None:
    assert analytics.assess_stockout_risk(0, 0, 15) is StockoutRisk.HIGH
    assert analytics.assess_stockout_risk(0, 1000, 15) is StockoutRisk.HIGH
    assert analytics.days_until_stockout(0, 30, 15) == 0.0


def test_slope_above_threshold_applies_increasing_multiplier() -> None:
    # y = 0.15 * x has an exact least-squares slope of 0.15.
    values = [0.15 * x for x in range(15)]
    slope = analytics.calculate_trend(values)

    assert slope == pytest.approx(0.15)
    assert analytics.trend_direction(slope) is TrendDirection.INCREASING

    average = analytics.average_daily(values)
    expected = analytics.ceil_quantity(average * 15 * 1.2)
    assert analytics.predict_demand(average, TrendDirection.INCREASING, 15) == expected


def test_decreasing_multiplier_and_short_vectors() -> None:
    assert analytics.calculate_trend([]) == 0.0
    assert analytics.calculate_trend([4.0]) == 0.0
    assert analytics.trend_direction(-0.2) is TrendDirection.DECREASING
    assert analytics.predict_demand(1.0, TrendDirection.DECREASING, 10) == 8
    assert analytics.predict_demand(0.0, TrendDirection.INCREASING, 30) == 0


def test_confidence_buckets() -> None:
    assert analytics.confidence_level([5.0] * 10) is ConfidenceLevel.HIGH
    # mean 5, population std 2.5 -> CV 0.5
    assert analytics.confidence_level([2.5, 7.5] * 5) is ConfidenceLevel.MEDIUM
    assert analytics.confidence_level([0.0, 10.0] * 5) is ConfidenceLevel.LOW


def test_confidence_is_low_without_enough_nonzero_points() -> None:
    assert analytics.confidence_level([3.0, 3.0]) is ConfidenceLevel.LOW
    assert analytics.confidence_level([0.0] * 12 + [3.0, 3.0]) is ConfidenceLevel.LOW
    assert analytics.confidence_level([0.0] * 15) is ConfidenceLevel.LOW
    assert analytics.coefficient_of_variation([0.0, 0.0]) == 1.0


def test_runway_thresholds_and_sentinel() -> None:
    assert analytics.days_until_stockout(10, 0, 15) == analytics.INFINITE_RUNWAY_DAYS
    assert analytics.assess_stockout_risk(10, 0, 15) is StockoutRisk.LOW
    # 30 over 15 days is 2/day
    assert analytics.days_until_stockout(8, 30, 15) == pytest.approx(4.0)
    assert analytics.assess_stockout_risk(8, 30, 15) is StockoutRisk.HIGH
    assert analytics.assess_stockout_risk(15, 30, 15) is StockoutRisk.MEDIUM
    assert analytics.assess_stockout_risk(20, 30, 15) is StockoutRisk.LOW


def test_frequency_classifier_maps_to_cadence() -> None:
    assert analytics.classify_frequency(12) == (ConsumptionFrequency.HIGH, ReorderCadence.WEEKLY)
    assert analytics.classify_frequency(10) == (ConsumptionFrequency.HIGH, ReorderCadence.WEEKLY)
    assert analytics.classify_frequency(5) == (ConsumptionFrequency.MEDIUM, ReorderCadence.BIWEEKLY)
    assert analytics.classify_frequency(4.9) == (ConsumptionFrequency.LOW, ReorderCadence.MONTHLY)


def test_stock_status_variants() -> None:
    assert analytics.stock_status(0, 10, 50) is StockStatus.OUT_OF_STOCK
    assert analytics.stock_status(10, 10, 50) is StockStatus.LOW
    assert analytics.stock_status(60, 10, 50) is StockStatus.OVERSTOCKED
    assert analytics.stock_status(20, None, None) is StockStatus.OK

    assert analytics.overview_stock_status(5, None) is StockStatus.CRITICAL
    assert analytics.overview_stock_status(8, None) is StockStatus.LOW
    assert analytics.overview_stock_status(8, 20) is StockStatus.CRITICAL
    assert analytics.overview_stock_status(11, None) is StockStatus.OK
    assert analytics.overview_stock_status(0, 20) is StockStatus.OUT_OF_STOCK


def test_analyze_product_combines_all_steps() -> None:
    product = ProductSnapshot(id=7, name="Sandwich", current_stock=5, unit_price=2.0)

    analysis = analytics.analyze_product(product, _series([2.0] * 15), 15)

    assert analysis.product_id == 7
    assert analysis.daily_consumption == [2.0] * 15
    assert analysis.average_daily_consumption == 2.0
    assert analysis.trend.direction is TrendDirection.STABLE
    assert analysis.predicted_consumption == 30
    assert analysis.safety_buffer == 6
    assert analysis.recommended_reorder == 31
    assert analysis.confidence_level is ConfidenceLevel.HIGH
    assert analysis.stockout_risk is StockoutRisk.HIGH
    assert analysis.days_until_stockout == pytest.approx(2.5)


def test_analyze_product_with_no_history() -> None:
    product = ProductSnapshot(id=8, name="Juice", current_stock=40, unit_price=3.0)

    analysis = analytics.analyze_product(product, _series([0.0] * 15), 15)

    assert analysis.predicted_consumption == 0
    assert analysis.recommended_reorder == 0
    assert analysis.confidence_level is ConfidenceLevel.LOW
    assert analysis.stockout_risk is StockoutRisk.LOW
    assert analysis.days_until_stockout == analytics.INFINITE_RUNWAY_DAYS


def test_thresholds_from_mapping_override_defaults() -> None:
    thresholds = AnalyticsThresholds.from_mapping(
        {"safety_buffer_rate": 0.5, "trend_multipliers": {"increasing": 1.5}, "unknown": 1}
    )

    assert thresholds.safety_buffer_rate == 0.5
    assert thresholds.trend_multipliers == {"increasing": 1.5, "stable": 1.0, "decreasing": 0.8}
    assert analytics.calculate_reorder(30, 0, thresholds) == (45, 15)
    assert analytics.predict_demand(1.0, TrendDirection.INCREASING, 10, thresholds) == 15


def test_risk_sort_key_orders_high_first_then_quantity() -> None:
    keys = [
        (StockoutRisk.LOW, 50),
        (StockoutRisk.HIGH, 2),
        (StockoutRisk.MEDIUM, 9),
        (StockoutRisk.HIGH, 31),
    ]
    ordered = sorted(keys, key=lambda item: analytics.risk_sort_key(*item))

    assert ordered == [
        (StockoutRisk.HIGH, 31),
        (StockoutRisk.HIGH, 2),
        (StockoutRisk.MEDIUM, 9),
        (StockoutRisk.LOW, 50),
    ]


def test_snapshot_rejects_negative_values() -> None:
    with pytest.raises(ValueError):
        ProductSnapshot(id=1, name="Broken", current_stock=-1, unit_price=1.0)


def test_analysis_is_deterministic() -> None:
    product = ProductSnapshot(id=9, name="Tea", current_stock=12, unit_price=1.0)
    series = _series([1.0, 2.0, 3.0], end=date(2024, 1, 3))

    first = analytics.analyze_product(product, series, 15)
    second = analytics.analyze_product(product, series, 15)

    assert first == second
