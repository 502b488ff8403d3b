r"""backend\app\services\analytics_service.py

Closed-form consumption analytics: trend, confidence, demand projection,
reorder quantity and stockout risk.

Everything here is a pure function of its arguments (kept top-level for
straightforward unit testing); the thresholds default to the values in
``AnalyticsThresholds`` and can be overridden from ``configs/analytics.yaml``.
"""

from __future__ import annotations

import math
from typing import List, Optional, Sequence, Tuple

import numpy as np

from ..core.config import AnalyticsThresholds
from ..models.schemas import (
    ConfidenceLevel,
    ConsumptionFrequency,
    DailyPoint,
    PredictiveAnalysis,
    ProductSnapshot,
    ReorderCadence,
    StockoutRisk,
    StockStatus,
    TrendDirection,
    TrendResult,
)
from .timeseries import quantities

DEFAULT_THRESHOLDS = AnalyticsThresholds()

# Runway reported when nothing is being consumed.
INFINITE_RUNWAY_DAYS = 999.0


def ceil_quantity(value: float) -> int:
    """``math.ceil`` that ignores floating point noise such as 36.000000000004."""

    return int(math.ceil(round(float(value), 9)))


def _as_array(values: Sequence[float]) -> np.ndarray:
    return np.asarray([max(float(v), 0.0) for v in values], dtype=float)


# ---------------------------------------------------------------------------
# Trend


def calculate_trend(values: Sequence[float]) -> float:
    """Return the least-squares slope of ``values`` against their day index."""

    y = np.asarray(values, dtype=float)
    n = y.size
    if n < 2:
        return 0.0

    x = np.arange(n, dtype=float)
    denominator = n * float(np.sum(x * x)) - float(np.sum(x)) ** 2
    if denominator == 0:
        return 0.0
    numerator = n * float(np.sum(x * y)) - float(np.sum(x)) * float(np.sum(y))
    return numerator / denominator


def trend_direction(
    slope: float, thresholds: AnalyticsThresholds = DEFAULT_THRESHOLDS
) -> TrendDirection:
    if slope > thresholds.trend_slope_threshold:
        return TrendDirection.INCREASING
    if slope < -thresholds.trend_slope_threshold:
        return TrendDirection.DECREASING
    return TrendDirection.STABLE


def estimate_trend(
    values: Sequence[float], thresholds: AnalyticsThresholds = DEFAULT_THRESHOLDS
) -> TrendResult:
    slope = calculate_trend(values)
    return TrendResult(slope=slope, direction=trend_direction(slope, thresholds))


# ---------------------------------------------------------------------------
# Confidence


def coefficient_of_variation(values: Sequence[float]) -> float:
    """Return ``std / mean`` using the population standard deviation.

    A zero (or empty) mean yields 1.0, the least confident value.
    """

    data = _as_array(values)
    if data.size == 0:
        return 1.0
    mean = float(np.mean(data))
    if mean <= 0:
        return 1.0
    return float(np.std(data)) / mean


def confidence_level(
    values: Sequence[float], thresholds: AnalyticsThresholds = DEFAULT_THRESHOLDS
) -> ConfidenceLevel:
    """Bucket the precision of a projection made from ``values``.

    Fewer than ``min_confidence_points`` observations, or fewer than that many
    days with any consumption, always give ``low``.
    """

    data = _as_array(values)
    minimum = thresholds.min_confidence_points
    if data.size < minimum or int(np.count_nonzero(data)) < minimum:
        return ConfidenceLevel.LOW

    cv = coefficient_of_variation(data)
    if cv < thresholds.cv_high_confidence:
        return ConfidenceLevel.HIGH
    if cv < thresholds.cv_medium_confidence:
        return ConfidenceLevel.MEDIUM
    return ConfidenceLevel.LOW


# ---------------------------------------------------------------------------
# Demand projection


def average_daily(values: Sequence[float]) -> float:
    data = _as_array(values)
    if data.size == 0:
        return 0.0
    return float(np.sum(data)) / data.size


def trend_multiplier(
    direction: TrendDirection, thresholds: AnalyticsThresholds = DEFAULT_THRESHOLDS
) -> float:
    return float(thresholds.trend_multipliers.get(direction.value, 1.0))


def predict_demand(
    average_daily_consumption: float,
    direction: TrendDirection,
    horizon_days: int,
    thresholds: AnalyticsThresholds = DEFAULT_THRESHOLDS,
) -> int:
    """Project consumption over ``horizon_days``, rounded up."""

    if horizon_days <= 0 or average_daily_consumption <= 0:
        return 0
    projected = average_daily_consumption * horizon_days * trend_multiplier(direction, thresholds)
    return max(ceil_quantity(projected), 0)


# ---------------------------------------------------------------------------
# Reorder and risk


def safety_buffer(predicted: float, thresholds: AnalyticsThresholds = DEFAULT_THRESHOLDS) -> int:
    return max(ceil_quantity(max(predicted, 0.0) * thresholds.safety_buffer_rate), 0)


def calculate_reorder(
    predicted: float,
    current_stock: float,
    thresholds: AnalyticsThresholds = DEFAULT_THRESHOLDS,
) -> Tuple[int, int]:
    """Return ``(recommended_reorder, safety_buffer)``."""

    buffer = safety_buffer(predicted, thresholds)
    reorder = max(0, ceil_quantity(max(predicted, 0.0) - max(current_stock, 0.0) + buffer))
    return reorder, buffer


def days_until_stockout(current_stock: float, predicted: float, horizon_days: int) -> float:
    if current_stock <= 0:
        return 0.0
    if horizon_days <= 0 or predicted <= 0:
        return INFINITE_RUNWAY_DAYS
    daily_rate = predicted / horizon_days
    return min(current_stock / daily_rate, INFINITE_RUNWAY_DAYS)


def risk_from_runway(
    runway_days: float, thresholds: AnalyticsThresholds = DEFAULT_THRESHOLDS
) -> StockoutRisk:
    if runway_days < thresholds.high_risk_days:
        return StockoutRisk.HIGH
    if runway_days < thresholds.medium_risk_days:
        return StockoutRisk.MEDIUM
    return StockoutRisk.LOW


def assess_stockout_risk(
    current_stock: float,
    predicted: float,
    horizon_days: int,
    thresholds: AnalyticsThresholds = DEFAULT_THRESHOLDS,
) -> StockoutRisk:
    if current_stock <= 0:
        return StockoutRisk.HIGH
    return risk_from_runway(days_until_stockout(current_stock, predicted, horizon_days), thresholds)


def classify_frequency(
    weekly_average: float, thresholds: AnalyticsThresholds = DEFAULT_THRESHOLDS
) -> Tuple[ConsumptionFrequency, ReorderCadence]:
    """Bucket weekly volume and map it to a suggested reorder cadence."""

    if weekly_average >= thresholds.high_frequency_weekly:
        return ConsumptionFrequency.HIGH, ReorderCadence.WEEKLY
    if weekly_average >= thresholds.medium_frequency_weekly:
        return ConsumptionFrequency.MEDIUM, ReorderCadence.BIWEEKLY
    return ConsumptionFrequency.LOW, ReorderCadence.MONTHLY


# ---------------------------------------------------------------------------
# Stock status


def stock_status(
    current_stock: float,
    low_stock_threshold: Optional[float],
    max_quantity: Optional[float],
) -> StockStatus:
    if current_stock <= 0:
        return StockStatus.OUT_OF_STOCK
    if low_stock_threshold and current_stock <= low_stock_threshold:
        return StockStatus.LOW
    if max_quantity and current_stock > max_quantity:
        return StockStatus.OVERSTOCKED
    return StockStatus.OK


def overview_stock_status(
    current_stock: float,
    low_stock_threshold: Optional[float],
    thresholds: AnalyticsThresholds = DEFAULT_THRESHOLDS,
) -> StockStatus:
    """Variant used by the food-station overview: half the threshold is critical."""

    minimum = low_stock_threshold or thresholds.default_low_stock_threshold
    if current_stock <= 0:
        return StockStatus.OUT_OF_STOCK
    if current_stock <= minimum / 2:
        return StockStatus.CRITICAL
    if current_stock <= minimum:
        return StockStatus.LOW
    return StockStatus.OK


# ---------------------------------------------------------------------------
# Per-product analysis


def analyze_product(
    product: ProductSnapshot,
    series: Sequence[DailyPoint],
    horizon_days: int,
    thresholds: AnalyticsThresholds = DEFAULT_THRESHOLDS,
) -> PredictiveAnalysis:
    """Run trend, confidence, projection, reorder and risk for one product."""

    values: List[float] = quantities(series)
    average = average_daily(values)
    trend = estimate_trend(values, thresholds)
    predicted = predict_demand(average, trend.direction, horizon_days, thresholds)
    reorder, buffer = calculate_reorder(predicted, product.current_stock, thresholds)

    return PredictiveAnalysis(
        product_id=product.id,
        product_name=product.name,
        current_stock=product.current_stock,
        min_quantity=product.min_quantity,
        max_quantity=product.max_quantity,
        unit_price=product.unit_price,
        daily_consumption=values,
        average_daily_consumption=average,
        trend=trend,
        horizon_days=horizon_days,
        predicted_consumption=predicted,
        safety_buffer=buffer,
        recommended_reorder=reorder,
        confidence_level=confidence_level(values, thresholds),
        stockout_risk=assess_stockout_risk(product.current_stock, predicted, horizon_days, thresholds),
        days_until_stockout=days_until_stockout(product.current_stock, predicted, horizon_days),
        photo_ref=product.photo_ref,
    )


_RISK_ORDER = {StockoutRisk.HIGH: 0, StockoutRisk.MEDIUM: 1, StockoutRisk.LOW: 2}


def risk_sort_key(risk: StockoutRisk, quantity: float) -> Tuple[int, float]:
    """High risk first, then the larger quantity first."""

    return _RISK_ORDER[risk], -quantity
