"""API endpoints for reading and updating the analytics thresholds YAML file."""

from __future__ import annotations

import os
import shutil
import tempfile
from typing import Any, Dict, Optional

import yaml
from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, Field

from ...core.config import ANALYTICS_CONFIG_FILE, AnalyticsThresholds, get_settings

router = APIRouter()

CONFIG_DIR = get_settings().config_dir


def _analytics_path() -> str:
    return os.path.join(CONFIG_DIR, ANALYTICS_CONFIG_FILE)


def _load_yaml(path: str) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as handle:
        return yaml.safe_load(handle) or {}


def _safe_write_yaml(path: str, payload: Dict[str, Any]) -> None:
    directory = os.path.dirname(path) or "."
    os.makedirs(directory, exist_ok=True)

    fd, tmp_path = tempfile.mkstemp(
        prefix=".tmp-", suffix=".yaml", dir=directory
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            yaml.safe_dump(payload, handle, sort_keys=False, allow_unicode=True)
        shutil.move(tmp_path, path)
    finally:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)


class TrendMultipliersUpdate(BaseModel):
    increasing: Optional[float] = Field(None, ge=0.0, le=5.0)
    stable: Optional[float] = Field(None, ge=0.0, le=5.0)
    decreasing: Optional[float] = Field(None, ge=0.0, le=5.0)


class AnalyticsUpdate(BaseModel):
    trend_slope_threshold: Optional[float] = Field(None, ge=0.0)
    trend_multipliers: Optional[TrendMultipliersUpdate] = None
    cv_high_confidence: Optional[float] = Field(None, gt=0.0)
    cv_medium_confidence: Optional[float] = Field(None, gt=0.0)
    min_confidence_points: Optional[int] = Field(None, ge=1, le=365)
    safety_buffer_rate: Optional[float] = Field(None, ge=0.0, le=1.0)
    high_risk_days: Optional[float] = Field(None, ge=0.0)
    medium_risk_days: Optional[float] = Field(None, ge=0.0)
    high_frequency_weekly: Optional[float] = Field(None, ge=0.0)
    medium_frequency_weekly: Optional[float] = Field(None, ge=0.0)
    cleaning_purchase_buffer: Optional[float] = Field(None, ge=0.0, le=1.0)
    default_low_stock_threshold: Optional[int] = Field(None, ge=0)
    reorder_lead_days: Optional[int] = Field(None, ge=0, le=365)
    reorder_window_days: Optional[int] = Field(None, ge=0, le=365)
    top_n: Optional[int] = Field(None, ge=1, le=100)


def _merge_updates(original: Dict[str, Any], updates: Dict[str, Any]) -> Dict[str, Any]:
    result = original.copy()
    for key, value in updates.items():
        if value is None:
            continue
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            nested = dict(result[key])
            nested.update({k: v for k, v in value.items() if v is not None})
            result[key] = nested
        else:
            result[key] = value
    return result


@router.get("/configs/analytics")
def get_analytics_config() -> Dict[str, Any]:
    try:
        return _load_yaml(_analytics_path())
    except FileNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={
                "error": "not_found",
                "message": f"{ANALYTICS_CONFIG_FILE} not found",
            },
        ) from exc


@router.put("/configs/analytics")
def put_analytics_config(body: AnalyticsUpdate) -> Dict[str, Any]:
    path = _analytics_path()
    try:
        current = _load_yaml(path)
    except FileNotFoundError:
        current = {}

    updated = _merge_updates(current, body.model_dump(exclude_none=True))
    if updated == current:
        return current

    thresholds = AnalyticsThresholds.from_mapping(updated)
    if thresholds.cv_high_confidence > thresholds.cv_medium_confidence:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={
                "error": "invalid_thresholds",
                "message": "cv_high_confidence must not exceed cv_medium_confidence",
            },
        )
    if thresholds.high_risk_days > thresholds.medium_risk_days:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={
                "error": "invalid_thresholds",
                "message": "high_risk_days must not exceed medium_risk_days",
            },
        )

    try:
        _safe_write_yaml(path, updated)
    except OSError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "write_failed", "message": str(exc)},
        ) from exc
    return updated
