"""
Application configuration utilities.

This module defines the ``Settings`` class used throughout the service for
environment variables, the ``AnalyticsThresholds`` bundle of business rules
and a helper to load the YAML files that hold those rules.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from functools import lru_cache
from typing import Any, Dict

import yaml
from pydantic_settings import BaseSettings, SettingsConfigDict

ANALYTICS_CONFIG_FILE = "analytics.yaml"


class Settings(BaseSettings):
    """Configuration loaded from environment variables or a .env file."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # API server configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # Location of the inventory tables and of the YAML business rules
    data_dir: str = "data"
    config_dir: str = "configs"

    # Report fan-out limits
    report_max_concurrency: int = 8
    report_fetch_timeout_seconds: float = 5.0

    # Currency label attached to every monetary KPI
    currency: str = "BRL"


@lru_cache(maxsize=None)
def get_settings() -> Settings:
    """Return a cached instance of ``Settings``.

    Using a cache ensures that environment variables are only read once.
    """
    return Settings()


def load_yaml(file_path: str) -> dict:
    """Load a YAML file from the given path and return its contents.

    If the file does not exist, an empty dictionary is returned.
    """
    if not os.path.exists(file_path):
        return {}
    with open(file_path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def _default_multipliers() -> Dict[str, float]:
    return {"increasing": 1.2, "stable": 1.0, "decreasing": 0.8}


@dataclass(frozen=True)
class AnalyticsThresholds:
    """Business rules for trend, confidence, reorder and risk classification."""

    trend_slope_threshold: float = 0.1
    trend_multipliers: Dict[str, float] = field(default_factory=_default_multipliers)
    cv_high_confidence: float = 0.3
    cv_medium_confidence: float = 0.6
    min_confidence_points: int = 3
    safety_buffer_rate: float = 0.2
    high_risk_days: float = 5.0
    medium_risk_days: float = 10.0
    high_frequency_weekly: float = 10.0
    medium_frequency_weekly: float = 5.0
    cleaning_purchase_buffer: float = 0.1
    default_low_stock_threshold: int = 10
    reorder_lead_days: int = 7
    reorder_window_days: int = 60
    top_n: int = 5

    @classmethod
    def from_mapping(cls, data: Dict[str, Any]) -> "AnalyticsThresholds":
        known = {item.name for item in fields(cls)}
        values: Dict[str, Any] = {}
        for key, value in (data or {}).items():
            if key not in known or value is None:
                continue
            if key == "trend_multipliers":
                merged = _default_multipliers()
                merged.update({str(k): float(v) for k, v in dict(value).items()})
                values[key] = merged
            else:
                values[key] = value
        return cls(**values)

    @classmethod
    def from_config_dir(cls, config_root: str) -> "AnalyticsThresholds":
        return cls.from_mapping(load_yaml(os.path.join(config_root, ANALYTICS_CONFIG_FILE)))
