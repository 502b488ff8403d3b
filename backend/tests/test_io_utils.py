r"""backend/tests/test_io_utils.py"""

from __future__ import annotations

import sys
from pathlib import Path

import pandas as pd
import pytest

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.append(str(ROOT))

from backend.app.services.io_utils import prefer_parquet  # noqa: E402


def test_missing_optional_table_is_empty(tmp_path: Path) -> None:
    frame = prefer_parquet(tmp_path, "stock_transactions", columns=["id", "change"], required=False)

    assert frame.empty
    assert list(frame.columns) == ["id", "change"]


def test_missing_required_table_raises(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        prefer_parquet(tmp_path, "products", columns=["id"])


def test_csv_fallback_pads_missing_columns(tmp_path: Path) -> None:
    (tmp_path / "sectors.csv").write_text("id,name\n1,FoodStation\n", encoding="utf-8")

    frame = prefer_parquet(tmp_path, "sectors", columns=["id", "name", "description"])

    assert frame.loc[0, "name"] == "FoodStation"
    assert pd.isna(frame.loc[0, "description"])
