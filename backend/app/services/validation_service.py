r"""backend\app\services\validation_service.py"""

from __future__ import annotations

import os

import pandas as pd

from .inventory_store import REQUIRED_TABLES, TABLE_COLUMNS
from .io_utils import table_paths

# Columns a table must carry to be usable; the rest are optional.
REQUIRED_COLUMNS = {
    "sectors": ["id", "name"],
    "users": ["id", "full_name"],
    "products": ["id", "name", "sector_id", "stock_quantity", "unit_price"],
    "consumptions": ["id", "user_id", "product_id", "qty", "consumed_at"],
    "stock_transactions": ["id", "product_id", "change", "created_at"],
}


class ValidationService:
    def __init__(self, data_root: str | None = None):
        self.data_root = data_root or os.getenv("DATA_DIR", "data")

    @staticmethod
    def _columns(parquet: str, csv: str) -> list[str]:
        if os.path.exists(parquet):
            return list(pd.read_parquet(parquet).columns)
        return list(pd.read_csv(csv, nrows=3).columns)

    def run(self) -> dict:
        checks = []

        def add(name: str, ok: bool, msg: str = "") -> None:
            checks.append({"name": name, "ok": bool(ok), "message": msg})

        for table in TABLE_COLUMNS:
            parquet, csv = (str(path) for path in table_paths(self.data_root, table))
            exists = os.path.exists(parquet) or os.path.exists(csv)
            required = table in REQUIRED_TABLES
            # Optional tables only fail the check when present but malformed.
            add(f"file_{table}_exists", exists or not required, parquet if os.path.exists(parquet) else csv)

            if exists:
                columns = self._columns(parquet, csv)
                missing = [c for c in REQUIRED_COLUMNS[table] if c not in columns]
                message = f"missing: {missing}" if missing else f"have: {columns[:8]}..."
                add(f"{table}_columns_ok", not missing, message)

        overall = all(x["ok"] for x in checks)
        return {"ok": overall, "checks": checks}
