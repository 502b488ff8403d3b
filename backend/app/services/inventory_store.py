r"""backend\app\services\inventory_store.py

Read-only access to the inventory tables exported by the tracker.

The store is the analytics engine's only collaborator.  It loads the
``sectors``, ``users``, ``products``, ``consumptions`` and
``stock_transactions`` tables from ``DATA_DIR`` (Parquet preferred, CSV
fallback), normalises them once per file version and answers the historical
queries the report composer needs.  Every method is blocking; the reporting
service runs them in worker threads.
"""

from __future__ import annotations

import logging
import math
import os
import threading
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

import pandas as pd

from ..core.errors import NotFoundError
from ..models.schemas import (
    ConsumptionRecord,
    DailyConsumptionTotal,
    HistoryPoint,
    ProductSnapshot,
    Sector,
    StockTransaction,
    User,
)
from .io_utils import prefer_parquet, table_paths

LOGGER = logging.getLogger(__name__)

SECTOR_COLUMNS = ["id", "name"]
USER_COLUMNS = ["id", "full_name", "matricula", "role"]
PRODUCT_COLUMNS = [
    "id",
    "name",
    "sector_id",
    "category",
    "unit_price",
    "stock_quantity",
    "min_quantity",
    "max_quantity",
    "low_stock_threshold",
    "photo_path",
]
CONSUMPTION_COLUMNS = [
    "id",
    "user_id",
    "product_id",
    "qty",
    "unit_price",
    "total_price",
    "consumed_at",
]
TRANSACTION_COLUMNS = [
    "id",
    "product_id",
    "user_id",
    "change",
    "transaction_type",
    "created_at",
]

# Tables that must exist for any report to be produced.
REQUIRED_TABLES = {"sectors", "products"}

TABLE_COLUMNS: Dict[str, List[str]] = {
    "sectors": SECTOR_COLUMNS,
    "users": USER_COLUMNS,
    "products": PRODUCT_COLUMNS,
    "consumptions": CONSUMPTION_COLUMNS,
    "stock_transactions": TRANSACTION_COLUMNS,
}


# ---------------------------------------------------------------------------
# Value helpers


def _optional_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        if pd.isna(value):
            return None
    except (TypeError, ValueError):
        return None
    number = float(value)
    return number if math.isfinite(number) else None


def _optional_int(value: Any) -> Optional[int]:
    number = _optional_float(value)
    return int(number) if number is not None else None


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    try:
        if pd.isna(value):
            return None
    except (TypeError, ValueError):
        pass
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    text = str(value).strip()
    return text or None


def _to_naive_utc(series: pd.Series) -> pd.Series:
    parsed = pd.to_datetime(series, errors="coerce", utc=True)
    return parsed.dt.tz_convert(None)


def _numeric(series: pd.Series, default: float = 0.0) -> pd.Series:
    return pd.to_numeric(series, errors="coerce").fillna(default).astype(float)


class InventoryStore:
    """Pandas-backed implementation of the history and snapshot queries."""

    def __init__(self, data_root: Optional[str] = None) -> None:
        self.data_root = Path(data_root or os.getenv("DATA_DIR", "data"))
        self._cache: Dict[str, Tuple[Optional[float], pd.DataFrame]] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    def _table_mtime(self, name: str) -> Optional[float]:
        for path in table_paths(self.data_root, name):
            if path.exists():
                return path.stat().st_mtime
        return None

    def _table(self, name: str) -> pd.DataFrame:
        mtime = self._table_mtime(name)
        with self._lock:
            cached = self._cache.get(name)
            if cached is not None and cached[0] == mtime:
                return cached[1]

        frame = prefer_parquet(
            self.data_root,
            name,
            columns=TABLE_COLUMNS[name],
            required=name in REQUIRED_TABLES,
        )
        frame = _NORMALISERS[name](frame.copy())
        LOGGER.debug("Loaded table %s (%d rows) from %s", name, len(frame), self.data_root)

        with self._lock:
            self._cache[name] = (mtime, frame)
        return frame

    def data_files_present(self) -> bool:
        return all(self._table_mtime(name) is not None for name in REQUIRED_TABLES)

    # ------------------------------------------------------------------
    # Subjects

    def all_sectors(self) -> List[Sector]:
        frame = self._table("sectors")
        return [Sector(id=int(row.id), name=str(row.name)) for row in frame.itertuples(index=False)]

    def sector(self, sector_id: int) -> Sector:
        for sector in self.all_sectors():
            if sector.id == int(sector_id):
                return sector
        raise NotFoundError("sector", sector_id)

    def find_sector(self, keywords: Iterable[str]) -> Optional[Sector]:
        """Return the first sector whose name contains any of ``keywords``."""

        needles = [keyword.lower() for keyword in keywords]
        for sector in self.all_sectors():
            name = sector.name.lower()
            if any(needle in name for needle in needles):
                return sector
        return None

    def user(self, user_id: int) -> User:
        frame = self._table("users")
        match = frame[frame["id"] == int(user_id)]
        if match.empty:
            raise NotFoundError("user", user_id)
        row = match.iloc[0]
        return User(
            id=int(row["id"]),
            full_name=_optional_str(row["full_name"]) or "",
            matricula=_optional_str(row["matricula"]) or "",
            role=_optional_str(row["role"]) or "user",
        )

    # ------------------------------------------------------------------
    # Product snapshots

    def _sector_names(self) -> Dict[int, str]:
        return {sector.id: sector.name for sector in self.all_sectors()}

    def _snapshot(self, row: Dict[str, Any], sector_names: Dict[int, str]) -> ProductSnapshot:
        sector_id = _optional_int(row.get("sector_id"))
        return ProductSnapshot(
            id=int(row["id"]),
            name=_optional_str(row.get("name")) or f"Product {row['id']}",
            sector_id=sector_id,
            sector_name=sector_names.get(sector_id) if sector_id is not None else None,
            category=_optional_str(row.get("category")),
            current_stock=max(_optional_float(row.get("stock_quantity")) or 0.0, 0.0),
            min_quantity=_optional_float(row.get("min_quantity")),
            max_quantity=_optional_float(row.get("max_quantity")),
            unit_price=max(_optional_float(row.get("unit_price")) or 0.0, 0.0),
            low_stock_threshold=_optional_float(row.get("low_stock_threshold")),
            photo_ref=_optional_str(row.get("photo_path")),
        )

    def _snapshots(self, frame: pd.DataFrame) -> List[ProductSnapshot]:
        sector_names = self._sector_names()
        return [self._snapshot(row, sector_names) for row in frame.to_dict("records")]

    def product_snapshot(self, product_id: int) -> ProductSnapshot:
        frame = self._table("products")
        match = frame[frame["id"] == int(product_id)]
        if match.empty:
            raise NotFoundError("product", product_id)
        return self._snapshots(match.head(1))[0]

    def products_by_sector(self, sector_id: int) -> List[ProductSnapshot]:
        frame = self._table("products")
        return self._snapshots(frame[frame["sector_id"] == int(sector_id)])

    def all_products(self) -> List[ProductSnapshot]:
        return self._snapshots(self._table("products"))

    # ------------------------------------------------------------------
    # Consumption history

    @staticmethod
    def _history_window(days: int, now: datetime) -> Tuple[date, date]:
        end_day = now.date()
        return end_day - timedelta(days=max(int(days), 0)), end_day

    @staticmethod
    def _daily_sums(frame: pd.DataFrame) -> List[HistoryPoint]:
        if frame.empty:
            return []
        grouped = frame.groupby(frame["consumed_at"].dt.date)["qty"].sum().sort_index()
        return [HistoryPoint(date=day, qty=float(qty)) for day, qty in grouped.items()]

    def _consumptions_between_days(self, start_day: date, end_day: date) -> pd.DataFrame:
        frame = self._table("consumptions")
        days = frame["consumed_at"].dt.date
        return frame[(days >= start_day) & (days <= end_day)]

    def history(self, product_id: int, days: int, now: datetime) -> List[HistoryPoint]:
        """Return per-day consumed quantities for a product, ascending.

        Only days with activity are returned; callers zero-fill the gaps.
        """

        start_day, end_day = self._history_window(days, now)
        frame = self._consumptions_between_days(start_day, end_day)
        return self._daily_sums(frame[frame["product_id"] == int(product_id)])

    def sector_history(self, sector_id: int, days: int, now: datetime) -> List[HistoryPoint]:
        products = self._table("products")
        product_ids = set(products.loc[products["sector_id"] == int(sector_id), "id"].astype(int))
        start_day, end_day = self._history_window(days, now)
        frame = self._consumptions_between_days(start_day, end_day)
        return self._daily_sums(frame[frame["product_id"].isin(product_ids)])

    # ------------------------------------------------------------------
    # Consumption records

    def _consumption_view(self) -> pd.DataFrame:
        consumptions = self._table("consumptions")
        products = self._table("products")[["id", "name", "sector_id", "photo_path"]].rename(
            columns={"id": "product_id", "name": "product_name"}
        )
        users = self._table("users")[["id", "full_name", "matricula"]].rename(
            columns={"id": "user_id", "full_name": "user_name"}
        )
        view = consumptions.merge(products, on="product_id", how="left")
        view = view.merge(users, on="user_id", how="left")
        return view

    @staticmethod
    def _between(frame: pd.DataFrame, column: str, start: Optional[datetime], end: Optional[datetime]) -> pd.DataFrame:
        mask = pd.Series(True, index=frame.index)
        if start is not None:
            mask &= frame[column] >= pd.Timestamp(start)
        if end is not None:
            mask &= frame[column] <= pd.Timestamp(end)
        return frame[mask]

    @staticmethod
    def _records(frame: pd.DataFrame) -> List[ConsumptionRecord]:
        records: List[ConsumptionRecord] = []
        for row in frame.sort_values("consumed_at").to_dict("records"):
            records.append(
                ConsumptionRecord(
                    id=int(row["id"]),
                    user_id=_optional_int(row.get("user_id")),
                    user_name=_optional_str(row.get("user_name")) or "",
                    matricula=_optional_str(row.get("matricula")) or "",
                    product_id=int(row["product_id"]),
                    product_name=_optional_str(row.get("product_name")) or "",
                    sector_id=_optional_int(row.get("sector_id")),
                    quantity=float(row["qty"]),
                    unit_price=float(row["unit_price"]),
                    total_price=float(row["total_price"]),
                    consumed_at=row["consumed_at"].to_pydatetime(),
                    photo_ref=_optional_str(row.get("photo_path")),
                )
            )
        return records

    def consumptions_by_period(self, start: datetime, end: datetime) -> List[ConsumptionRecord]:
        return self._records(self._between(self._consumption_view(), "consumed_at", start, end))

    def consumptions_by_sector_and_period(
        self, sector_id: int, start: datetime, end: datetime
    ) -> List[ConsumptionRecord]:
        view = self._consumption_view()
        view = view[view["sector_id"] == int(sector_id)]
        return self._records(self._between(view, "consumed_at", start, end))

    def user_consumptions(
        self,
        user_id: int,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[ConsumptionRecord]:
        view = self._consumption_view()
        view = view[view["user_id"] == int(user_id)]
        return self._records(self._between(view, "consumed_at", start, end))

    def daily_consumption_totals(
        self, user_id: int, start: datetime, end: datetime
    ) -> List[DailyConsumptionTotal]:
        frame = self._table("consumptions")
        frame = self._between(frame[frame["user_id"] == int(user_id)], "consumed_at", start, end)
        if frame.empty:
            return []
        grouped = frame.groupby(frame["consumed_at"].dt.date).agg(
            total_value=("total_price", "sum"), total_items=("qty", "sum")
        )
        return [
            DailyConsumptionTotal(date=day, total_value=float(row.total_value), total_items=float(row.total_items))
            for day, row in grouped.sort_index().iterrows()
        ]

    # ------------------------------------------------------------------
    # Stock transactions

    def _transactions(self, frame: pd.DataFrame) -> List[StockTransaction]:
        products = self._table("products")
        sector_by_product = {
            int(pid): _optional_int(sid) for pid, sid in zip(products["id"], products["sector_id"])
        }
        return [
            StockTransaction(
                id=int(row["id"]),
                product_id=int(row["product_id"]),
                sector_id=sector_by_product.get(int(row["product_id"])),
                change=float(row["change"]),
                transaction_type=_optional_str(row.get("transaction_type")),
                created_at=row["created_at"].to_pydatetime(),
            )
            for row in frame.sort_values("created_at").to_dict("records")
        ]

    def stock_transactions_by_sector(self, sector_id: int) -> List[StockTransaction]:
        products = self._table("products")
        product_ids = set(products.loc[products["sector_id"] == int(sector_id), "id"].astype(int))
        frame = self._table("stock_transactions")
        return self._transactions(frame[frame["product_id"].isin(product_ids)])

    def stock_transactions_by_period(self, start: datetime, end: datetime) -> List[StockTransaction]:
        return self._transactions(self._between(self._table("stock_transactions"), "created_at", start, end))


# ---------------------------------------------------------------------------
# Table normalisation (applied once per loaded file version)


def _normalise_sectors(frame: pd.DataFrame) -> pd.DataFrame:
    frame = frame.dropna(subset=["id"]).copy()
    frame["id"] = frame["id"].astype(int)
    frame["name"] = frame["name"].fillna("").astype(str)
    return frame


def _normalise_users(frame: pd.DataFrame) -> pd.DataFrame:
    frame = frame.dropna(subset=["id"]).copy()
    frame["id"] = frame["id"].astype(int)
    # Badge numbers are identifiers, not quantities.
    for column in ("full_name", "matricula", "role"):
        frame[column] = frame[column].map(_optional_str).astype(object)
    return frame


def _normalise_products(frame: pd.DataFrame) -> pd.DataFrame:
    frame = frame.dropna(subset=["id"]).copy()
    frame["id"] = frame["id"].astype(int)
    frame["sector_id"] = pd.to_numeric(frame["sector_id"], errors="coerce").astype(float)
    frame["stock_quantity"] = _numeric(frame["stock_quantity"]).clip(lower=0.0)
    frame["unit_price"] = _numeric(frame["unit_price"]).clip(lower=0.0)
    for column in ("min_quantity", "max_quantity", "low_stock_threshold"):
        frame[column] = pd.to_numeric(frame[column], errors="coerce")
    return frame


def _normalise_consumptions(frame: pd.DataFrame) -> pd.DataFrame:
    frame = frame.dropna(subset=["id", "product_id"]).copy()
    frame["id"] = frame["id"].astype(int)
    frame["product_id"] = frame["product_id"].astype(int)
    frame["user_id"] = pd.to_numeric(frame["user_id"], errors="coerce").astype(float)
    frame["consumed_at"] = _to_naive_utc(frame["consumed_at"])
    frame = frame.dropna(subset=["consumed_at"])
    frame["qty"] = _numeric(frame["qty"]).clip(lower=0.0)
    frame["unit_price"] = _numeric(frame["unit_price"]).clip(lower=0.0)
    total = pd.to_numeric(frame["total_price"], errors="coerce")
    frame["total_price"] = total.fillna(frame["qty"] * frame["unit_price"]).clip(lower=0.0)
    return frame


def _normalise_transactions(frame: pd.DataFrame) -> pd.DataFrame:
    frame = frame.dropna(subset=["id", "product_id"]).copy()
    frame["id"] = frame["id"].astype(int)
    frame["product_id"] = frame["product_id"].astype(int)
    frame["change"] = _numeric(frame["change"])
    frame["created_at"] = _to_naive_utc(frame["created_at"])
    return frame.dropna(subset=["created_at"])


_NORMALISERS = {
    "sectors": _normalise_sectors,
    "users": _normalise_users,
    "products": _normalise_products,
    "consumptions": _normalise_consumptions,
    "stock_transactions": _normalise_transactions,
}
