"""
Shared test fixtures.

``inventory_dir`` writes a small export of the inventory tables as CSV: a
FoodStation sector with a daily sandwich, a cleaning sector with one
detergent, a coffee corner and an empty sector.  Report tests run against
it with ``NOW`` as the reference instant.
"""

import sys
from datetime import datetime, timedelta
from pathlib import Path

import pandas as pd
import pytest

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.append(str(ROOT))

NOW = datetime(2024, 3, 20, 12, 0)

ANA, BRUNO = 10, 11


def _consumption(rows, user_id, product_id, qty, unit_price, moment):
    rows.append(
        {
            "id": len(rows) + 1,
            "user_id": user_id,
            "product_id": product_id,
            "qty": qty,
            "unit_price": unit_price,
            "total_price": qty * unit_price,
            "consumed_at": moment.isoformat(),
        }
    )


def write_inventory_tables(root: Path) -> Path:
    root.mkdir(parents=True, exist_ok=True)

    pd.DataFrame(
        {"id": [1, 2, 3, 4], "name": ["FoodStation", "Limpeza", "Café Copa", "Empty Sector"]}
    ).to_csv(root / "sectors.csv", index=False)

    pd.DataFrame(
        {
            "id": [ANA, BRUNO],
            "full_name": ["Ana Souza", "Bruno Lima"],
            "matricula": ["1001", "1002"],
            "role": ["user", "admin"],
        }
    ).to_csv(root / "users.csv", index=False)

    products = [
        (101, "Sandwich", 1, "food", 2.0, 5, 10, 50),
        (102, "Juice", 1, "drinks", 3.0, 100, None, None),
        (103, "Snack", 1, "food", 1.5, 0, None, None),
        (201, "Detergent", 2, "cleaning", 5.0, 20, None, None),
        (301, "Coffee", 3, "coffee", 10.0, 30, None, None),
        (302, "Sugar", 3, "coffee", 4.0, 10, None, None),
        (900, "Orphan", None, None, 1.0, 1, None, None),
    ]
    pd.DataFrame(
        [
            {
                "id": pid,
                "name": name,
                "sector_id": sector_id,
                "category": category,
                "unit_price": price,
                "stock_quantity": stock,
                "min_quantity": None,
                "max_quantity": max_qty,
                "low_stock_threshold": low,
                "photo_path": f"photos/{pid}.png",
            }
            for pid, name, sector_id, category, price, stock, low, max_qty in products
        ]
    ).to_csv(root / "products.csv", index=False)

    rows: list = []
    for offset in range(15):
        _consumption(rows, ANA, 101, 2, 2.0, datetime(2024, 3, 6, 9, 0) + timedelta(days=offset))
    _consumption(rows, BRUNO, 103, 1, 1.5, datetime(2024, 3, 10, 14, 0))
    _consumption(rows, BRUNO, 201, 4, 5.0, datetime(2024, 2, 10, 10, 0))
    _consumption(rows, BRUNO, 201, 10, 5.0, datetime(2024, 3, 5, 10, 0))
    for day in (datetime(2024, 2, 22, 8, 0) + timedelta(days=2 * i) for i in range(4)):
        _consumption(rows, BRUNO, 301, 4, 10.0, day)
    for day in (datetime(2024, 3, 1, 8, 0) + timedelta(days=2 * i) for i in range(8)):
        _consumption(rows, BRUNO, 301, 4, 10.0, day)
    for day in (1, 8, 15):
        _consumption(rows, BRUNO, 302, 2, 4.0, datetime(2024, 3, day, 16, 0))
    pd.DataFrame(rows).to_csv(root / "consumptions.csv", index=False)

    pd.DataFrame(
        [
            {
                "id": 1,
                "product_id": 201,
                "user_id": BRUNO,
                "change": 15,
                "transaction_type": "entry",
                "created_at": datetime(2024, 3, 2, 10, 0).isoformat(),
            },
            {
                "id": 2,
                "product_id": 102,
                "user_id": ANA,
                "change": -6,
                "transaction_type": "withdrawal",
                "created_at": datetime(2024, 3, 18, 10, 0).isoformat(),
            },
        ]
    ).to_csv(root / "stock_transactions.csv", index=False)
    return root


@pytest.fixture
def inventory_dir(tmp_path: Path) -> Path:
    return write_inventory_tables(tmp_path / "data")
