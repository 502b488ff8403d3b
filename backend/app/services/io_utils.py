from __future__ import annotations

from pathlib import Path
from typing import Iterable, Optional

import pandas as pd


def table_paths(data_root: str | Path, name: str) -> tuple[Path, Path]:
    """Return the ``(parquet, csv)`` candidate paths for a named table."""

    root = Path(data_root)
    return root / f"{name}.parquet", root / f"{name}.csv"


def prefer_parquet(
    data_root: str | Path,
    name: str,
    *,
    columns: Optional[Iterable[str]] = None,
    required: bool = True,
) -> pd.DataFrame:
    """Load a table preferring Parquet with CSV fallback.

    Parameters
    ----------
    data_root:
        Directory holding the exported inventory tables.
    name:
        Table name without extension, e.g. ``"consumptions"``.
    columns:
        Expected columns.  Missing optional columns are added as ``NA`` so
        downstream code can rely on their presence.
    required:
        When ``False`` an absent table yields an empty frame with ``columns``
        instead of raising ``FileNotFoundError``.
    """

    pq_path, csv_path = table_paths(data_root, name)
    column_list = list(columns) if columns is not None else None

    if pq_path.exists():
        frame = pd.read_parquet(pq_path)
    elif csv_path.exists():
        frame = pd.read_csv(csv_path, memory_map=True)
    elif required:
        raise FileNotFoundError(f"Table '{name}' not found under {data_root}")
    else:
        return pd.DataFrame(columns=column_list or [])

    if column_list is not None:
        for column in column_list:
            if column not in frame.columns:
                frame[column] = pd.NA
    return frame
