from __future__ import annotations

import logging
from pathlib import Path

import pandas as pd

logger = logging.getLogger(__name__)

_EXCEL_MAX_ROWS = 1_048_576


def export_table(table: pd.DataFrame, path: str) -> Path:
    """
    Write the projection table to .csv or .xlsx (openpyxl).
    Absent values are written as empty cells.
    """
    out_path = Path(path)
    suffix = out_path.suffix.lower()
    out_path.parent.mkdir(parents=True, exist_ok=True)

    if suffix == ".csv":
        table.to_csv(out_path, index=False)
    elif suffix == ".xlsx":
        if len(table) + 1 > _EXCEL_MAX_ROWS:
            raise ValueError(
                f"{len(table):,} rows exceed the Excel sheet limit; export to .csv instead."
            )
        table.to_excel(out_path, index=False, engine="openpyxl", sheet_name="projection")
    else:
        raise ValueError(f"Unsupported export format {suffix!r} (use .csv or .xlsx).")

    logger.info("Wrote %d rows to %s", len(table), out_path)
    return out_path
