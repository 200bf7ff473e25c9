"""
Monthly experience: resolve raw extract rows to treaty ids, certify the
extract is complete, and layer per-cell overrides on top.

Absent values are kept as pd.NA in nullable Float64 columns all the way
through: "no data" and "confirmed zero" are different facts.
"""

from __future__ import annotations

import logging
from typing import Optional

import pandas as pd

from core.config import ProjectionConfig
from core.exceptions import InputCompletenessError
from core.schema import EXPERIENCE_FIELDS, EXPERIENCE_KEYS
from core.utils import month_start, require_columns

from .treaty_table import canonicalize_columns

logger = logging.getLogger(__name__)


def parse_calendar_month(values: pd.Series) -> pd.Series:
    """
    Parse month keys to month-start Timestamps.
    Accepts integer YYYYMM as well as anything pd.to_datetime understands.
    """
    if pd.api.types.is_datetime64_any_dtype(values):
        parsed = values
    elif pd.api.types.is_numeric_dtype(values):
        parsed = pd.to_datetime(
            values.astype("Int64").astype(str), format="%Y%m", errors="coerce"
        )
    else:
        s = values.astype(str).str.strip()
        parsed = pd.to_datetime(s, format="%Y%m", errors="coerce")
        fallback = pd.to_datetime(s.where(parsed.isna()), errors="coerce")
        parsed = parsed.fillna(fallback)
    return parsed.dt.to_period("M").dt.to_timestamp(how="start")


def _coerce_fields(df: pd.DataFrame) -> pd.DataFrame:
    out = df.copy()
    for f in EXPERIENCE_FIELDS:
        if f in out.columns:
            out[f] = pd.to_numeric(out[f], errors="coerce").astype("Float64")
        else:
            out[f] = pd.Series(pd.NA, index=out.index, dtype="Float64")
    return out


def empty_experience() -> pd.DataFrame:
    df = pd.DataFrame(
        {
            "treaty_id": pd.Series(dtype=str),
            "calendar_month": pd.Series(dtype="datetime64[ns]"),
        }
    )
    return _coerce_fields(df)


def latest_snapshot(raw: pd.DataFrame, *, key_col: str = "source_key") -> pd.DataFrame:
    """
    Keep only rows from the most recent snapshot of each (key, month).
    Raises ValueError if any snapshot date is missing or unparseable.
    """
    if "snapshot_date" not in raw.columns:
        return raw
    snap = pd.to_datetime(raw["snapshot_date"], errors="coerce")
    n_bad = int(snap.isna().sum())
    if n_bad:
        raise ValueError(f"{n_bad} experience rows have a missing or unparseable snapshot date.")
    latest = snap.groupby([raw[key_col], raw["calendar_month"]]).transform("max")
    return raw[snap == latest].drop(columns=["snapshot_date"])


def check_completeness(total_rows: int, retained_rows: int, missing_rows: int) -> None:
    """Every latest extract row is either translated or reported as missing."""
    if missing_rows + retained_rows != total_rows:
        raise InputCompletenessError(total_rows, retained_rows, missing_rows)


def translate_keys(raw: pd.DataFrame, key_map: Optional[pd.DataFrame]) -> pd.DataFrame:
    """
    Map source-system keys to treaty ids.  Rows with no translation are
    dropped and counted; a key map that fans rows out trips the completeness
    identity.
    """
    if key_map is None:
        require_columns(raw, ["treaty_id"])
        total = len(raw)
        missing = int(raw["treaty_id"].isna().sum())
        retained = raw[raw["treaty_id"].notna()].copy()
        check_completeness(total, len(retained), missing)
        return retained

    km = canonicalize_columns(key_map)
    require_columns(km, ["source_key", "treaty_id"])
    require_columns(raw, ["source_key"])
    km = km.loc[:, ["source_key", "treaty_id"]].copy()
    km["source_key"] = km["source_key"].astype(str).str.strip()
    km["treaty_id"] = km["treaty_id"].astype(str).str.strip()

    src = raw.drop(columns=[c for c in ["treaty_id"] if c in raw.columns]).copy()
    src["source_key"] = src["source_key"].astype(str).str.strip()
    total = len(src)

    merged = src.merge(km, on="source_key", how="left")
    unmatched = merged["treaty_id"].isna()
    missing = int(unmatched.sum())
    retained = merged[~unmatched].copy()

    if missing:
        keys = sorted(merged.loc[unmatched, "source_key"].unique())
        logger.warning(
            "%d experience rows have no treaty translation (%d source keys, e.g. %s).",
            missing, len(keys), keys[:5],
        )
    check_completeness(total, len(retained), missing)
    return retained.drop(columns=["source_key"])


def aggregate_experience(df: pd.DataFrame) -> pd.DataFrame:
    """Collapse to one row per (treaty, month); all-absent groups stay absent."""
    keys = list(EXPERIENCE_KEYS)
    agg = df.groupby(keys, as_index=False)[list(EXPERIENCE_FIELDS)].sum(min_count=1)
    for f in EXPERIENCE_FIELDS:
        agg[f] = agg[f].astype("Float64")
    return agg


def apply_overrides(experience: pd.DataFrame, overrides: Optional[pd.DataFrame]) -> pd.DataFrame:
    """
    Overrides win field-by-field wherever they are non-missing; an override
    for a cell with no extract row creates that row.
    """
    if overrides is None or len(overrides) == 0:
        return experience

    ov = canonicalize_columns(overrides)
    require_columns(ov, list(EXPERIENCE_KEYS))
    ov["treaty_id"] = ov["treaty_id"].astype(str).str.strip()
    ov["calendar_month"] = parse_calendar_month(ov["calendar_month"])
    ov = _coerce_fields(ov)

    keys = list(EXPERIENCE_KEYS)
    fields = list(EXPERIENCE_FIELDS)
    ov = ov.drop_duplicates(subset=keys, keep="last").set_index(keys)[fields]
    base = experience.set_index(keys)[fields]

    merged = ov.combine_first(base)
    n_applied = int(ov.notna().to_numpy().sum())
    logger.info("Applied %d override values across %d cells.", n_applied, len(ov))

    out = merged.reset_index()
    for f in fields:
        out[f] = out[f].astype("Float64")
    return out.sort_values(keys).reset_index(drop=True)


def build_experience(
    raw: pd.DataFrame,
    key_map: Optional[pd.DataFrame] = None,
    overrides: Optional[pd.DataFrame] = None,
    config: Optional[ProjectionConfig] = None,
) -> pd.DataFrame:
    """
    Turn a raw experience extract into the keyed monthly experience table.

    Steps: latest snapshot → key translation (with the completeness check)
    → NA-preserving aggregation → overrides → valuation-date cut.

    Returns one row per (treaty_id, calendar_month) with the EXPERIENCE_FIELDS
    as nullable Float64 columns.
    """
    df = canonicalize_columns(raw)
    require_columns(df, ["calendar_month"])
    df["calendar_month"] = parse_calendar_month(df["calendar_month"])
    n_bad = int(df["calendar_month"].isna().sum())
    if n_bad:
        raise ValueError(f"{n_bad} experience rows have an unparseable calendar month.")

    key_col = "source_key" if key_map is not None else "treaty_id"
    require_columns(df, [key_col])
    df = latest_snapshot(df, key_col=key_col)
    df = _coerce_fields(df)

    keyed = translate_keys(df, key_map)
    keyed["treaty_id"] = keyed["treaty_id"].astype(str).str.strip()
    exp = aggregate_experience(keyed)
    exp = apply_overrides(exp, overrides)

    if config is not None and config.valuation_date is not None:
        cutoff = month_start(config.valuation_date)
        late = exp["calendar_month"] > cutoff
        if late.any():
            logger.info(
                "Ignoring %d experience rows after valuation month %s.",
                int(late.sum()), f"{cutoff:%Y-%m}",
            )
        exp = exp[~late].reset_index(drop=True)

    logger.info(
        "Experience built: %d rows for %d treaties.",
        len(exp), exp["treaty_id"].nunique(),
    )
    return exp
