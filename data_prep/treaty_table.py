"""
Treaty and development-factor reference tables: column canonicalisation,
type coercion and the derived fields the engine relies on.
"""

from __future__ import annotations

import logging
from typing import Dict

import numpy as np
import pandas as pd

from core.exceptions import InvalidTreatyError
from core.schema import DEV_FACTOR_COLUMNS, TREATY_COLUMNS
from core.utils import complete_months, require_columns

from .validators import validate_development_factors, validate_treaties

logger = logging.getLogger(__name__)


_COLUMN_ALIASES: Dict[str, str] = {
    # identifiers
    "Treaty ID": "treaty_id",
    "TreatyID": "treaty_id",
    "TreatyKey": "treaty_id",
    "treaty_key": "treaty_id",
    "Source Key": "source_key",
    "SourceKey": "source_key",
    # dates
    "Effective Date": "effective_date",
    "EffectiveDate": "effective_date",
    "Expiration Date": "expiration_date",
    "ExpirationDate": "expiration_date",
    "Calendar Month": "calendar_month",
    "CalendarMonth": "calendar_month",
    "Month": "calendar_month",
    "Snapshot Date": "snapshot_date",
    # terms
    "Policy Length": "policy_length_months",
    "PolicyLength": "policy_length_months",
    "Treaty Length": "treaty_length_months",
    # premium / share
    "Total Subject Premium": "total_subject_premium",
    "TotalSubjectPremium": "total_subject_premium",
    "Target Participation": "target_participation",
    "TargetParticipation": "target_participation",
    "Inherited UEPR": "inherited_uepr",
    "IUEPR": "inherited_uepr",
    "LOD": "is_lod",
    "LOD Flag": "is_lod",
    "lod_flag": "is_lod",
    # expense loads
    "ULAE %": "ulae_pct",
    "Broker %": "broker_pct",
    "Expense %": "expense_pct",
    # loss ratios
    "LALAE No Improvement": "lalae_ratio_no_improv",
    "LALAE Half Improvement": "lalae_ratio_half_improv",
    "LALAE Break Even": "lalae_ratio_break_even",
    # development factors
    "Lag": "lag",
    "Paid %": "paid_pct",
    "PaidPct": "paid_pct",
    "Reported %": "reported_pct",
    "ReportedPct": "reported_pct",
    # experience
    "Written Premium": "written_premium",
    "Earned Premium": "earned_premium",
    "Paid Losses Net": "paid_losses_net",
    "Paid ALAE": "paid_alae",
    "Case Reserve Loss": "case_reserve_loss",
}

# Columns that may be absent from the treaty table, with their defaults
_OPTIONAL_TREATY_DEFAULTS: Dict[str, object] = {
    "inherited_uepr": 0.0,
    "is_lod": False,
}

_TREATY_NUMERIC = (
    "policy_length_months",
    "total_subject_premium",
    "target_participation",
    "inherited_uepr",
    "ulae_pct",
    "broker_pct",
    "expense_pct",
    "lalae_ratio_no_improv",
    "lalae_ratio_half_improv",
    "lalae_ratio_break_even",
)

_LOD_TRUE = {"Y", "YES", "TRUE", "T", "1", "LOD"}


def canonicalize_columns(df: pd.DataFrame) -> pd.DataFrame:
    """Copy of `df` with header aliases mapped to canonical treaty/experience names."""
    out = df.rename(columns={c: _COLUMN_ALIASES.get(c, c) for c in df.columns}).copy()

    # A sheet that carries both an alias and its canonical header (e.g. "LOD"
    # next to is_lod) ends up with two columns of one name; per row, the
    # leftmost non-null value is kept.
    names = out.columns
    for name in names[names.duplicated()].unique():
        block = out.loc[:, names == name]
        merged = block.iloc[:, 0]
        for j in range(1, block.shape[1]):
            merged = merged.combine_first(block.iloc[:, j])
        out = out.loc[:, names != name].copy()
        out[name] = merged
        names = out.columns

    return out


def normalize_lod_flag(values: pd.Series) -> pd.Series:
    """Map the assorted LOD encodings ("Y", "LOD", True, 1 ...) to booleans."""
    if values.dtype == bool:
        return values
    s = values.astype(str).str.strip().str.upper()
    return s.isin(_LOD_TRUE)


def derive_treaty_length(effective: pd.Series, expiration: pd.Series) -> pd.Series:
    """
    Whole months covered by each treaty.

    Counts complete months from the effective date to the day after
    expiration, so both 2021-03-01 → 2022-03-01 and 2021-03-01 → 2022-02-28
    yield 12.
    """
    lengths = []
    for eff, exp in zip(effective, expiration):
        if pd.isna(eff) or pd.isna(exp):
            lengths.append(np.nan)
        else:
            lengths.append(complete_months(eff, pd.Timestamp(exp) + pd.Timedelta(days=1)))
    return pd.Series(lengths, index=effective.index, dtype=float)


def prepare_treaties(treaties: pd.DataFrame, *, validate: bool = True) -> pd.DataFrame:
    """
    Coerce the treaty reference table into the canonical engine form and
    derive `treaty_length_months`.  Safe to call on an already-prepared table.

    Raises InvalidTreatyError if validation finds blocking errors.
    """
    out = canonicalize_columns(treaties)
    for col, default in _OPTIONAL_TREATY_DEFAULTS.items():
        if col not in out.columns:
            out[col] = default
    require_columns(out, TREATY_COLUMNS)

    out["treaty_id"] = out["treaty_id"].astype(str).str.strip()
    for dcol in ["effective_date", "expiration_date"]:
        out[dcol] = pd.to_datetime(out[dcol], errors="coerce")
    for ncol in _TREATY_NUMERIC:
        out[ncol] = pd.to_numeric(out[ncol], errors="coerce")

    out["inherited_uepr"] = out["inherited_uepr"].fillna(0.0)
    out["is_lod"] = normalize_lod_flag(out["is_lod"])

    derived = derive_treaty_length(out["effective_date"], out["expiration_date"])
    if "treaty_length_months" in out.columns:
        explicit = pd.to_numeric(out["treaty_length_months"], errors="coerce")
        out["treaty_length_months"] = explicit.where(explicit.notna(), derived)
    else:
        out["treaty_length_months"] = derived

    if validate:
        result = validate_treaties(out)
        for w in result.warnings:
            logger.warning("Treaty table: %s", w)
        if not result.is_valid:
            raise InvalidTreatyError(None, result.summary())

    out["policy_length_months"] = out["policy_length_months"].astype(int)
    out["treaty_length_months"] = out["treaty_length_months"].astype(int)
    return out.loc[:, list(TREATY_COLUMNS) + ["treaty_length_months"]].reset_index(drop=True)


def prepare_development_factors(
    development_factors: pd.DataFrame, *, validate: bool = True
) -> pd.DataFrame:
    """
    Clean the raw development-factor table.

    The raw lag-0 row is a "no development yet" sentinel: it is dropped and
    every remaining lag is decremented by one, so lag L means L months after
    the earned-premium month.
    """
    df = canonicalize_columns(development_factors)
    require_columns(df, DEV_FACTOR_COLUMNS)
    df = df.loc[:, list(DEV_FACTOR_COLUMNS)].copy()

    df["treaty_id"] = df["treaty_id"].astype(str).str.strip()
    for ncol in ["lag", "paid_pct", "reported_pct"]:
        df[ncol] = pd.to_numeric(df[ncol], errors="coerce")

    if validate:
        result = validate_development_factors(df)
        for w in result.warnings:
            logger.warning("Development factors: %s", w)
        if not result.is_valid:
            raise ValueError(f"Invalid development-factor table:\n{result.summary()}")

    df = df[df["lag"] != 0].copy()
    df["lag"] = df["lag"].astype(int) - 1
    return df.sort_values(["treaty_id", "lag"]).reset_index(drop=True)
