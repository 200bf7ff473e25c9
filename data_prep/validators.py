"""
Data quality validation for reference tables before they enter the engine.

Catches problems early:
- Missing or duplicate treaty keys
- Zero-length treaties and policies (the allocation patterns divide by these)
- Expiration dates that precede effective dates
- Development percentages outside plausible bounds
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

import numpy as np
import pandas as pd
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from core.schema import DEV_FACTOR_COLUMNS, TREATY_COLUMNS


@dataclass
class ValidationResult:
    """Collects all validation warnings/errors for a reference table."""
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    def summary(self) -> str:
        lines = []
        if self.errors:
            lines.append(f"ERRORS ({len(self.errors)}):")
            for e in self.errors:
                lines.append(f"  ✗ {e}")
        if self.warnings:
            lines.append(f"WARNINGS ({len(self.warnings)}):")
            for w in self.warnings:
                lines.append(f"  ⚠ {w}")
        if not lines:
            lines.append("✓ All checks passed.")
        return "\n".join(lines)


class TreatyRecord(BaseModel):
    """One row of the treaty reference table, as the engine requires it."""

    model_config = ConfigDict(allow_inf_nan=False, extra="ignore")

    treaty_id: str = Field(min_length=1)
    effective_date: datetime
    expiration_date: datetime
    policy_length_months: int = Field(gt=0, description="Underlying policy term")
    treaty_length_months: int = Field(gt=0, description="Months the treaty writes premium")
    total_subject_premium: float = Field(ge=0)
    target_participation: float = Field(ge=0, le=1)
    inherited_uepr: float = Field(ge=0)
    is_lod: bool
    ulae_pct: float = Field(ge=0)
    broker_pct: float = Field(ge=0)
    expense_pct: float = Field(ge=0)
    lalae_ratio_no_improv: float = Field(ge=0)
    lalae_ratio_half_improv: float = Field(ge=0)
    lalae_ratio_break_even: float = Field(ge=0)

    @model_validator(mode="after")
    def expiration_after_effective(self) -> "TreatyRecord":
        if self.expiration_date <= self.effective_date:
            raise ValueError(
                f"expiration {self.expiration_date:%Y-%m-%d} is not after "
                f"effective {self.effective_date:%Y-%m-%d}"
            )
        return self


def _python_value(v):
    if isinstance(v, np.generic):
        return v.item()
    if v is pd.NaT:
        return None
    return v


def _record_errors(row: dict) -> Optional[List[str]]:
    try:
        TreatyRecord.model_validate(row)
    except ValidationError as exc:
        msgs = []
        for err in exc.errors():
            loc = ".".join(str(p) for p in err["loc"]) or "record"
            msgs.append(f"{loc}: {err['msg']}")
        return msgs
    return None


def validate_treaties(treaties: pd.DataFrame) -> ValidationResult:
    """
    Run all validation checks on a prepared treaty table.
    Returns a ValidationResult with errors (blocking) and warnings (informational).
    """
    result = ValidationResult()

    required = list(TREATY_COLUMNS) + ["treaty_length_months"]
    missing = [c for c in required if c not in treaties.columns]
    if missing:
        result.errors.append(f"Missing required columns: {missing}")
        return result  # can't continue without columns

    if len(treaties) == 0:
        result.errors.append("Treaty table is empty (0 rows).")
        return result

    # --- Keys ---
    n_dup = int(treaties["treaty_id"].duplicated().sum())
    if n_dup > 0:
        dups = sorted(treaties.loc[treaties["treaty_id"].duplicated(), "treaty_id"].unique())
        result.errors.append(f"{n_dup} duplicate treaty ids: {dups[:10]}")

    # --- Record-level checks ---
    for row in treaties[required].to_dict(orient="records"):
        clean = {k: _python_value(v) for k, v in row.items()}
        errs = _record_errors(clean)
        if errs:
            result.errors.append(f"Treaty {clean['treaty_id']!r}: " + "; ".join(errs))

    # --- Plausibility ---
    for col in ["ulae_pct", "broker_pct", "expense_pct"]:
        n_high = int((treaties[col] > 1.0).sum())
        if n_high > 0:
            result.warnings.append(
                f"{n_high} rows have {col} > 1.0 — check if loads are in percent vs decimal form."
            )

    non_lod_reserve = (~treaties["is_lod"].astype(bool)) & (treaties["inherited_uepr"] != 0)
    if non_lod_reserve.any():
        result.warnings.append(
            f"{int(non_lod_reserve.sum())} non-LOD treaties carry an inherited UEPR; "
            f"the projection will refuse them."
        )

    return result


def validate_development_factors(development_factors: pd.DataFrame) -> ValidationResult:
    """Validation checks on a raw (uncleaned) development-factor table."""
    result = ValidationResult()

    missing = [c for c in DEV_FACTOR_COLUMNS if c not in development_factors.columns]
    if missing:
        result.errors.append(f"Missing required columns: {missing}")
        return result

    df = development_factors
    for col in ["lag", "paid_pct", "reported_pct"]:
        n_null = int(df[col].isna().sum())
        if n_null > 0:
            result.errors.append(f"{n_null} rows have null/unparseable {col}.")

    lags = df["lag"].dropna()
    if (lags < 0).any():
        result.errors.append(f"{int((lags < 0).sum())} rows have negative lag.")
    if (lags != np.floor(lags)).any():
        result.errors.append("Lags must be whole months.")

    for col in ["paid_pct", "reported_pct"]:
        vals = df[col].dropna()
        n_neg = int((vals < 0).sum())
        n_high = int((vals > 1.5).sum())
        if n_neg > 0:
            result.errors.append(f"{n_neg} rows have negative {col}.")
        if n_high > 0:
            result.warnings.append(
                f"{n_high} rows have {col} > 1.5 — check if percentages are in "
                f"percent vs decimal form."
            )

    dup = df.duplicated(subset=["treaty_id", "lag"]).sum()
    if dup > 0:
        result.warnings.append(f"{int(dup)} duplicate (treaty, lag) rows; the last one wins.")

    return result
