"""
Premium allocation — written premium spread, inherited UEPR amortization,
and the written → earned convolution.

The three share functions are pure and take explicit scalar arguments; they
also broadcast over numpy arrays / pandas Series so the stage functions can
apply them to a whole grid at once:

    written_share(effective, month, n)             1/n for 0 <= k < n
    inherited_share_pattern(effective, month, L)   triangular decay, mid-month binding
    earned_share(lag, L)                           1/L inside, 1/(2L) at lag 0 and L

Each pattern sums to exactly 1 over its support, which is what the
reconciliation checks rely on.
"""

from __future__ import annotations

import logging

import numpy as np
import pandas as pd

from core.exceptions import InvalidTreatyError, ReferenceDataError
from core.utils import months_between

logger = logging.getLogger(__name__)


def _as_result(values: np.ndarray, *inputs):
    """Return a float for all-scalar inputs, an array otherwise."""
    if all(np.ndim(x) == 0 for x in inputs):
        return float(values)
    return values


def _require_positive(n: np.ndarray, what: str) -> None:
    if np.any(~(n > 0)):
        raise InvalidTreatyError(None, f"{what} must be a positive number of months")


def written_share(effective, month, treaty_length_months):
    """Share of total written premium allocated to `month`."""
    n = np.asarray(treaty_length_months, dtype=float)
    _require_positive(n, "treaty length")
    k = np.asarray(months_between(effective, month), dtype=float)
    share = np.where((k >= 0) & (k < n), 1.0 / n, 0.0)
    return _as_result(share, effective, month, treaty_length_months)


def inherited_share_pattern(effective, month, policy_length_months):
    """Share of the inherited UEPR earned in `month` (policies bound mid-month)."""
    L = np.asarray(policy_length_months, dtype=float)
    _require_positive(L, "policy length")
    k = np.asarray(months_between(effective, month), dtype=float)
    pattern = (2.0 / L) * (1.0 - (k + 0.5) / L)
    share = np.where((k >= 0) & (k <= L - 1), pattern, 0.0)
    return _as_result(share, effective, month, policy_length_months)


def earned_share(lag, policy_length_months):
    """
    Share of one month's written premium earned `lag` months later.
    Boundary months (lag 0 and lag L) each earn half a normal month.
    """
    L = np.asarray(policy_length_months, dtype=float)
    _require_positive(L, "policy length")
    k = np.asarray(lag, dtype=float)
    share = np.select(
        [(k >= 1) & (k <= L - 1), (k == 0) | (k == L)],
        [1.0 / L, 1.0 / (2.0 * L)],
        default=0.0,
    )
    return _as_result(share, lag, policy_length_months)


def substitute_reported(projected: pd.Series, reported: pd.Series) -> pd.Series:
    """
    Reported values replace projected ones outright wherever present.
    Idempotent: substituting the same reported data again changes nothing.
    """
    reported = pd.Series(reported).astype("Float64")
    mask = reported.notna().to_numpy()
    values = reported.to_numpy(dtype=float, na_value=np.nan)
    return pd.Series(
        np.where(mask, values, np.asarray(projected, dtype=float)),
        index=reported.index,
    )


def _first_bad(grid: pd.DataFrame, col: str):
    bad = ~(grid[col] > 0)
    return grid.loc[bad, "treaty_id"].iloc[0] if bad.any() else None


def allocate_written_premium(grid: pd.DataFrame) -> pd.DataFrame:
    """
    Spread each treaty's total written premium evenly over its effective
    window, then let reported written premium replace the allocation.

    Adds: written_allocated (pre-substitution), written_monthly (revised),
    written_revision (revised − allocated).
    """
    bad = _first_bad(grid, "treaty_length_months")
    if bad is not None:
        raise InvalidTreatyError(bad, "treaty length must be a positive number of months")

    out = grid.copy()
    share = written_share(
        out["effective_date"], out["calendar_month"], out["treaty_length_months"]
    )
    total = out["total_subject_premium"] * out["target_participation"]
    out["written_allocated"] = total.to_numpy() * share
    out["written_monthly"] = substitute_reported(out["written_allocated"], out["written_premium"])
    out["written_revision"] = out["written_monthly"] - out["written_allocated"]

    revisions = out.groupby("treaty_id", sort=False)["written_revision"].sum()
    revised = revisions[revisions.abs() > 0]
    if len(revised):
        logger.warning(
            "Reported written premium differs from allocation for %d treaties (net %.2f).",
            len(revised), float(revised.sum()),
        )
        for tid, amt in revised.items():
            logger.debug("Written revision %s: %.2f", tid, amt)
    return out


def amortize_inherited_uepr(grid: pd.DataFrame) -> pd.DataFrame:
    """
    Amortize the inherited UEPR of LOD treaties over the underlying policy
    length.  Adds iuepr_month; zero for non-LOD treaties.

    Raises ReferenceDataError if a non-LOD treaty carries an inherited reserve.
    """
    is_lod = grid["is_lod"].astype(bool)
    stray = (~is_lod) & (grid["inherited_uepr"] != 0)
    if stray.any():
        tid = grid.loc[stray, "treaty_id"].iloc[0]
        raise ReferenceDataError(tid, "non-LOD treaty carries a nonzero inherited UEPR")

    bad = _first_bad(grid, "policy_length_months")
    if bad is not None:
        raise InvalidTreatyError(bad, "policy length must be a positive number of months")

    out = grid.copy()
    pattern = inherited_share_pattern(
        out["effective_date"], out["calendar_month"], out["policy_length_months"]
    )
    out["iuepr_month"] = np.where(is_lod, out["inherited_uepr"].to_numpy() * pattern, 0.0)
    return out


def _expand_lags(n_lags: np.ndarray):
    """Row index and lag (0..n-1) for each source row repeated n times."""
    idx = np.repeat(np.arange(len(n_lags)), n_lags)
    offsets = np.repeat(np.cumsum(n_lags) - n_lags, n_lags)
    lag = np.arange(len(idx)) - offsets
    return idx, lag


def earn_written_premium(grid: pd.DataFrame) -> pd.DataFrame:
    """
    Convolve each month's written premium with the earning curve.

    Every written month fans out to lags 0..L of its treaty's policy length;
    contributions are summed by destination month.  Destinations past the
    horizon are not in the grid and fall away.

    Returns DataFrame[treaty_id, month_ordinal, earned_projected].
    """
    src = grid.loc[
        grid["written_monthly"] != 0,
        ["treaty_id", "month_ordinal", "written_monthly", "policy_length_months"],
    ]
    L = src["policy_length_months"].to_numpy(dtype=int)
    idx, lag = _expand_lags(L + 1)

    written = src["written_monthly"].to_numpy(dtype=float)[idx]
    expanded = pd.DataFrame(
        {
            "treaty_id": src["treaty_id"].to_numpy()[idx],
            "month_ordinal": src["month_ordinal"].to_numpy()[idx] + lag,
            "earned_projected": written * earned_share(lag, L[idx]),
        }
    )
    expanded = expanded[expanded["earned_projected"] != 0]

    last = int(grid["month_ordinal"].max()) if len(grid) else 0
    beyond = expanded["month_ordinal"] > last
    if beyond.any():
        logger.info(
            "%.2f of earned premium falls beyond the horizon and is truncated.",
            float(expanded.loc[beyond, "earned_projected"].sum()),
        )
    return expanded.groupby(["treaty_id", "month_ordinal"], as_index=False)[
        "earned_projected"
    ].sum()


def allocate_earned_premium(grid: pd.DataFrame) -> pd.DataFrame:
    """
    Earned premium, cumulative positions and the resulting unearned reserve.

    Adds: earned_projected, earned_monthly_incl_iuepr (after reported
    substitution), written_to_date, earned_to_date, uepr.
    Expects allocate_written_premium and amortize_inherited_uepr to have run.
    """
    earned = earn_written_premium(grid)
    out = grid.merge(earned, on=["treaty_id", "month_ordinal"], how="left", validate="one_to_one")
    out["earned_projected"] = out["earned_projected"].fillna(0.0)

    out["earned_monthly_incl_iuepr"] = substitute_reported(
        out["earned_projected"] + out["iuepr_month"], out["earned_premium"]
    )

    out = out.sort_values(["treaty_id", "calendar_month"]).reset_index(drop=True)
    g = out.groupby("treaty_id", sort=False)
    out["written_to_date"] = g["written_monthly"].cumsum()
    out["earned_to_date"] = g["earned_monthly_incl_iuepr"].cumsum()
    out["uepr"] = out["inherited_uepr"] + out["written_to_date"] - out["earned_to_date"]
    return out
