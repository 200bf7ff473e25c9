"""
Reconciliation checks run between pipeline stages.

Each check either passes silently or raises ReconciliationError naming the
check and the first failing treaty.  Treaties whose allocation window is cut
by the horizon cannot reconcile to their totals; they are skipped (and
logged) rather than failed.

    grid    one cell per (treaty, month); earning curves normalise to 1
    written allocated written premium = subject premium × participation
    uepr    amortized inherited UEPR = inherited UEPR
    earned  earned (ex inherited) = written; reported substitution idempotent
    losses  peak undeveloped paid = total earned
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, List

import numpy as np
import pandas as pd

from core.config import ProjectionConfig
from core.exceptions import ReconciliationError
from core.utils import month_ordinal, within_tolerance

from .premium import earned_share, substitute_reported

logger = logging.getLogger(__name__)


def _treaty_frame(grid: pd.DataFrame) -> pd.DataFrame:
    t = grid.groupby("treaty_id", sort=False).agg(
        effective_date=("effective_date", "first"),
        treaty_length_months=("treaty_length_months", "first"),
        policy_length_months=("policy_length_months", "first"),
        total_subject_premium=("total_subject_premium", "first"),
        target_participation=("target_participation", "first"),
        inherited_uepr=("inherited_uepr", "first"),
        is_lod=("is_lod", "first"),
    )
    t["effective_ordinal"] = month_ordinal(t["effective_date"])
    return t


def _horizon_ordinals(config: ProjectionConfig):
    return month_ordinal(config.horizon_start), month_ordinal(config.horizon_end)


def _assert_close(
    check: str, expected: pd.Series, actual: pd.Series, tol: float, detail: str = ""
) -> None:
    actual = actual.reindex(expected.index)
    ok = within_tolerance(expected.to_numpy(), actual.to_numpy(), tol)
    if not ok.all():
        pos = int(np.flatnonzero(~ok)[0])
        raise ReconciliationError(
            check,
            expected.index[pos],
            float(expected.iloc[pos]),
            float(actual.iloc[pos]),
            detail,
        )


def _log_skipped(check: str, n_skipped: int) -> None:
    if n_skipped:
        logger.warning(
            "%s: %d treaties skipped (window truncated by the horizon).", check, n_skipped
        )


def check_grid_shape(grid: pd.DataFrame, config: ProjectionConfig) -> None:
    """Exactly one cell per (treaty, month) pair."""
    n_treaties = grid["treaty_id"].nunique()
    expected = n_treaties * len(config.horizon_months)
    if len(grid) != expected:
        raise ReconciliationError("grid_shape", None, expected, len(grid))
    dup = grid.duplicated(subset=["treaty_id", "calendar_month"])
    if dup.any():
        tid = grid.loc[dup, "treaty_id"].iloc[0]
        raise ReconciliationError(
            "grid_shape", tid, 0, int(dup.sum()), "Duplicate (treaty, month) cells."
        )


def check_earned_pattern(grid: pd.DataFrame, config: ProjectionConfig) -> None:
    """Earning curve over lags 0..L sums to 1 for every policy length in the book."""
    for L in sorted(grid["policy_length_months"].unique()):
        total = float(np.sum(earned_share(np.arange(int(L) + 1), int(L))))
        if not within_tolerance(1.0, total, config.tolerance):
            raise ReconciliationError(
                "earned_pattern", None, 1.0, total, f"Policy length {int(L)} months."
            )


def check_written_total(grid: pd.DataFrame, config: ProjectionConfig) -> None:
    """Pre-substitution written allocation reproduces each treaty's total."""
    t = _treaty_frame(grid)
    start, end = _horizon_ordinals(config)
    inside = (t["effective_ordinal"] >= start) & (
        t["effective_ordinal"] + t["treaty_length_months"] - 1 <= end
    )
    _log_skipped("written_total", int((~inside).sum()))
    t = t[inside]

    expected = t["total_subject_premium"] * t["target_participation"]
    actual = grid.groupby("treaty_id", sort=False)["written_allocated"].sum()
    _assert_close("written_total", expected, actual, config.tolerance)


def check_inherited_pattern(grid: pd.DataFrame, config: ProjectionConfig) -> None:
    """Amortized inherited UEPR sums back to the inherited reserve."""
    t = _treaty_frame(grid)
    start, end = _horizon_ordinals(config)
    t = t[t["is_lod"].astype(bool) & (t["inherited_uepr"] != 0)]
    inside = (t["effective_ordinal"] >= start) & (
        t["effective_ordinal"] + t["policy_length_months"] - 1 <= end
    )
    _log_skipped("inherited_pattern", int((~inside).sum()))
    t = t[inside]

    actual = grid.groupby("treaty_id", sort=False)["iuepr_month"].sum()
    _assert_close("inherited_pattern", t["inherited_uepr"], actual, config.tolerance)


def check_written_equals_earned(grid: pd.DataFrame, config: ProjectionConfig) -> None:
    """
    Projected earned premium (ex inherited UEPR, before reported earned
    substitution) equals revised written premium.
    """
    t = _treaty_frame(grid)
    _, end = _horizon_ordinals(config)

    writing = grid[grid["written_monthly"] != 0]
    last_written = writing.groupby("treaty_id", sort=False)["month_ordinal"].max()
    last_written = last_written.reindex(t.index).fillna(-np.inf)
    inside = last_written + t["policy_length_months"] <= end
    _log_skipped("written_equals_earned", int((~inside).sum()))
    ids = t.index[inside]

    g = grid.groupby("treaty_id", sort=False)
    expected = g["written_monthly"].sum().reindex(ids)
    actual = g["earned_projected"].sum()
    _assert_close("written_equals_earned", expected, actual, config.tolerance)


def check_replacement_idempotent(grid: pd.DataFrame, config: ProjectionConfig) -> None:
    """Substituting the same reported values a second time changes nothing."""
    pairs = [("written_monthly", "written_premium")]
    if "earned_monthly_incl_iuepr" in grid.columns:
        pairs.append(("earned_monthly_incl_iuepr", "earned_premium"))
    for revised, reported in pairs:
        again = substitute_reported(grid[revised], grid[reported])
        ok = within_tolerance(grid[revised].to_numpy(), again.to_numpy(), config.tolerance)
        if not ok.all():
            pos = int(np.flatnonzero(~ok)[0])
            raise ReconciliationError(
                "replacement_idempotent",
                grid["treaty_id"].iloc[pos],
                float(grid[revised].iloc[pos]),
                float(again.iloc[pos]),
                f"Column {revised!r}.",
            )


def check_loss_development(grid: pd.DataFrame, config: ProjectionConfig) -> None:
    """Peak undeveloped paid loss equals the treaty's total earned premium."""
    t = _treaty_frame(grid)
    _, end = _horizon_ordinals(config)
    inside = t["effective_ordinal"] + config.full_development_lag_months <= end
    _log_skipped("loss_development", int((~inside).sum()))
    ids = t.index[inside]

    g = grid.groupby("treaty_id", sort=False)
    expected = g["earned_monthly_incl_iuepr"].sum().reindex(ids)
    actual = g["undev_paid"].max()
    _assert_close("loss_development", expected, actual, config.tolerance)


CheckFn = Callable[[pd.DataFrame, ProjectionConfig], None]

STAGE_CHECKS: Dict[str, List[CheckFn]] = {
    "grid": [check_grid_shape, check_earned_pattern],
    "written": [check_written_total, check_replacement_idempotent],
    "uepr": [check_inherited_pattern],
    "earned": [check_written_equals_earned, check_replacement_idempotent],
    "losses": [check_loss_development],
}


def run_checks(stage: str, grid: pd.DataFrame, config: ProjectionConfig) -> List[str]:
    """Run the battery for one stage; returns the names of the checks passed."""
    if stage not in STAGE_CHECKS:
        raise ValueError(f"Unknown reconciliation stage: {stage!r}")
    passed = []
    for check in STAGE_CHECKS[stage]:
        check(grid, config)
        passed.append(f"{stage}:{check.__name__}")
    logger.info("Stage %r reconciled (%d checks).", stage, len(passed))
    return passed
