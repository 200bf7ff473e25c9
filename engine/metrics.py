"""
Derived per-cell metrics: expense loads and the three LALAE scenarios.
Pure column arithmetic, no joins.
"""

from __future__ import annotations

import logging

import pandas as pd

from core.config import ProjectionConfig
from core.schema import LALAE_SCENARIOS

logger = logging.getLogger(__name__)


def compute_derived_metrics(grid: pd.DataFrame, config: ProjectionConfig) -> pd.DataFrame:
    """
    Adds ulae, broker_commission, expenses and, per scenario s in
    LALAE_SCENARIOS: paid_lalae_s, reported_lalae_s, case_reserve_s,
    reserve_s, ibnr_s.
    """
    out = grid.copy()
    earned = out["earned_to_date"]
    paid = out["undev_paid"]

    out["ulae"] = earned * out["ulae_pct"]
    out["broker_commission"] = earned * out["broker_pct"]
    out["expenses"] = earned * out["expense_pct"]

    if config.reported_lalae_basis == "paid":
        logger.warning(
            "Reported LALAE is being computed on the paid-undeveloped basis "
            "(legacy formula); reported and paid LALAE will coincide."
        )
        reported_basis = paid
    else:
        reported_basis = out["undev_reported"]

    for s in LALAE_SCENARIOS:
        ratio = out[f"lalae_ratio_{s}"]
        out[f"paid_lalae_{s}"] = paid * ratio
        out[f"reported_lalae_{s}"] = reported_basis * ratio
        out[f"case_reserve_{s}"] = out[f"reported_lalae_{s}"] - out[f"paid_lalae_{s}"]
        out[f"reserve_{s}"] = ratio * (earned - paid)
        out[f"ibnr_{s}"] = ratio * (earned - out["undev_reported"])
    return out
