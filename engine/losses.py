"""
Loss development — "undevelop" earned premium into paid and reported loss
curves using each treaty's development percentages.

For calendar month t:

    undev(t) = Σ_e earned(e) × pct(t − e)

where e runs over earned months and pct is taken only at the lags the
treaty's factor table lists.  A lag the table does not list contributes
nothing.  Once a treaty is `full_development_lag_months` old, losses are
taken as fully developed.
"""

from __future__ import annotations

import logging

import numpy as np
import pandas as pd

from core.config import ProjectionConfig
from core.exceptions import ReferenceDataError
from core.schema import DEV_FACTOR_COLUMNS
from core.utils import require_columns

logger = logging.getLogger(__name__)


def development_kernel(development_factors: pd.DataFrame) -> pd.DataFrame:
    """
    One row per (treaty, lag) listed in the cleaned factor table; where a
    lag is repeated the last row wins.  Gaps are left as gaps.
    """
    require_columns(development_factors, DEV_FACTOR_COLUMNS)
    kernel = development_factors.loc[:, list(DEV_FACTOR_COLUMNS)].drop_duplicates(
        subset=["treaty_id", "lag"], keep="last"
    )
    kernel = kernel.astype({"lag": int})
    return kernel.sort_values(["treaty_id", "lag"]).reset_index(drop=True)


def _check_coverage(grid: pd.DataFrame, development_factors: pd.DataFrame) -> None:
    have = set(development_factors["treaty_id"].unique())
    missing = [t for t in grid["treaty_id"].unique() if t not in have]
    if missing:
        raise ReferenceDataError(
            missing[0],
            f"no development-factor rows ({len(missing)} treaties affected)",
        )


def _convolve(grid: pd.DataFrame, kernel: pd.DataFrame) -> pd.DataFrame:
    """Join each earned month to its treaty's listed lags, summed by target month."""
    src = grid.loc[
        grid["earned_monthly_incl_iuepr"] != 0,
        ["treaty_id", "month_ordinal", "earned_monthly_incl_iuepr"],
    ]
    expanded = src.merge(kernel, on="treaty_id", how="inner")
    expanded["month_ordinal"] = expanded["month_ordinal"] + expanded["lag"]

    last = int(grid["month_ordinal"].max())
    expanded = expanded[expanded["month_ordinal"] <= last]

    expanded["conv_paid"] = expanded["earned_monthly_incl_iuepr"] * expanded["paid_pct"]
    expanded["conv_reported"] = expanded["earned_monthly_incl_iuepr"] * expanded["reported_pct"]
    return expanded.groupby(["treaty_id", "month_ordinal"], as_index=False)[
        ["conv_paid", "conv_reported"]
    ].sum()


def undevelop_losses(
    grid: pd.DataFrame,
    development_factors: pd.DataFrame,
    config: ProjectionConfig,
) -> pd.DataFrame:
    """
    Project cumulative undeveloped paid and reported losses per cell.

    Parameters
    ----------
    grid : pd.DataFrame
        Output of allocate_earned_premium.
    development_factors : pd.DataFrame
        Cleaned table from data_prep.prepare_development_factors.
    config : ProjectionConfig

    Adds: undev_paid, undev_reported.  Cells no listed lag reaches are zero.
    Raises ReferenceDataError for a treaty with no development factors.
    """
    _check_coverage(grid, development_factors)
    kernel = development_kernel(
        development_factors[development_factors["treaty_id"].isin(grid["treaty_id"].unique())]
    )

    keys = ["treaty_id", "month_ordinal"]
    out = grid.merge(_convolve(grid, kernel), on=keys, how="left", validate="one_to_one")
    out["undev_paid"] = out["conv_paid"].fillna(0.0)
    out["undev_reported"] = out["conv_reported"].fillna(0.0)

    # fully developed once the treaty reaches the tail age
    total_earned = out.groupby("treaty_id", sort=False)["earned_monthly_incl_iuepr"].transform("sum")
    mature = out["months_since_effective"] >= config.full_development_lag_months
    out["undev_paid"] = np.where(mature, total_earned, out["undev_paid"])
    out["undev_reported"] = np.where(mature, total_earned, out["undev_reported"])

    logger.info(
        "Loss development: %d treaties, %d cells at full development.",
        out["treaty_id"].nunique(), int(mature.sum()),
    )
    return out.drop(columns=["conv_paid", "conv_reported"])
