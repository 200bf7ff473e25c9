"""
Treaty × month lattice.

One row per (treaty, calendar month) over the full projection horizon, with
the static treaty attributes and observed monthly experience attached.
Downstream stages only ever add columns to this table.
"""

from __future__ import annotations

import logging
from typing import Optional

import numpy as np
import pandas as pd

from core.config import ProjectionConfig
from core.exceptions import InvalidTreatyError
from core.schema import EXPERIENCE_FIELDS, EXPERIENCE_KEYS, TREATY_COLUMNS
from core.utils import month_ordinal, months_between, na_sum, require_columns

logger = logging.getLogger(__name__)


def _restrict_experience(
    experience: pd.DataFrame, treaty_ids: pd.Index, months: pd.DatetimeIndex
) -> pd.DataFrame:
    exp = experience.copy()
    exp["calendar_month"] = (
        pd.to_datetime(exp["calendar_month"]).dt.to_period("M").dt.to_timestamp(how="start")
    )

    unknown = ~exp["treaty_id"].isin(treaty_ids)
    if unknown.any():
        logger.info(
            "Dropping %d experience rows for %d treaties not in the treaty table.",
            int(unknown.sum()), exp.loc[unknown, "treaty_id"].nunique(),
        )
    outside = ~exp["calendar_month"].isin(months)
    if (outside & ~unknown).any():
        logger.info(
            "Dropping %d experience rows outside the horizon %s..%s.",
            int((outside & ~unknown).sum()), f"{months[0]:%Y-%m}", f"{months[-1]:%Y-%m}",
        )
    exp = exp[~unknown & ~outside]

    for f in EXPERIENCE_FIELDS:
        if f not in exp.columns:
            exp[f] = pd.Series(pd.NA, index=exp.index, dtype="Float64")

    keys = list(EXPERIENCE_KEYS)
    if exp.duplicated(subset=keys).any():
        exp = exp.groupby(keys, as_index=False)[list(EXPERIENCE_FIELDS)].sum(min_count=1)
    return exp.loc[:, keys + list(EXPERIENCE_FIELDS)]


def build_grid(
    treaties: pd.DataFrame,
    experience: Optional[pd.DataFrame],
    config: ProjectionConfig,
) -> pd.DataFrame:
    """
    Materialize the treaty × month grid.

    Parameters
    ----------
    treaties : pd.DataFrame
        Prepared treaty table (data_prep.prepare_treaties), one row per treaty.
    experience : pd.DataFrame or None
        Keyed monthly experience (data_prep.build_experience). Rows for
        unknown treaties or months outside the horizon are dropped.
    config : ProjectionConfig

    Returns
    -------
    DataFrame with |treaties| × |months| rows sorted by treaty and month.
    Experience fields are nullable Float64; cells without experience hold pd.NA.
    """
    require_columns(treaties, list(TREATY_COLUMNS) + ["treaty_length_months"])
    if treaties["treaty_id"].duplicated().any():
        dup = treaties.loc[treaties["treaty_id"].duplicated(), "treaty_id"].iloc[0]
        raise InvalidTreatyError(dup, "duplicate treaty id in reference table")

    months = config.horizon_months
    ids = treaties["treaty_id"].to_numpy()
    n_months = len(months)

    lattice = pd.DataFrame(
        {
            "treaty_id": np.repeat(ids, n_months),
            "calendar_month": np.tile(months.values, len(ids)),
        }
    )
    grid = lattice.merge(treaties, on="treaty_id", how="left", validate="many_to_one")

    if experience is not None and len(experience) > 0:
        require_columns(experience, list(EXPERIENCE_KEYS))
        exp = _restrict_experience(experience, pd.Index(ids), months)
        grid = grid.merge(exp, on=list(EXPERIENCE_KEYS), how="left", validate="one_to_one")

    for f in EXPERIENCE_FIELDS:
        if f in grid.columns:
            grid[f] = grid[f].astype("Float64")
        else:
            grid[f] = pd.Series(pd.NA, index=grid.index, dtype="Float64")

    grid["actual_paid_lalae"] = na_sum(grid[["paid_losses_net", "paid_alae"]]).astype("Float64")
    grid["actual_reported_lalae"] = na_sum(
        grid[["paid_losses_net", "paid_alae", "case_reserve_loss"]]
    ).astype("Float64")

    grid["month_ordinal"] = month_ordinal(grid["calendar_month"]).astype(int)
    grid["months_since_effective"] = months_between(
        grid["effective_date"], grid["calendar_month"]
    ).astype(int)

    grid = grid.sort_values(["treaty_id", "calendar_month"]).reset_index(drop=True)

    logger.info(
        "Grid built: %d treaties × %d months = %d cells.", len(ids), n_months, len(grid)
    )
    return grid
