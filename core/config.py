"""
Projection configuration.
Plain parameters handed in by the orchestration layer; nothing here is read
from disk or the environment.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Optional

import pandas as pd

from .utils import month_range


@dataclass(frozen=True)
class ProjectionConfig:
    horizon_start: pd.Timestamp = pd.Timestamp("2020-01-01")
    horizon_end: pd.Timestamp = pd.Timestamp("2070-12-01")

    # experience for months after this date is ignored (None = use everything)
    valuation_date: Optional[pd.Timestamp] = None

    # losses are treated as fully paid/reported this many months after inception
    full_development_lag_months: int = 240

    # relative tolerance for reconciliation checks
    tolerance: float = 1e-6

    # "paid" reproduces the legacy reported-LALAE formula (paid-undeveloped basis)
    reported_lalae_basis: Literal["reported", "paid"] = "reported"

    def __post_init__(self):
        start = pd.Timestamp(self.horizon_start)
        end = pd.Timestamp(self.horizon_end)
        if end.to_period("M") < start.to_period("M"):
            raise ValueError(
                f"horizon_end {end:%Y-%m} is before horizon_start {start:%Y-%m}."
            )
        if self.full_development_lag_months <= 0:
            raise ValueError("full_development_lag_months must be positive.")
        if self.reported_lalae_basis not in ("reported", "paid"):
            raise ValueError(
                f"Unknown reported_lalae_basis: {self.reported_lalae_basis!r}"
            )

    @property
    def horizon_months(self) -> pd.DatetimeIndex:
        return month_range(self.horizon_start, self.horizon_end)
