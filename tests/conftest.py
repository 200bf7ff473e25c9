"""Pytest configuration and shared fixtures."""

import pandas as pd
import pytest

from core.config import ProjectionConfig
from data_prep.treaty_table import prepare_development_factors, prepare_treaties
from engine.grid import build_grid
from engine.premium import (
    allocate_earned_premium,
    allocate_written_premium,
    amortize_inherited_uepr,
)


def _treaty(**overrides):
    row = {
        "treaty_id": "E",
        "effective_date": "2021-03-01",
        "expiration_date": "2022-02-28",
        "policy_length_months": 12,
        "total_subject_premium": 1_200_000.0,
        "target_participation": 0.5,
        "inherited_uepr": 0.0,
        "is_lod": "N",
        "ulae_pct": 0.02,
        "broker_pct": 0.10,
        "expense_pct": 0.05,
        "lalae_ratio_no_improv": 0.70,
        "lalae_ratio_half_improv": 0.65,
        "lalae_ratio_break_even": 0.60,
    }
    row.update(overrides)
    return row


@pytest.fixture
def make_treaty():
    """Factory for a raw treaty row; defaults describe treaty E."""
    return _treaty


@pytest.fixture
def treaty_e():
    return pd.DataFrame([_treaty()])


@pytest.fixture
def treaty_f():
    """LOD treaty carrying a 120,000 inherited UEPR."""
    return pd.DataFrame([
        _treaty(
            treaty_id="F",
            effective_date="2021-01-01",
            expiration_date="2021-12-31",
            total_subject_premium=240_000.0,
            target_participation=1.0,
            inherited_uepr=120_000.0,
            is_lod="Y",
        )
    ])


@pytest.fixture
def book(treaty_e, treaty_f):
    return pd.concat([treaty_e, treaty_f], ignore_index=True)


def _dev_factors(treaty_ids, max_lag=36):
    """Raw development factors: lag 0 sentinel, paid linear to 1 over 36 months."""
    rows = []
    for tid in treaty_ids:
        for lag in range(max_lag + 1):
            rows.append({
                "treaty_id": tid,
                "lag": lag,
                "paid_pct": lag / max_lag,
                "reported_pct": min(1.0, lag / 24),
            })
    return pd.DataFrame(rows)


@pytest.fixture
def dev_factors_raw():
    return _dev_factors(["E", "F"])


@pytest.fixture
def config():
    return ProjectionConfig()


@pytest.fixture
def earned_grid(config):
    """Run grid → written → inherited UEPR → earned for a raw treaty table."""

    def _run(treaties, experience=None):
        grid = build_grid(prepare_treaties(treaties), experience, config)
        grid = allocate_written_premium(grid)
        grid = amortize_inherited_uepr(grid)
        return allocate_earned_premium(grid)

    return _run


@pytest.fixture
def clean_factors():
    """Cleaned development factors from a raw table."""

    def _clean(raw):
        return prepare_development_factors(raw)

    return _clean


@pytest.fixture
def cell():
    """Value of one (treaty, month) cell; month may be a date or YYYYMM int."""

    def _cell(grid, treaty_id, month, col):
        key = month if isinstance(month, int) else pd.Timestamp(month)
        row = grid[(grid["treaty_id"] == treaty_id) & (grid["calendar_month"] == key)]
        assert len(row) == 1
        return row[col].iloc[0]

    return _cell
