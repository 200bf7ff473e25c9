"""Tests for derived expense and LALAE metrics."""

import logging

import pandas as pd
import pytest

from core.config import ProjectionConfig
from engine.metrics import compute_derived_metrics


@pytest.fixture
def cells():
    return pd.DataFrame({
        "treaty_id": ["A", "A"],
        "earned_to_date": [1_000.0, 2_000.0],
        "undev_paid": [200.0, 800.0],
        "undev_reported": [500.0, 1_200.0],
        "ulae_pct": [0.02, 0.02],
        "broker_pct": [0.10, 0.10],
        "expense_pct": [0.05, 0.05],
        "lalae_ratio_no_improv": [0.70, 0.70],
        "lalae_ratio_half_improv": [0.65, 0.65],
        "lalae_ratio_break_even": [0.60, 0.60],
    })


class TestDerivedMetrics:

    def test_expense_loads(self, cells):
        out = compute_derived_metrics(cells, ProjectionConfig())
        assert out["ulae"].tolist() == pytest.approx([20.0, 40.0])
        assert out["broker_commission"].tolist() == pytest.approx([100.0, 200.0])
        assert out["expenses"].tolist() == pytest.approx([50.0, 100.0])

    def test_lalae_scenarios(self, cells):
        out = compute_derived_metrics(cells, ProjectionConfig())
        assert out["paid_lalae_no_improv"].tolist() == pytest.approx([140.0, 560.0])
        assert out["reported_lalae_no_improv"].tolist() == pytest.approx([350.0, 840.0])
        assert out["case_reserve_no_improv"].tolist() == pytest.approx([210.0, 280.0])
        assert out["reserve_no_improv"].tolist() == pytest.approx([560.0, 840.0])
        assert out["ibnr_no_improv"].tolist() == pytest.approx([350.0, 560.0])
        assert out["paid_lalae_break_even"].tolist() == pytest.approx([120.0, 480.0])
        assert out["ibnr_half_improv"].tolist() == pytest.approx([325.0, 520.0])

    def test_legacy_paid_basis_is_flagged(self, cells, caplog):
        cfg = ProjectionConfig(reported_lalae_basis="paid")
        with caplog.at_level(logging.WARNING, logger="engine.metrics"):
            out = compute_derived_metrics(cells, cfg)
        assert out["reported_lalae_no_improv"].tolist() == out["paid_lalae_no_improv"].tolist()
        assert out["case_reserve_no_improv"].tolist() == [0.0, 0.0]
        assert "paid-undeveloped basis" in caplog.text

    def test_input_untouched(self, cells):
        before = cells.copy()
        compute_derived_metrics(cells, ProjectionConfig())
        pd.testing.assert_frame_equal(cells, before)
