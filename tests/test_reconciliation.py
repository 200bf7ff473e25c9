"""Tests for the reconciliation battery run between pipeline stages."""

import pandas as pd
import pytest

from core.config import ProjectionConfig
from core.exceptions import ReconciliationError
from data_prep.treaty_table import prepare_treaties
from engine.grid import build_grid
from engine.losses import undevelop_losses
from engine.premium import allocate_written_premium
from engine.reconciliation import (
    check_grid_shape,
    check_inherited_pattern,
    check_loss_development,
    check_replacement_idempotent,
    check_written_equals_earned,
    check_written_total,
    run_checks,
)


@pytest.fixture
def developed(earned_grid, book, dev_factors_raw, clean_factors, config):
    return undevelop_losses(earned_grid(book), clean_factors(dev_factors_raw), config)


class TestPassingBook:
    """A clean book passes every stage."""

    def test_all_stages(self, developed, config):
        for stage in ["grid", "written", "uepr", "earned", "losses"]:
            passed = run_checks(stage, developed, config)
            assert all(p.startswith(f"{stage}:") for p in passed)

    def test_unknown_stage(self, developed, config):
        with pytest.raises(ValueError, match="Unknown reconciliation stage"):
            run_checks("export", developed, config)


class TestFailures:
    """Tampered tables are caught and the failing treaty is named."""

    def test_written_total(self, developed, config):
        bad = developed.copy()
        bad.loc[bad["treaty_id"] == "E", "written_allocated"] *= 1.01
        with pytest.raises(ReconciliationError) as exc:
            check_written_total(bad, config)
        assert exc.value.check == "written_total"
        assert exc.value.treaty_id == "E"
        assert exc.value.expected == pytest.approx(600_000)

    def test_inherited_pattern(self, developed, config):
        bad = developed.copy()
        bad.loc[bad["treaty_id"] == "F", "iuepr_month"] *= 0.5
        with pytest.raises(ReconciliationError) as exc:
            check_inherited_pattern(bad, config)
        assert exc.value.treaty_id == "F"

    def test_written_equals_earned(self, developed, config):
        bad = developed.copy()
        idx = bad.index[(bad["treaty_id"] == "E") & (bad["earned_projected"] > 0)][0]
        bad.loc[idx, "earned_projected"] += 100.0
        with pytest.raises(ReconciliationError, match="written_equals_earned"):
            check_written_equals_earned(bad, config)

    def test_loss_development(self, developed, config):
        bad = developed.copy()
        bad.loc[bad["treaty_id"] == "F", "undev_paid"] *= 0.9
        with pytest.raises(ReconciliationError) as exc:
            check_loss_development(bad, config)
        assert exc.value.check == "loss_development"
        assert exc.value.treaty_id == "F"

    def test_replacement_not_applied(self, developed, config):
        bad = developed.copy()
        idx = bad.index[bad["treaty_id"] == "E"][20]
        bad["written_premium"] = bad["written_premium"].astype("Float64")
        bad.loc[idx, "written_premium"] = 1.0
        with pytest.raises(ReconciliationError, match="replacement_idempotent"):
            check_replacement_idempotent(bad, config)

    def test_grid_shape(self, developed, config):
        with pytest.raises(ReconciliationError, match="grid_shape"):
            check_grid_shape(developed.iloc[1:], config)

    def test_tolerance_absorbs_float_drift(self, developed, config):
        drift = developed.copy()
        drift["written_allocated"] = drift["written_allocated"] * (1 + 1e-9)
        check_written_total(drift, config)


class TestTruncatedTreaties:
    """Treaties cut by the horizon are skipped, not failed."""

    def test_written_window_past_horizon(self, make_treaty):
        cfg = ProjectionConfig()
        late = pd.DataFrame([
            make_treaty(treaty_id="LATE", effective_date="2070-06-01", expiration_date="2071-05-31")
        ])
        grid = allocate_written_premium(build_grid(prepare_treaties(late), None, cfg))
        assert grid["written_allocated"].sum() < 600_000
        check_written_total(grid, cfg)

    def test_written_window_before_horizon(self, make_treaty):
        cfg = ProjectionConfig()
        early = pd.DataFrame([
            make_treaty(treaty_id="EARLY", effective_date="2019-07-01", expiration_date="2020-06-30")
        ])
        grid = allocate_written_premium(build_grid(prepare_treaties(early), None, cfg))
        assert grid["written_allocated"].sum() == pytest.approx(300_000)
        check_written_total(grid, cfg)
