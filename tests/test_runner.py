"""End-to-end tests for run_projection."""

import pandas as pd
import pytest

from core.config import ProjectionConfig
from core.exceptions import ReferenceDataError
from core.schema import OUTPUT_COLUMNS
from data_prep.experience import build_experience
from engine import run_projection


@pytest.fixture
def projection(book, dev_factors_raw):
    return run_projection(book, dev_factors_raw)


class TestRunProjection:

    def test_output_shape_and_columns(self, projection):
        table, diag = projection
        assert list(table.columns) == list(OUTPUT_COLUMNS)
        # 2020-01 .. 2070-12 is 612 months
        assert len(table) == 2 * 612
        assert diag["n_treaties"] == 2
        assert diag["n_months"] == 612
        assert diag["n_rows"] == len(table)

    def test_months_encoded_as_yyyymm(self, projection):
        table, _ = projection
        assert table["calendar_month"].iloc[0] == 202001
        assert table["calendar_month"].max() == 207012
        assert set(table.loc[table["treaty_id"] == "E", "effective_date"]) == {202103}

    def test_every_stage_checked(self, projection):
        _, diag = projection
        stages = {name.split(":")[0] for name in diag["checks_passed"]}
        assert stages == {"grid", "written", "uepr", "earned", "losses"}

    def test_scenario_values(self, projection, cell):
        table, _ = projection
        etd = 50_000 / 24
        assert cell(table, "E", 202103, "earned_to_date") == pytest.approx(etd)
        assert cell(table, "E", 202103, "ulae") == pytest.approx(0.02 * etd)
        assert cell(table, "E", 202103, "broker_commission") == pytest.approx(0.10 * etd)
        # raw lag 1 develops in the earning month itself
        assert cell(table, "E", 202103, "undev_paid") == pytest.approx(etd / 36)
        assert cell(table, "E", 202103, "reserve_no_improv") == pytest.approx(0.70 * (etd - etd / 36))
        assert cell(table, "E", 207012, "uepr") == pytest.approx(0.0, abs=1e-6)
        assert cell(table, "E", 207012, "ibnr_break_even") == pytest.approx(0.0, abs=1e-6)

    def test_experience_absent_values_survive(self, book, dev_factors_raw, cell):
        raw = pd.DataFrame({
            "treaty_id": ["E", "E"],
            "calendar_month": [202105, 202106],
            "written_premium": [80_000.0, None],
            "paid_losses_net": [1_000.0, None],
            "paid_alae": [None, None],
        })
        table, diag = run_projection(book, dev_factors_raw, build_experience(raw))
        assert cell(table, "E", 202105, "written_monthly") == pytest.approx(80_000)
        assert cell(table, "E", 202105, "actual_paid_lalae") == pytest.approx(1_000)
        assert pd.isna(cell(table, "E", 202106, "written_premium"))
        assert pd.isna(cell(table, "E", 202106, "actual_paid_lalae"))
        assert pd.isna(cell(table, "F", 202105, "earned_premium"))
        assert diag["written_revision"]["E"] == pytest.approx(30_000)

    def test_missing_factors_halts(self, book, dev_factors_raw):
        only_e = dev_factors_raw[dev_factors_raw["treaty_id"] == "E"]
        with pytest.raises(ReferenceDataError):
            run_projection(book, only_e)

    def test_short_horizon(self, treaty_e, dev_factors_raw):
        cfg = ProjectionConfig(
            horizon_start=pd.Timestamp("2021-01-01"), horizon_end=pd.Timestamp("2021-12-01")
        )
        table, diag = run_projection(treaty_e, dev_factors_raw[dev_factors_raw["treaty_id"] == "E"], config=cfg)
        assert len(table) == 12
        assert diag["n_months"] == 12
