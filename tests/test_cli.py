"""Tests for the treaty-cashflow command line."""

import pandas as pd
import pytest

from app.cli import main


@pytest.fixture
def inputs(tmp_path, book, dev_factors_raw):
    treaties = tmp_path / "treaties.csv"
    factors = tmp_path / "dev.csv"
    extract = tmp_path / "extract.csv"
    keys = tmp_path / "keys.csv"
    book.to_csv(treaties, index=False)
    dev_factors_raw.to_csv(factors, index=False)
    pd.DataFrame({
        "Source Key": ["S-E", "S-F"],
        "Month": [202104, 202102],
        "Written Premium": [55_000.0, None],
        "Paid Losses Net": [None, 250.0],
    }).to_csv(extract, index=False)
    pd.DataFrame({"source_key": ["S-E", "S-F"], "treaty_id": ["E", "F"]}).to_csv(keys, index=False)
    return {"treaties": treaties, "factors": factors, "extract": extract, "keys": keys}


def test_writes_projection(tmp_path, inputs):
    out = tmp_path / "projection.csv"
    rc = main([
        "--treaties", str(inputs["treaties"]),
        "--development-factors", str(inputs["factors"]),
        "--experience", str(inputs["extract"]),
        "--key-map", str(inputs["keys"]),
        "--output", str(out),
    ])
    assert rc == 0
    table = pd.read_csv(out)
    assert len(table) == 2 * 612
    row = table[(table["treaty_id"] == "E") & (table["calendar_month"] == 202104)]
    assert row["written_monthly"].iloc[0] == pytest.approx(55_000)


def test_projection_error_returns_nonzero(tmp_path, inputs, dev_factors_raw):
    factors = tmp_path / "dev_e_only.csv"
    dev_factors_raw[dev_factors_raw["treaty_id"] == "E"].to_csv(factors, index=False)
    out = tmp_path / "projection.csv"
    rc = main([
        "--treaties", str(inputs["treaties"]),
        "--development-factors", str(factors),
        "--output", str(out),
    ])
    assert rc == 1
    assert not out.exists()
