"""
Command-line entry point: load reference CSVs and the experience extract,
run the projection, export the result table.

    treaty-cashflow --treaties treaties.csv --development-factors dev.csv \
        --experience extract.csv --key-map keys.csv --output projection.csv
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional

import pandas as pd

from core.config import ProjectionConfig
from core.exceptions import ProjectionError
from data_prep import build_experience, export_table, load_csv, load_optional_csv
from engine import run_projection

logger = logging.getLogger(__name__)


def _parse_args(argv: Optional[List[str]]) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        prog="treaty-cashflow",
        description="Project monthly reinsurance treaty cash flows.",
    )
    p.add_argument("--treaties", required=True, help="Treaty reference CSV")
    p.add_argument("--development-factors", required=True, help="Development-factor CSV")
    p.add_argument("--experience", help="Raw monthly experience extract CSV")
    p.add_argument("--key-map", help="Source key → treaty id translation CSV")
    p.add_argument("--overrides", help="Experience override CSV")
    p.add_argument("--output", required=True, help="Output path (.csv or .xlsx)")
    p.add_argument("--valuation-date", help="Ignore experience after this date (YYYY-MM-DD)")
    p.add_argument("--horizon-start", default="2020-01-01")
    p.add_argument("--horizon-end", default="2070-12-01")
    p.add_argument(
        "--reported-lalae-basis",
        choices=["reported", "paid"],
        default="reported",
        help="'paid' reproduces the legacy reported-LALAE formula",
    )
    p.add_argument("--log-level", default="INFO")
    return p.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config = ProjectionConfig(
        horizon_start=pd.Timestamp(args.horizon_start),
        horizon_end=pd.Timestamp(args.horizon_end),
        valuation_date=pd.Timestamp(args.valuation_date) if args.valuation_date else None,
        reported_lalae_basis=args.reported_lalae_basis,
    )

    treaties = load_csv(args.treaties)
    factors = load_csv(args.development_factors)

    experience = None
    raw = load_optional_csv(args.experience)
    try:
        if raw is not None:
            experience = build_experience(
                raw,
                key_map=load_optional_csv(args.key_map),
                overrides=load_optional_csv(args.overrides),
                config=config,
            )
        table, diagnostics = run_projection(treaties, factors, experience, config)
    except ProjectionError as exc:
        logger.error("Projection halted: %s", exc)
        return 1

    export_table(table, args.output)
    logger.info("%d reconciliation checks passed.", len(diagnostics["checks_passed"]))
    return 0


if __name__ == "__main__":
    sys.exit(main())
