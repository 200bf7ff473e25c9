from __future__ import annotations

from typing import Tuple

# Canonical treaty reference columns. The grid carries every one of these
# through to the output table.
TREATY_COLUMNS: Tuple[str, ...] = (
    "treaty_id",
    "effective_date",
    "expiration_date",
    "policy_length_months",
    "total_subject_premium",
    "target_participation",
    "inherited_uepr",
    "is_lod",
    "ulae_pct",
    "broker_pct",
    "expense_pct",
    "lalae_ratio_no_improv",
    "lalae_ratio_half_improv",
    "lalae_ratio_break_even",
)

DEV_FACTOR_COLUMNS: Tuple[str, ...] = (
    "treaty_id",
    "lag",
    "paid_pct",
    "reported_pct",
)

EXPERIENCE_KEYS: Tuple[str, ...] = ("treaty_id", "calendar_month")

# Reported experience fields; absent values stay pd.NA (nullable Float64).
EXPERIENCE_FIELDS: Tuple[str, ...] = (
    "written_premium",
    "earned_premium",
    "paid_losses_net",
    "paid_alae",
    "case_reserve_loss",
)

# Loss-ratio scenarios: suffix -> treaty ratio column
LALAE_SCENARIOS: Tuple[str, ...] = ("no_improv", "half_improv", "break_even")


def _scenario_columns() -> Tuple[str, ...]:
    cols = []
    for s in LALAE_SCENARIOS:
        cols += [
            f"paid_lalae_{s}",
            f"reported_lalae_{s}",
            f"case_reserve_{s}",
            f"reserve_{s}",
            f"ibnr_{s}",
        ]
    return tuple(cols)


OUTPUT_COLUMNS: Tuple[str, ...] = (
    ("treaty_id", "calendar_month")
    + TREATY_COLUMNS[1:]
    + ("treaty_length_months",)
    + EXPERIENCE_FIELDS
    + (
        "actual_paid_lalae",
        "actual_reported_lalae",
        "written_allocated",
        "written_monthly",
        "written_revision",
        "iuepr_month",
        "earned_projected",
        "earned_monthly_incl_iuepr",
        "written_to_date",
        "earned_to_date",
        "uepr",
        "undev_paid",
        "undev_reported",
        "ulae",
        "broker_commission",
        "expenses",
    )
    + _scenario_columns()
)
