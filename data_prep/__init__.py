"""
Data preparation — loading reference CSVs, keying experience, validation, export.
"""

from .loader import load_csv, load_optional_csv
from .treaty_table import (
    canonicalize_columns,
    prepare_treaties,
    prepare_development_factors,
)
from .experience import build_experience, parse_calendar_month
from .validators import validate_treaties, validate_development_factors
from .export import export_table

__all__ = [
    "load_csv",
    "load_optional_csv",
    "canonicalize_columns",
    "prepare_treaties",
    "prepare_development_factors",
    "build_experience",
    "parse_calendar_month",
    "validate_treaties",
    "validate_development_factors",
    "export_table",
]
