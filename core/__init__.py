"""
Core package — schema definitions, configuration, errors and shared utilities.
No business logic lives here.
"""

from .schema import (
    TREATY_COLUMNS,
    DEV_FACTOR_COLUMNS,
    EXPERIENCE_FIELDS,
    LALAE_SCENARIOS,
    OUTPUT_COLUMNS,
)
from .config import ProjectionConfig
from .exceptions import (
    ProjectionError,
    InputCompletenessError,
    ReconciliationError,
    ReferenceDataError,
    InvalidTreatyError,
)
from .utils import require_columns, months_between, month_range

__all__ = [
    "TREATY_COLUMNS",
    "DEV_FACTOR_COLUMNS",
    "EXPERIENCE_FIELDS",
    "LALAE_SCENARIOS",
    "OUTPUT_COLUMNS",
    "ProjectionConfig",
    "ProjectionError",
    "InputCompletenessError",
    "ReconciliationError",
    "ReferenceDataError",
    "InvalidTreatyError",
    "require_columns",
    "months_between",
    "month_range",
]
