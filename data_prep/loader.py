from __future__ import annotations

from typing import Optional

import pandas as pd


def load_csv(path: str, *, low_memory: bool = False) -> pd.DataFrame:
    """
    Load one of the reference CSVs (treaty positions, development factors,
    key map, overrides) or a raw experience extract.
    """
    return pd.read_csv(path, low_memory=low_memory)


def load_optional_csv(path: Optional[str]) -> Optional[pd.DataFrame]:
    """Override and key-map tables are optional; a missing path means none."""
    if not path:
        return None
    return load_csv(path)
