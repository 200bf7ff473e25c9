"""
Typed errors for the projection pipeline.

Every error here is fatal to a run: the pipeline has no partial-output mode,
so callers either fix the inputs and re-run or let the error surface.

    ProjectionError (ValueError)
    |
    +-- InputCompletenessError   experience extract row-count identity failed
    +-- ReconciliationError      a sum-preservation check failed
    +-- ReferenceDataError       development factors missing / unexpected reserve
    +-- InvalidTreatyError       malformed treaty record
"""

from __future__ import annotations

from typing import Optional


class ProjectionError(ValueError):
    """Base class for all pipeline errors."""


class InputCompletenessError(ProjectionError):
    def __init__(self, total_rows: int, retained_rows: int, missing_rows: int):
        self.total_rows = total_rows
        self.retained_rows = retained_rows
        self.missing_rows = missing_rows
        super().__init__(
            f"Experience extract incomplete: missing ({missing_rows}) + "
            f"retained ({retained_rows}) != total latest rows ({total_rows})."
        )


class ReconciliationError(ProjectionError):
    def __init__(
        self,
        check: str,
        treaty_id: Optional[str],
        expected: float,
        actual: float,
        detail: str = "",
    ):
        self.check = check
        self.treaty_id = treaty_id
        self.expected = expected
        self.actual = actual
        where = f" for treaty {treaty_id!r}" if treaty_id is not None else ""
        msg = f"Reconciliation check {check!r} failed{where}: expected {expected:,.6f}, got {actual:,.6f}."
        if detail:
            msg += f" {detail}"
        super().__init__(msg)


class ReferenceDataError(ProjectionError):
    def __init__(self, treaty_id: str, reason: str):
        self.treaty_id = treaty_id
        self.reason = reason
        super().__init__(f"Treaty {treaty_id!r}: {reason}")


class InvalidTreatyError(ProjectionError):
    def __init__(self, treaty_id: Optional[str], reason: str):
        self.treaty_id = treaty_id
        self.reason = reason
        super().__init__(f"Invalid treaty {treaty_id!r}: {reason}")
