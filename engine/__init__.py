"""
Treaty cash-flow projection engine — premium allocation, loss development,
derived metrics and the reconciliation battery between stages.
"""

from .runner import run_projection, finalize_output

__all__ = ["run_projection", "finalize_output"]
