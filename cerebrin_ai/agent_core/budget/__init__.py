"""Per-workspace spend ceilings checked before provider calls."""

from .guard import BudgetGuard, current_period

__all__ = ["BudgetGuard", "current_period"]
