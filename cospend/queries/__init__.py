"""Query package."""

from cospend.queries.balance import BalanceAggregator, month_bounds

__all__ = ["BalanceAggregator", "month_bounds"]
