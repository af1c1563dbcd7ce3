"""
Balance Aggregation

DESIGN DECISION: The monthly summary is DETERMINISTIC and derived on read.
It is never stored, so it can never disagree with the expense list.

Every expense is treated as fully shared, whoever paid it. If A paid X and
B paid Y in the month, each should have paid (X + Y) / 2, so B owes A
(X - Y) / 2. A negative result means A owes B.
"""

from collections.abc import Iterable
from datetime import date, timedelta
from decimal import Decimal

from cospend.models.expense import BalanceSummary, Expense, PartyID


def month_bounds(reference: date) -> tuple[date, date]:
    """First and last calendar day of the month containing `reference`."""
    start = reference.replace(day=1)
    if start.month == 12:
        end = start.replace(year=start.year + 1, month=1) - timedelta(days=1)
    else:
        end = start.replace(month=start.month + 1) - timedelta(days=1)
    return start, end


class BalanceAggregator:
    """
    Computes per-party monthly totals and the 50/50 balance.

    Pure: no storage access, no side effects, same input → same output.
    """

    def summarize(
        self,
        expenses: Iterable[Expense],
        reference_month: date,
        party_a: PartyID = PartyID.A,
        party_b: PartyID = PartyID.B,
    ) -> BalanceSummary:
        """
        Summarize the calendar month containing `reference_month`.

        Expenses outside that month are ignored (not a rolling window).
        """
        if party_a == party_b:
            raise ValueError("The two parties must be different")

        start, end = month_bounds(reference_month)
        totals = {party_a: Decimal("0"), party_b: Decimal("0")}
        count = 0

        for expense in expenses:
            if not start <= expense.date <= end:
                continue
            if expense.payer not in totals:
                continue
            totals[expense.payer] += expense.amount
            count += 1

        return BalanceSummary(
            year=reference_month.year,
            month=reference_month.month,
            party_a=party_a,
            party_b=party_b,
            party_a_total=totals[party_a],
            party_b_total=totals[party_b],
            balance=(totals[party_a] - totals[party_b]) / 2,
            expense_count=count,
        )
