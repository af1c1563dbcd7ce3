"""Tests for the monthly balance aggregation."""

from datetime import date
from decimal import Decimal

import pytest

from conftest import make_expense
from cospend.models.expense import PartyID
from cospend.queries import BalanceAggregator, month_bounds


class TestBalanceAggregator:
    """Test BalanceAggregator.summarize."""

    def setup_method(self):
        self.aggregator = BalanceAggregator()

    def test_two_party_scenario(self):
        """A paid 100, B paid 50 in January: B owes A 25."""
        expenses = [
            make_expense("1", day="2024-01-10", amount="100", payer=PartyID.A),
            make_expense("2", day="2024-01-10", amount="50", payer=PartyID.B),
        ]

        summary = self.aggregator.summarize(expenses, date(2024, 1, 1))

        assert summary.party_a_total == Decimal("100")
        assert summary.party_b_total == Decimal("50")
        assert summary.balance == Decimal("25")
        assert summary.creditor == PartyID.A
        assert summary.debtor == PartyID.B

    def test_negative_balance_when_b_paid_more(self):
        expenses = [
            make_expense("1", amount="30", payer=PartyID.A),
            make_expense("2", amount="90", payer=PartyID.B),
        ]

        summary = self.aggregator.summarize(expenses, date(2024, 1, 31))

        assert summary.balance == Decimal("-30")
        assert summary.creditor == PartyID.B

    def test_empty_collection(self):
        summary = self.aggregator.summarize([], date(2030, 6, 15))

        assert summary.party_a_total == Decimal("0")
        assert summary.party_b_total == Decimal("0")
        assert summary.balance == Decimal("0")
        assert summary.expense_count == 0

    def test_calendar_month_not_rolling_window(self):
        """Expenses a few days apart but in different months are separated."""
        expenses = [
            make_expense("dec", day="2023-12-31", amount="40", payer=PartyID.A),
            make_expense("jan", day="2024-01-01", amount="10", payer=PartyID.A),
            make_expense("feb", day="2024-02-01", amount="70", payer=PartyID.B),
            make_expense("jan-last-year", day="2023-01-15", amount="500", payer=PartyID.B),
        ]

        summary = self.aggregator.summarize(expenses, date(2024, 1, 20))

        assert summary.party_a_total == Decimal("10")
        assert summary.party_b_total == Decimal("0")
        assert summary.balance == Decimal("5")
        assert summary.expense_count == 1

    def test_pure_repeatable(self):
        expenses = [
            make_expense("1", amount="12.34", payer=PartyID.A),
            make_expense("2", amount="0.66", payer=PartyID.B),
        ]
        snapshot = list(expenses)

        first = self.aggregator.summarize(expenses, date(2024, 1, 1))
        second = self.aggregator.summarize(expenses, date(2024, 1, 1))

        assert first == second
        assert expenses == snapshot

    def test_balance_is_half_the_difference(self):
        expenses = [
            make_expense(str(i), amount=amount, payer=payer)
            for i, (amount, payer) in enumerate([
                ("19.99", PartyID.A), ("5.01", PartyID.A), ("7.50", PartyID.B),
            ])
        ]

        summary = self.aggregator.summarize(expenses, date(2024, 1, 1))

        x, y = Decimal("25.00"), Decimal("7.50")
        assert summary.balance == (x - y) / 2
        assert summary.total == x + y

    def test_same_party_twice_rejected(self):
        with pytest.raises(ValueError):
            self.aggregator.summarize([], date(2024, 1, 1), PartyID.A, PartyID.A)


class TestMonthBounds:

    @pytest.mark.parametrize("reference, expected", [
        (date(2024, 2, 10), (date(2024, 2, 1), date(2024, 2, 29))),
        (date(2023, 12, 31), (date(2023, 12, 1), date(2023, 12, 31))),
        (date(2024, 4, 1), (date(2024, 4, 1), date(2024, 4, 30))),
    ])
    def test_month_bounds(self, reference, expected):
        assert month_bounds(reference) == expected
