"""Shared fixtures: in-memory storage, audit sink, expense factory."""

from datetime import date
from decimal import Decimal

import pytest

from cospend.audit import AuditLogger
from cospend.config import RuntimeSettings
from cospend.models.expense import Category, Expense, PartyID
from cospend.services.storage import InMemoryAuditStorage, InMemoryStorage, StorageError


def make_expense(
    expense_id: str,
    day: str = "2024-01-10",
    amount: str = "10.00",
    payer: PartyID = PartyID.A,
    item: str = "Coffee",
    category: Category = Category.FOOD,
    created_at: int = 1,
) -> Expense:
    return Expense(
        id=expense_id,
        date=date.fromisoformat(day),
        item=item,
        amount=Decimal(amount),
        category=category,
        payer=payer,
        created_at=created_at,
    )


class FailingWriteStorage(InMemoryStorage):
    """InMemoryStorage whose next `failures` writes raise StorageError."""

    def __init__(self, initial=None, failures=1):
        super().__init__(initial)
        self.failures = failures

    def set_item(self, key, value):
        if self.failures:
            self.failures -= 1
            raise StorageError(f"Could not write '{key}': disk full")
        super().set_item(key, value)


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def audit_sink():
    return InMemoryAuditStorage()


@pytest.fixture
def audit_logger(audit_sink):
    return AuditLogger(audit_sink)


@pytest.fixture
def runtime_settings():
    return RuntimeSettings(max_expense_amount=10000.0, future_date_tolerance_days=1)
