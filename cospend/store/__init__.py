"""Expense and settings stores."""

from cospend.store.expense_store import (
    EXPENSES_KEY,
    DuplicateExpenseError,
    ExpenseStore,
    ExpenseStoreError,
    ImportFormatError,
    sample_expenses,
    sort_newest_first,
)
from cospend.store.settings_store import SETTINGS_KEY, SettingsStore

__all__ = [
    "EXPENSES_KEY",
    "SETTINGS_KEY",
    "DuplicateExpenseError",
    "ExpenseStore",
    "ExpenseStoreError",
    "ImportFormatError",
    "SettingsStore",
    "sample_expenses",
    "sort_newest_first",
]
