"""
Data Models Package

This package contains all Pydantic models used in CoSpend.
All data flowing through the system must conform to these schemas.
"""

from cospend.models.expense import (
    AppSettings,
    BalanceSummary,
    Category,
    Expense,
    ExpenseDraft,
    GroupedExpenses,
    ImportResult,
    PartyID,
    ValidationIssue,
    ValidationResult,
    parse_canonical_date,
)
from cospend.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Expense models
    "AppSettings",
    "BalanceSummary",
    "Category",
    "Expense",
    "ExpenseDraft",
    "GroupedExpenses",
    "ImportResult",
    "PartyID",
    "ValidationIssue",
    "ValidationResult",
    "parse_canonical_date",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
