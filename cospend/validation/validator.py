"""
Draft Validation

Runs when a draft is about to become an Expense (the save button).

ERRORS block the save:
- Empty item label, or one longer than MAX_ITEM_LENGTH
- Missing, non-finite, negative or zero amount

WARNINGS are shown but do not block:
- Amount above the configured sanity limit
- Date further in the future than the configured tolerance

IMPORTANT: Validation NEVER silently fixes issues.
It reports them for the user to correct.
"""

from datetime import date, timedelta
from decimal import Decimal
from typing import Optional

from cospend.config import RuntimeSettings, get_settings
from cospend.models.expense import (
    MAX_ITEM_LENGTH,
    ExpenseDraft,
    ValidationIssue,
    ValidationResult,
)


class DraftValidator:
    """Validates a draft at the draft → Expense promotion boundary."""

    def __init__(self, settings: Optional[RuntimeSettings] = None):
        self._settings = settings or get_settings().app

    def validate(
        self,
        draft: ExpenseDraft,
        today: Optional[date] = None,
    ) -> ValidationResult:
        today = today or date.today()
        issues: list[ValidationIssue] = []

        if not draft.item or not draft.item.strip():
            issues.append(ValidationIssue(
                field="item",
                issue_type="missing",
                message="Please enter what the expense was for",
                severity="error",
            ))
        elif len(draft.item.strip()) > MAX_ITEM_LENGTH:
            issues.append(ValidationIssue(
                field="item",
                issue_type="too_long",
                message=f"Please keep the description to {MAX_ITEM_LENGTH} characters or fewer",
                severity="error",
            ))

        issues.extend(self._check_amount(draft.amount))

        if draft.date > today + timedelta(days=self._settings.future_date_tolerance_days):
            issues.append(ValidationIssue(
                field="date",
                issue_type="future_date",
                message=f"Date {draft.date.isoformat()} is in the future",
                severity="warning",
                suggested_fix="Check the date was read correctly",
            ))

        return ValidationResult(issues=issues)

    def _check_amount(self, amount: Optional[Decimal]) -> list[ValidationIssue]:
        if amount is None:
            return [ValidationIssue(
                field="amount",
                issue_type="missing",
                message="Please enter an amount",
                severity="error",
            )]
        if not amount.is_finite():
            return [ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message="Amount must be a number",
                severity="error",
            )]
        if amount < 0:
            return [ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message="Amount cannot be negative",
                severity="error",
            )]
        if amount == 0:
            return [ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message="Please enter a valid amount",
                severity="error",
                suggested_fix="Amounts must be greater than zero",
            )]
        if amount > Decimal(str(self._settings.max_expense_amount)):
            return [ValidationIssue(
                field="amount",
                issue_type="suspicious_value",
                message=f"Amount {amount:,.2f} is unusually large",
                severity="warning",
                suggested_fix="Check for a misplaced decimal point",
            )]
        return []
