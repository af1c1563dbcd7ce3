"""
Core Data Models for CoSpend

These models define the strict schemas for all data flowing through the system.
They are designed to:
1. Enforce type safety at runtime
2. Provide clear validation error messages
3. Round-trip the persisted JSON format (camelCase keys, numeric amounts)

DESIGN DECISION: Dates are calendar dates, accepted from text ONLY in the
canonical YYYY-MM-DD form. Ordering is always done on `date` objects,
never on the raw strings.
"""

import datetime as dt
import re
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Annotated, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PlainSerializer,
    field_validator,
)


ISO_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")

MAX_ITEM_LENGTH = 200


def parse_canonical_date(value):
    """
    Accept a date object or a zero-padded YYYY-MM-DD string.

    Anything else (timestamps, "1/2/2024", "2024-1-2") is rejected so that
    a stored collection can never hold ambiguous dates.
    """
    if isinstance(value, str):
        value = value.strip()
        if not ISO_DATE_PATTERN.match(value):
            raise ValueError(f"Date must be in YYYY-MM-DD format, got {value!r}")
        return date.fromisoformat(value)
    return value


# Decimals serialize as JSON numbers, matching the stored format
JsonNumber = PlainSerializer(float, return_type=float, when_used="json")


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class Category(str, Enum):
    """
    Supported expense categories.

    DESIGN DECISION: Using explicit categories rather than free text ensures
    consistent categorization and a stable icon per category in the UI.
    """
    FOOD = "Food"
    GROCERIES = "Groceries"
    TRANSPORT = "Transport"
    SHOPPING = "Shopping"
    ENTERTAINMENT = "Entertainment"
    UTILITIES = "Utilities"
    HOUSING = "Housing"
    HEALTH = "Health"
    TRAVEL = "Travel"
    OTHER = "Other"

    @classmethod
    def from_text(cls, value: Optional[str]) -> "Category":
        """Case-insensitive lookup by value or name, falling back to OTHER."""
        if not value:
            return cls.OTHER
        needle = value.strip().lower()
        for category in cls:
            if needle in (category.value.lower(), category.name.lower()):
                return category
        return cls.OTHER


class PartyID(str, Enum):
    """The two parties sharing expenses."""
    A = "A"
    B = "B"


# =============================================================================
# EXPENSE MODELS
# =============================================================================

class Expense(BaseModel):
    """
    A recorded expense.

    CRITICAL: Only Expense objects are persisted to storage.
    They are created by promoting a draft on explicit save, or by import.

    Frozen: views get the same objects the store holds, so they must not
    be able to change them.
    """
    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        str_strip_whitespace=True,
    )

    id: str = Field(
        ...,
        min_length=1,
        max_length=64,
        description="Unique expense ID"
    )
    date: dt.date = Field(
        ...,
        description="Day the money was spent"
    )
    item: str = Field(
        ...,
        max_length=MAX_ITEM_LENGTH,
        description="What was bought"
    )
    amount: Annotated[
        Decimal,
        Field(ge=0, allow_inf_nan=False, description="Amount spent (currency-agnostic)"),
        JsonNumber,
    ]
    category: Category = Field(
        default=Category.OTHER,
        description="Expense category"
    )
    payer: PartyID = Field(
        ...,
        description="Who paid"
    )
    created_at: int = Field(
        ...,
        alias="createdAt",
        ge=0,
        description="Creation time in epoch milliseconds (tie-breaker only)"
    )

    @field_validator('date', mode='before')
    @classmethod
    def validate_date_format(cls, v):
        return parse_canonical_date(v)


class ExpenseDraft(BaseModel):
    """
    An expense being drafted, before the user confirms it.

    CRITICAL: This is PROPOSED data, NOT verified.
    It comes either from manual entry (empty defaults) or from receipt
    analysis (best-effort values) and MUST go through the DraftValidator
    before it becomes an Expense.
    """
    model_config = ConfigDict(populate_by_name=True)

    date: dt.date = Field(
        default_factory=dt.date.today,
        description="Proposed expense date"
    )
    item: str = Field(
        default="",
        description="Proposed item label (length checked at promotion)"
    )
    amount: Optional[Annotated[Decimal, Field(allow_inf_nan=True)]] = Field(
        default=Decimal("0"),
        description="Proposed amount (unchecked until promotion)"
    )
    category: Category = Field(
        default=Category.OTHER,
        description="Proposed category"
    )

    @field_validator('date', mode='before')
    @classmethod
    def validate_date_format(cls, v):
        if v is None:
            return date.today()
        return parse_canonical_date(v)


class AppSettings(BaseModel):
    """
    User preferences: display names and who is using this device.

    Stored under the `appSettings` key. The current user is the default
    payer for new expenses.
    """
    model_config = ConfigDict(
        populate_by_name=True,
        str_strip_whitespace=True,
    )

    user_a_name: str = Field(
        default="You",
        alias="userAName",
        min_length=1,
        max_length=40,
    )
    user_b_name: str = Field(
        default="Partner",
        alias="userBName",
        min_length=1,
        max_length=40,
    )
    current_user_id: PartyID = Field(
        default=PartyID.A,
        alias="currentUserId",
    )

    def name_for(self, party: PartyID) -> str:
        """Display name of a party."""
        return self.user_a_name if party == PartyID.A else self.user_b_name


# =============================================================================
# DERIVED VIEWS
# =============================================================================

class BalanceSummary(BaseModel):
    """
    Monthly totals and the 50/50 balance between the two parties.

    Sign convention: a positive balance means party B owes party A that
    amount; a negative balance means party A owes party B.

    Derived on every read, never persisted.
    """
    model_config = ConfigDict(frozen=True)

    year: int = Field(..., ge=1)
    month: int = Field(..., ge=1, le=12)
    party_a: PartyID = PartyID.A
    party_b: PartyID = PartyID.B
    party_a_total: Decimal = Decimal("0")
    party_b_total: Decimal = Decimal("0")
    balance: Decimal = Decimal("0")
    expense_count: int = Field(default=0, ge=0)

    @property
    def total(self) -> Decimal:
        """Everything spent by both parties in the month."""
        return self.party_a_total + self.party_b_total

    @property
    def settlement_amount(self) -> Decimal:
        """How much has to change hands to even things out."""
        return abs(self.balance)

    @property
    def is_settled(self) -> bool:
        return self.balance == 0

    @property
    def creditor(self) -> Optional[PartyID]:
        """The party who is owed money, None when even."""
        if self.balance > 0:
            return self.party_a
        if self.balance < 0:
            return self.party_b
        return None

    @property
    def debtor(self) -> Optional[PartyID]:
        """The party who owes money, None when even."""
        creditor = self.creditor
        if creditor is None:
            return None
        return self.party_b if creditor == self.party_a else self.party_a


class GroupedExpenses(BaseModel):
    """Expenses bucketed per calendar date, newest date first."""

    dates: list[date] = Field(default_factory=list)
    groups: dict[date, list[Expense]] = Field(default_factory=dict)

    def items(self):
        """(date, expenses) pairs, newest date first."""
        for day in self.dates:
            yield day, self.groups[day]

    @property
    def expense_count(self) -> int:
        return sum(len(bucket) for bucket in self.groups.values())


class ImportResult(BaseModel):
    """Outcome of merging an imported expense list into the store."""

    success: bool
    admitted_count: int = Field(default=0, ge=0)
    skipped_count: int = Field(default=0, ge=0)
    message: str = ""


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_value', 'suspicious_value')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    suggested_fix: Optional[str] = Field(
        default=None,
        description="Suggested fix if available"
    )


class ValidationResult(BaseModel):
    """
    Result of validating a draft at promotion time.

    Errors block the save; warnings are shown but do not block.
    """

    issues: list[ValidationIssue] = Field(
        default_factory=list,
        description="All validation issues found"
    )

    @property
    def is_valid(self) -> bool:
        return not self.has_errors

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")

    @property
    def warnings(self) -> list[str]:
        return [issue.message for issue in self.issues if issue.severity == "warning"]
