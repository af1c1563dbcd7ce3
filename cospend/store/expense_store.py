"""
Expense Store

Holds the ordered list of expenses and is the ONLY place that mutates it.

ORDERING: The collection is always sorted newest date first. Sorting is
stable, and new records are prepended before sorting, so among expenses on
the same day the most recently added comes first.

PERSISTENCE: Every mutation writes the whole collection to the `expenses`
key. There is no incremental persistence and no schema version.
"""

import json
from collections.abc import Iterable
from datetime import date
from decimal import Decimal
from typing import Callable, Optional

import structlog
from pydantic import TypeAdapter, ValidationError

from cospend.audit import AuditLogger
from cospend.models.expense import (
    Category,
    Expense,
    GroupedExpenses,
    ImportResult,
    PartyID,
)
from cospend.services.storage import CorruptDataError, KeyValueStorageInterface


logger = structlog.get_logger(__name__)

EXPENSES_KEY = "expenses"

_EXPENSE_LIST = TypeAdapter(list[Expense])


class ExpenseStoreError(Exception):
    """Base exception for expense store operations."""
    pass


class ImportFormatError(ExpenseStoreError):
    """Imported payload is not a JSON array of expense records."""
    pass


class DuplicateExpenseError(ExpenseStoreError):
    """An expense with this id is already stored."""

    def __init__(self, expense_id: str):
        self.expense_id = expense_id
        super().__init__(f"Expense {expense_id!r} already exists")


def sort_newest_first(expenses: Iterable[Expense]) -> list[Expense]:
    """Stable sort by calendar date, newest first."""
    return sorted(expenses, key=lambda expense: expense.date, reverse=True)


def sample_expenses(today: Optional[date] = None, now_ms: int = 0) -> list[Expense]:
    """The two example expenses a fresh install can start with."""
    today = today or date.today()
    return [
        Expense(
            id="1",
            date=today,
            item="Grocery Run",
            amount=Decimal("156.50"),
            category=Category.GROCERIES,
            payer=PartyID.A,
            created_at=now_ms,
        ),
        Expense(
            id="2",
            date=today,
            item="Dinner Date",
            amount=Decimal("320.00"),
            category=Category.FOOD,
            payer=PartyID.B,
            created_at=max(now_ms - 1000, 0),
        ),
    ]


class ExpenseStore:
    """
    The expense collection plus its persistence.

    Views get tuples of frozen Expense objects; they cannot reach the
    underlying list.
    """

    def __init__(
        self,
        storage: KeyValueStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        default_factory: Optional[Callable[[], list[Expense]]] = None,
        strict_load: bool = False,
    ):
        """
        Load the collection from storage.

        Args:
            storage: Key-value backend
            audit_logger: Receives load failures, saves and imports
            default_factory: Starting collection when nothing is stored
                             (or stored data is unreadable and not strict)
            strict_load: Raise CorruptDataError instead of falling back
        """
        self._storage = storage
        self._audit_logger = audit_logger
        self._default_factory = default_factory or list
        self._strict_load = strict_load
        self._expenses: list[Expense] = self._load()

    # ------------------------------------------------------------------
    # Loading / persistence
    # ------------------------------------------------------------------

    def _load(self) -> list[Expense]:
        raw = self._storage.get_item(EXPENSES_KEY)
        if raw is None:
            return sort_newest_first(self._default_factory())

        try:
            expenses = _EXPENSE_LIST.validate_json(raw)
        except ValidationError as e:
            if self._strict_load:
                raise CorruptDataError(EXPENSES_KEY, str(e)) from e
            backup_key = f"{EXPENSES_KEY}.corrupt"
            self._storage.set_item(backup_key, raw)
            if self._audit_logger:
                self._audit_logger.log_storage_load_failed(
                    key=EXPENSES_KEY,
                    error_message=str(e),
                    backup_key=backup_key,
                )
            return sort_newest_first(self._default_factory())

        unique: list[Expense] = []
        seen: set[str] = set()
        for expense in expenses:
            if expense.id in seen:
                logger.warning("duplicate_stored_expense_dropped", expense_id=expense.id)
                continue
            seen.add(expense.id)
            unique.append(expense)
        return sort_newest_first(unique)

    def _commit(self, expenses: list[Expense]) -> None:
        """Write `expenses` to storage, then make it the current collection."""
        self._storage.set_item(
            EXPENSES_KEY,
            _EXPENSE_LIST.dump_json(expenses, by_alias=True).decode("utf-8"),
        )
        self._expenses = expenses

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    @property
    def expenses(self) -> tuple[Expense, ...]:
        return tuple(self._expenses)

    @property
    def ids(self) -> frozenset[str]:
        return frozenset(expense.id for expense in self._expenses)

    def __len__(self) -> int:
        return len(self._expenses)

    def __contains__(self, expense_id: object) -> bool:
        return any(expense.id == expense_id for expense in self._expenses)

    def get(self, expense_id: str) -> Optional[Expense]:
        for expense in self._expenses:
            if expense.id == expense_id:
                return expense
        return None

    def group_by_date(self) -> GroupedExpenses:
        """
        Bucket expenses per calendar date.

        Each bucket keeps the collection's order; dates are sorted newest
        first as date objects.
        """
        groups: dict[date, list[Expense]] = {}
        for expense in self._expenses:
            groups.setdefault(expense.date, []).append(expense)
        return GroupedExpenses(
            dates=sorted(groups, reverse=True),
            groups=groups,
        )

    def export_json(self, indent: Optional[int] = None) -> str:
        """Serialize the collection in the stored JSON shape."""
        return _EXPENSE_LIST.dump_json(
            self._expenses, by_alias=True, indent=indent
        ).decode("utf-8")

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add(self, expense: Expense) -> None:
        """
        Insert a fully formed expense and re-sort.

        Raises:
            DuplicateExpenseError: If the id is already stored
            StorageError: If the write fails; the store is left unchanged
        """
        if expense.id in self:
            raise DuplicateExpenseError(expense.id)

        self._commit(sort_newest_first([expense, *self._expenses]))

        if self._audit_logger:
            self._audit_logger.log_expense_saved(
                expense_id=expense.id,
                item=expense.item,
                amount=str(expense.amount),
                payer=expense.payer.value,
            )

    def import_merge(self, candidates: Iterable) -> ImportResult:
        """
        Merge externally supplied records, skipping ids already present.

        Candidates repeating an id seen earlier in the same payload are
        skipped as well. Survivors are prepended, then the collection is
        re-sorted.

        Raises:
            ImportFormatError: If any candidate is not a valid expense;
                               the store is left unchanged
        """
        if isinstance(candidates, (str, bytes, dict)) or not isinstance(candidates, Iterable):
            raise ImportFormatError("Invalid data format.")

        try:
            records = _EXPENSE_LIST.validate_python(
                [
                    candidate.model_dump(by_alias=True)
                    if isinstance(candidate, Expense) else candidate
                    for candidate in candidates
                ]
            )
        except ValidationError as e:
            raise ImportFormatError(
                f"Invalid expense record: {e.error_count()} problem(s) found"
            ) from e

        known = set(self.ids)
        admitted: list[Expense] = []
        for record in records:
            if record.id in known:
                continue
            known.add(record.id)
            admitted.append(record)

        skipped = len(records) - len(admitted)
        if admitted:
            self._commit(sort_newest_first([*admitted, *self._expenses]))

        if self._audit_logger:
            self._audit_logger.log_import_completed(len(admitted), skipped)

        return ImportResult(
            success=True,
            admitted_count=len(admitted),
            skipped_count=skipped,
            message=f"Successfully imported {len(admitted)} new expenses.",
        )

    def import_json(self, text: str) -> ImportResult:
        """
        Parse raw text (a JSON array of expenses) and merge it.

        Raises:
            ImportFormatError: On parse failure or a non-array payload
        """
        try:
            payload = json.loads(text)
        except (TypeError, ValueError) as e:
            raise ImportFormatError(
                "Failed to parse data. Make sure the code is correct."
            ) from e

        if not isinstance(payload, list):
            raise ImportFormatError("Invalid data format.")

        return self.import_merge(payload)
