"""
Main Orchestrator for CoSpend

This module ties together all the components and defines the
end-to-end flows for:
1. Drafting (manual add / receipt scan → edit → save or cancel)
2. Reading (grouped list, monthly balance)
3. Data exchange (import merge, export)

DESIGN DECISION: The orchestrator enforces the boundaries:
- Nothing reaches the store without an explicit save
- Only one draft and one receipt analysis at a time
- Every step is audited

CoSpendController is the single owner of application state. The UI holds
a reference to it and only reads immutable snapshots from it.
"""

import time
from datetime import date
from enum import Enum
from typing import Callable, Optional

from cospend.audit import AuditLogger, configure_logging, create_correlation_id
from cospend.config import get_settings
from cospend.models.expense import (
    AppSettings,
    BalanceSummary,
    Expense,
    ExpenseDraft,
    GroupedExpenses,
    ImportResult,
    PartyID,
    ValidationResult,
)
from cospend.models.audit import AuditEvent
from cospend.queries import BalanceAggregator
from cospend.services.analysis import (
    AnalysisError,
    GeminiReceiptAnalyzer,
    encode_data_uri,
)
from cospend.services.storage import (
    InMemoryAuditStorage,
    JsonFileStorage,
    KeyValueStorageInterface,
)
from cospend.store import (
    ExpenseStore,
    ImportFormatError,
    SettingsStore,
    sample_expenses,
)
from cospend.validation import DraftValidator


ANALYSIS_FAILED_MESSAGE = "Failed to process image. Please try again."


def epoch_millis() -> int:
    return time.time_ns() // 1_000_000


class DraftFlowError(Exception):
    """Base exception for draft flow errors."""
    pass


class InvalidTransitionError(DraftFlowError):
    """The requested operation is not allowed in the current state."""

    def __init__(self, operation: str, state: "DraftState"):
        self.operation = operation
        self.state = state
        super().__init__(f"Cannot {operation} while {state.value}")


class DraftValidationError(DraftFlowError):
    """Save rejected: the draft has validation errors."""

    def __init__(self, result: ValidationResult):
        self.result = result
        messages = [i.message for i in result.issues if i.severity == "error"]
        super().__init__("; ".join(messages) or "Draft is not valid")


class AnalysisInProgressError(DraftFlowError):
    """A receipt is already being analysed."""
    pass


class DraftState(str, Enum):
    IDLE = "idle"
    DRAFTING = "drafting"
    SAVED = "saved"
    CANCELLED = "cancelled"


class DraftSource(str, Enum):
    MANUAL = "manual"
    RECEIPT = "receipt"


class ExpenseIdFactory:
    """
    Hands out expense ids from a millisecond clock.

    Ids never go backwards, and skip any id already taken, so two saves in
    the same millisecond (or a clock step back) still get distinct ids.
    """

    def __init__(self, clock: Callable[[], int] = epoch_millis):
        self._clock = clock
        self._last = -1

    def next_id(self, taken: frozenset[str] = frozenset()) -> str:
        candidate = max(self._clock(), self._last + 1)
        while str(candidate) in taken:
            candidate += 1
        self._last = candidate
        return str(candidate)


class DraftFlow:
    """
    Staging area for one expense before it is saved.

    States: IDLE → DRAFTING → (SAVED | CANCELLED). SAVED and CANCELLED
    behave like IDLE for the next start.

    Starting a draft while one is open replaces it. The `generation`
    counter moves on every start and cancel, so a caller holding an older
    generation knows its result is stale.
    """

    def __init__(
        self,
        store: ExpenseStore,
        validator: Optional[DraftValidator] = None,
        id_factory: Optional[ExpenseIdFactory] = None,
        clock: Callable[[], int] = epoch_millis,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._store = store
        self._validator = validator or DraftValidator()
        self._id_factory = id_factory or ExpenseIdFactory(clock)
        self._clock = clock
        self._audit_logger = audit_logger

        self._state = DraftState.IDLE
        self._draft: Optional[ExpenseDraft] = None
        self._source: Optional[DraftSource] = None
        self._generation = 0
        self.last_saved: Optional[Expense] = None

    @property
    def state(self) -> DraftState:
        return self._state

    @property
    def draft(self) -> Optional[ExpenseDraft]:
        return self._draft.model_copy() if self._draft else None

    @property
    def source(self) -> Optional[DraftSource]:
        return self._source

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def is_drafting(self) -> bool:
        return self._state == DraftState.DRAFTING

    def _begin(self, draft: ExpenseDraft, source: DraftSource) -> ExpenseDraft:
        if self.is_drafting and self._audit_logger:
            self._audit_logger.log_draft_replaced(self._source.value, source.value)

        self._draft = draft
        self._source = source
        self._state = DraftState.DRAFTING
        self._generation += 1

        if self._audit_logger:
            self._audit_logger.log_draft_started(source.value)
        return self.draft

    def start_manual(self, today: Optional[date] = None) -> ExpenseDraft:
        """Open an empty draft dated today."""
        return self._begin(
            ExpenseDraft(date=today or date.today()),
            DraftSource.MANUAL,
        )

    def start_from_analysis(self, draft: ExpenseDraft) -> ExpenseDraft:
        """Open a draft pre-filled by receipt analysis."""
        return self._begin(draft.model_copy(), DraftSource.RECEIPT)

    def update(self, **changes) -> ExpenseDraft:
        """
        Edit fields of the open draft.

        Raises:
            InvalidTransitionError: If no draft is open
            pydantic.ValidationError: If a value has the wrong shape
        """
        if not self.is_drafting:
            raise InvalidTransitionError("edit a draft", self._state)
        unknown = set(changes) - set(ExpenseDraft.model_fields)
        if unknown:
            raise ValueError(f"Unknown draft fields: {', '.join(sorted(unknown))}")

        self._draft = ExpenseDraft.model_validate(
            {**self._draft.model_dump(), **changes}
        )
        return self.draft

    def validate(self) -> ValidationResult:
        if not self.is_drafting:
            raise InvalidTransitionError("validate a draft", self._state)
        return self._validator.validate(self._draft)

    def save(self, payer: PartyID) -> Expense:
        """
        Promote the draft to an Expense and add it to the store.

        CRITICAL: This is the ONLY path from a draft into the store.

        Raises:
            InvalidTransitionError: If no draft is open
            DraftValidationError: If the draft has errors (stays DRAFTING)
        """
        if not self.is_drafting:
            raise InvalidTransitionError("save", self._state)

        result = self._validator.validate(self._draft)
        if result.has_errors:
            if self._audit_logger:
                self._audit_logger.log_save_rejected([
                    {"field": i.field, "type": i.issue_type, "message": i.message}
                    for i in result.issues
                ])
            raise DraftValidationError(result)

        expense = Expense(
            id=self._id_factory.next_id(self._store.ids),
            date=self._draft.date,
            item=self._draft.item.strip(),
            amount=self._draft.amount,
            category=self._draft.category,
            payer=PartyID(payer),
            created_at=self._clock(),
        )
        self._store.add(expense)

        self._state = DraftState.SAVED
        self._draft = None
        self.last_saved = expense
        return expense

    def cancel(self) -> None:
        """
        Discard the open draft. The store is not touched.

        Raises:
            InvalidTransitionError: If no draft is open
        """
        if not self.is_drafting:
            raise InvalidTransitionError("cancel", self._state)

        if self._audit_logger:
            self._audit_logger.log_draft_cancelled(self._source.value)

        self._state = DraftState.CANCELLED
        self._draft = None
        self._generation += 1


class CoSpendController:
    """
    Owns the application state: stores, draft flow, analyzer, busy flag.

    Views read snapshots (tuples of frozen Expenses, copies of settings)
    and act only through the methods below.
    """

    def __init__(
        self,
        expense_store: ExpenseStore,
        settings_store: SettingsStore,
        draft_flow: DraftFlow,
        analyzer: Optional[GeminiReceiptAnalyzer] = None,
        aggregator: Optional[BalanceAggregator] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._expense_store = expense_store
        self._settings_store = settings_store
        self._draft_flow = draft_flow
        self._analyzer = analyzer
        self._aggregator = aggregator or BalanceAggregator()
        self._audit_logger = audit_logger
        self._is_analyzing = False

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    @property
    def expenses(self) -> tuple[Expense, ...]:
        return self._expense_store.expenses

    @property
    def settings(self) -> AppSettings:
        return self._settings_store.settings

    @property
    def draft(self) -> Optional[ExpenseDraft]:
        return self._draft_flow.draft

    @property
    def draft_state(self) -> DraftState:
        return self._draft_flow.state

    @property
    def draft_source(self) -> Optional[DraftSource]:
        return self._draft_flow.source

    @property
    def last_saved(self) -> Optional[Expense]:
        return self._draft_flow.last_saved

    @property
    def is_analyzing(self) -> bool:
        return self._is_analyzing

    @property
    def can_analyze(self) -> bool:
        """Receipt scanning needs a configured analyzer."""
        return self._analyzer is not None

    def display_name(self, party: PartyID) -> str:
        return self._settings_store.display_name(party)

    def grouped_expenses(self) -> GroupedExpenses:
        return self._expense_store.group_by_date()

    def monthly_summary(self, reference: Optional[date] = None) -> BalanceSummary:
        return self._aggregator.summarize(
            self._expense_store.expenses,
            reference or date.today(),
            PartyID.A,
            PartyID.B,
        )

    def recent_activity(self, limit: int = 20) -> list[AuditEvent]:
        if not self._audit_logger:
            return []
        return self._audit_logger.recent_events(limit)

    # ------------------------------------------------------------------
    # Drafting
    # ------------------------------------------------------------------

    def manual_add(self, today: Optional[date] = None) -> ExpenseDraft:
        return self._draft_flow.start_manual(today)

    def update_draft(self, **changes) -> ExpenseDraft:
        return self._draft_flow.update(**changes)

    def validate_draft(self) -> ValidationResult:
        return self._draft_flow.validate()

    def save_draft(self, payer: Optional[PartyID] = None) -> Expense:
        """Save the open draft; the payer defaults to the current user."""
        return self._draft_flow.save(payer or self._settings_store.current_user_id)

    def cancel_draft(self) -> None:
        self._draft_flow.cancel()

    async def scan_receipt(
        self,
        image_bytes: bytes,
        mime_type: str,
    ) -> tuple[Optional[ExpenseDraft], bool, str]:
        """
        Analyse a receipt photo and open a draft from the result.

        Returns:
            (draft, can_proceed, message)

        If can_proceed is False, no draft was opened and message says why.

        Raises:
            AnalysisInProgressError: If another scan is still outstanding
        """
        if self._is_analyzing:
            raise AnalysisInProgressError("A receipt is already being analysed")
        if self._analyzer is None:
            return None, False, "Receipt scanning is not configured (missing Gemini API key)."

        correlation_id = create_correlation_id()
        generation = self._draft_flow.generation
        self._is_analyzing = True

        if self._audit_logger:
            self._audit_logger.log_analysis_started(
                mime_type=mime_type,
                size_bytes=len(image_bytes),
                correlation_id=correlation_id,
            )

        try:
            draft = await self._analyzer.analyze_receipt(
                encode_data_uri(image_bytes, mime_type)
            )
        except AnalysisError as e:
            if self._audit_logger:
                self._audit_logger.log_analysis_failed(
                    error_type=type(e).__name__,
                    error_message=str(e),
                    correlation_id=correlation_id,
                )
            return None, False, ANALYSIS_FAILED_MESSAGE
        finally:
            self._is_analyzing = False

        if self._draft_flow.generation != generation:
            if self._audit_logger:
                self._audit_logger.log_analysis_discarded(correlation_id)
            return None, False, "The scan finished after you moved on, so it was discarded."

        if self._audit_logger:
            self._audit_logger.log_analysis_completed(
                fields_found=[
                    name for name, value in draft.model_dump().items() if value
                ],
                correlation_id=correlation_id,
            )

        opened = self._draft_flow.start_from_analysis(draft)
        return opened, True, "Receipt analysed. Please check the details before saving."

    # ------------------------------------------------------------------
    # Data exchange and preferences
    # ------------------------------------------------------------------

    def import_data(self, text: str) -> ImportResult:
        """
        Merge a pasted JSON export into the store.

        Bad payloads come back as an unsuccessful result; the store is
        left unchanged.
        """
        try:
            return self._expense_store.import_json(text)
        except ImportFormatError as e:
            if self._audit_logger:
                self._audit_logger.log_import_failed(str(e))
            return ImportResult(success=False, message=str(e))

    def export_data(self, indent: Optional[int] = None) -> str:
        return self._expense_store.export_json(indent=indent)

    def update_settings(self, **changes) -> AppSettings:
        return self._settings_store.update(**changes)


def create_app_components(
    storage: Optional[KeyValueStorageInterface] = None,
    analyzer: Optional[GeminiReceiptAnalyzer] = None,
    use_analyzer: bool = True,
) -> CoSpendController:
    """
    Factory function to create all application components.

    Args:
        storage: Key-value backend; defaults to JSON files in the
                 configured data directory
        analyzer: Receipt analyzer; built from Gemini settings if None
        use_analyzer: Set to False to run without receipt scanning

    Returns:
        The application controller
    """
    settings = get_settings()
    storage_settings = settings.storage
    app_settings = settings.app

    configure_logging(app_settings.log_level)
    audit_logger = AuditLogger(InMemoryAuditStorage())

    if storage is None:
        storage = JsonFileStorage(storage_settings.data_dir)

    default_factory = (
        (lambda: sample_expenses(now_ms=epoch_millis()))
        if storage_settings.seed_sample_data
        else None
    )
    expense_store = ExpenseStore(
        storage,
        audit_logger=audit_logger,
        default_factory=default_factory,
        strict_load=storage_settings.strict_load,
    )
    settings_store = SettingsStore(
        storage,
        audit_logger=audit_logger,
        strict_load=storage_settings.strict_load,
    )

    if analyzer is None and use_analyzer:
        try:
            analyzer = GeminiReceiptAnalyzer(app_settings=app_settings)
        except Exception as e:
            # Gemini not configured - manual entry still works
            audit_logger.log_error(
                error_type="analyzer_unavailable",
                error_message=str(e),
            )
            analyzer = None

    draft_flow = DraftFlow(
        expense_store,
        validator=DraftValidator(app_settings),
        audit_logger=audit_logger,
    )

    return CoSpendController(
        expense_store=expense_store,
        settings_store=settings_store,
        draft_flow=draft_flow,
        analyzer=analyzer,
        audit_logger=audit_logger,
    )
