"""
Tests for DraftFlow and CoSpendController.

The analyzer is replaced by a fake with the same async interface, so
receipt scanning runs without a network.
"""

import asyncio
import itertools
from datetime import date
from decimal import Decimal

import pytest

from conftest import FailingWriteStorage, make_expense
from cospend.models.audit import AuditEventType
from cospend.models.expense import Category, ExpenseDraft, PartyID
from cospend.orchestrator import (
    ANALYSIS_FAILED_MESSAGE,
    AnalysisInProgressError,
    CoSpendController,
    DraftFlow,
    DraftSource,
    DraftState,
    DraftValidationError,
    ExpenseIdFactory,
    InvalidTransitionError,
    create_app_components,
)
from cospend.services.analysis import AnalysisServiceError, InvalidImageError
from cospend.services.storage import StorageError
from cospend.store import ExpenseStore, SettingsStore
from cospend.validation import DraftValidator


TODAY = date.today()
RECEIPT = b"\xff\xd8\xff\xe0fake-jpeg"


class FakeAnalyzer:
    """Stands in for GeminiReceiptAnalyzer."""

    def __init__(self, result=None, error=None, during=None):
        self.result = result
        self.error = error
        self.during = during
        self.calls = []

    async def analyze_receipt(self, data_uri):
        self.calls.append(data_uri)
        if self.during:
            await self.during()
        if self.error:
            raise self.error
        return self.result


def counting_clock(start=1000):
    return itertools.count(start).__next__


@pytest.fixture
def expense_store(storage, audit_logger):
    return ExpenseStore(storage, audit_logger=audit_logger)


@pytest.fixture
def flow(expense_store, runtime_settings, audit_logger):
    clock = counting_clock()
    return DraftFlow(
        expense_store,
        validator=DraftValidator(runtime_settings),
        id_factory=ExpenseIdFactory(clock),
        clock=clock,
        audit_logger=audit_logger,
    )


def make_controller(storage, expense_store, flow, audit_logger, analyzer=None):
    return CoSpendController(
        expense_store=expense_store,
        settings_store=SettingsStore(storage, audit_logger=audit_logger),
        draft_flow=flow,
        analyzer=analyzer,
        audit_logger=audit_logger,
    )


class TestExpenseIdFactory:

    def test_ids_follow_clock(self):
        factory = ExpenseIdFactory(counting_clock(10))
        assert [factory.next_id() for _ in range(3)] == ["10", "11", "12"]

    def test_same_millisecond_gets_distinct_ids(self):
        factory = ExpenseIdFactory(lambda: 5)
        assert [factory.next_id() for _ in range(3)] == ["5", "6", "7"]

    def test_clock_stepping_back_never_reuses(self):
        ticks = iter([100, 50, 50])
        factory = ExpenseIdFactory(lambda: next(ticks))
        assert [factory.next_id() for _ in range(3)] == ["100", "101", "102"]

    def test_skips_taken_ids(self):
        factory = ExpenseIdFactory(lambda: 7)
        assert factory.next_id(frozenset({"7", "8"})) == "9"


class TestDraftFlow:

    def test_starts_idle(self, flow):
        assert flow.state == DraftState.IDLE
        assert flow.draft is None

    def test_manual_add_defaults(self, flow):
        draft = flow.start_manual(today=date(2024, 1, 15))

        assert flow.state == DraftState.DRAFTING
        assert flow.source == DraftSource.MANUAL
        assert draft.date == date(2024, 1, 15)
        assert draft.item == ""
        assert draft.amount == Decimal("0")
        assert draft.category == Category.OTHER

    def test_save_promotes_draft(self, flow, expense_store):
        flow.start_manual(today=TODAY)
        flow.update(item="  Lunch  ", amount=Decimal("12.50"), category=Category.FOOD)

        expense = flow.save(PartyID.B)

        assert flow.state == DraftState.SAVED
        assert flow.draft is None
        assert flow.last_saved == expense
        assert expense.item == "Lunch"
        assert expense.payer == PartyID.B
        assert expense.id == "1000"
        assert expense.created_at == 1001
        assert expense_store.get("1000") == expense

    def test_save_rejected_keeps_draft_and_store(self, flow, expense_store, storage, audit_sink):
        flow.start_manual(today=TODAY)
        flow.update(item="Lunch")

        with pytest.raises(DraftValidationError) as exc_info:
            flow.save(PartyID.A)

        assert exc_info.value.result.has_errors
        assert flow.state == DraftState.DRAFTING
        assert flow.draft.item == "Lunch"
        assert len(expense_store) == 0
        assert storage.write_count == 0
        assert audit_sink.get_recent_events(1)[0].event_type == AuditEventType.SAVE_REJECTED

    def test_overlong_item_is_a_rejected_save(self, flow, expense_store):
        flow.start_manual(today=TODAY)
        flow.update(item="x" * 201, amount=Decimal("5"))

        with pytest.raises(DraftValidationError):
            flow.save(PartyID.A)

        assert flow.state == DraftState.DRAFTING
        assert len(expense_store) == 0

    def test_failed_write_then_retry_saves_once(self, runtime_settings):
        storage = FailingWriteStorage()
        store = ExpenseStore(storage)
        flow = DraftFlow(store, validator=DraftValidator(runtime_settings))
        flow.start_manual(today=TODAY)
        flow.update(item="Lunch", amount=Decimal("12"))

        with pytest.raises(StorageError):
            flow.save(PartyID.A)

        assert flow.state == DraftState.DRAFTING
        assert len(store) == 0

        flow.save(PartyID.A)

        assert [e.item for e in store.expenses] == ["Lunch"]
        assert len(ExpenseStore(storage)) == 1

    def test_cancel_discards_draft(self, flow, expense_store):
        flow.start_manual(today=TODAY)
        flow.update(item="Taxi", amount=Decimal("30"))

        flow.cancel()

        assert flow.state == DraftState.CANCELLED
        assert flow.draft is None
        assert len(expense_store) == 0

    def test_starting_again_replaces_open_draft(self, flow, audit_sink):
        flow.start_manual(today=TODAY)
        flow.update(item="First")

        draft = flow.start_from_analysis(ExpenseDraft(item="Scanned", amount=Decimal("9")))

        assert draft.item == "Scanned"
        assert flow.source == DraftSource.RECEIPT
        types = [e.event_type for e in audit_sink.get_recent_events(2)]
        assert types == [AuditEventType.DRAFT_STARTED, AuditEventType.DRAFT_REPLACED]

    def test_generation_moves_on_start_and_cancel(self, flow):
        assert flow.generation == 0
        flow.start_manual()
        flow.cancel()
        flow.start_manual()
        assert flow.generation == 3

    @pytest.mark.parametrize("operation", ["save", "cancel", "update", "validate"])
    def test_operations_need_an_open_draft(self, flow, operation):
        calls = {
            "save": lambda: flow.save(PartyID.A),
            "cancel": flow.cancel,
            "update": lambda: flow.update(item="x"),
            "validate": flow.validate,
        }
        with pytest.raises(InvalidTransitionError):
            calls[operation]()

    def test_update_rejects_unknown_fields(self, flow):
        flow.start_manual()
        with pytest.raises(ValueError):
            flow.update(payer="A")

    def test_returned_draft_is_a_copy(self, flow):
        draft = flow.start_manual()
        draft.item = "changed outside"
        assert flow.draft.item == ""

    def test_ids_unique_across_saves(self, flow, expense_store):
        for label in ["a", "b", "c"]:
            flow.start_manual(today=TODAY)
            flow.update(item=label, amount=Decimal("1"))
            flow.save(PartyID.A)

        assert len(expense_store.ids) == 3


class TestControllerDrafting:

    def test_save_defaults_to_current_user(self, storage, expense_store, flow, audit_logger):
        controller = make_controller(storage, expense_store, flow, audit_logger)
        controller.update_settings(currentUserId="B")

        controller.manual_add(today=TODAY)
        controller.update_draft(item="Bread", amount=Decimal("3"))
        expense = controller.save_draft()

        assert expense.payer == PartyID.B
        assert controller.expenses == (expense,)

    def test_explicit_payer_wins(self, storage, expense_store, flow, audit_logger):
        controller = make_controller(storage, expense_store, flow, audit_logger)

        controller.manual_add(today=TODAY)
        controller.update_draft(item="Bread", amount=Decimal("3"))

        assert controller.save_draft(PartyID.B).payer == PartyID.B

    def test_monthly_summary_uses_store(self, storage, expense_store, flow, audit_logger):
        expense_store.add(make_expense("1", day="2024-01-10", amount="100", payer=PartyID.A))
        expense_store.add(make_expense("2", day="2024-01-11", amount="50", payer=PartyID.B))
        controller = make_controller(storage, expense_store, flow, audit_logger)

        summary = controller.monthly_summary(date(2024, 1, 20))

        assert summary.balance == Decimal("25")
        assert controller.display_name(summary.debtor) == "Partner"

    def test_import_failure_is_a_result(self, storage, expense_store, flow, audit_logger, audit_sink):
        controller = make_controller(storage, expense_store, flow, audit_logger)

        result = controller.import_data("definitely not json")

        assert result.success is False
        assert result.message == "Failed to parse data. Make sure the code is correct."
        assert audit_sink.get_recent_events(1)[0].event_type == AuditEventType.IMPORT_FAILED

    def test_export_import_between_controllers(self, storage, expense_store, flow, audit_logger):
        expense_store.add(make_expense("1"))
        controller = make_controller(storage, expense_store, flow, audit_logger)

        other_store = ExpenseStore(type(storage)())
        result = other_store.import_json(controller.export_data())

        assert result.admitted_count == 1
        assert other_store.expenses == controller.expenses

    def test_recent_activity(self, storage, expense_store, flow, audit_logger):
        controller = make_controller(storage, expense_store, flow, audit_logger)
        controller.manual_add()
        controller.cancel_draft()

        types = [e.event_type for e in controller.recent_activity(2)]
        assert types == [AuditEventType.DRAFT_CANCELLED, AuditEventType.DRAFT_STARTED]


class TestScanReceipt:

    def test_successful_scan_opens_draft(self, storage, expense_store, flow, audit_logger, audit_sink):
        analyzer = FakeAnalyzer(result=ExpenseDraft(item="Bakery", amount=Decimal("4.20")))
        controller = make_controller(storage, expense_store, flow, audit_logger, analyzer)

        draft, can_proceed, _ = asyncio.run(controller.scan_receipt(RECEIPT, "image/jpeg"))

        assert can_proceed is True
        assert draft.item == "Bakery"
        assert controller.draft_state == DraftState.DRAFTING
        assert controller.draft_source == DraftSource.RECEIPT
        assert controller.is_analyzing is False
        assert len(expense_store) == 0
        assert analyzer.calls[0].startswith("data:image/jpeg;base64,")
        types = {e.event_type for e in audit_sink.get_recent_events(5)}
        assert AuditEventType.ANALYSIS_COMPLETED in types

    @pytest.mark.parametrize("error", [
        AnalysisServiceError("quota exceeded"),
        InvalidImageError("Unsupported image type"),
    ])
    def test_failed_scan_returns_generic_message(self, storage, expense_store, flow, audit_logger, error):
        controller = make_controller(
            storage, expense_store, flow, audit_logger, FakeAnalyzer(error=error)
        )

        draft, can_proceed, message = asyncio.run(controller.scan_receipt(RECEIPT, "image/jpeg"))

        assert draft is None
        assert can_proceed is False
        assert message == ANALYSIS_FAILED_MESSAGE
        assert controller.is_analyzing is False
        assert controller.draft_state == DraftState.IDLE

    def test_unexpected_error_still_clears_busy_flag(self, storage, expense_store, flow, audit_logger):
        controller = make_controller(
            storage, expense_store, flow, audit_logger, FakeAnalyzer(error=RuntimeError("bug"))
        )

        with pytest.raises(RuntimeError):
            asyncio.run(controller.scan_receipt(RECEIPT, "image/jpeg"))
        assert controller.is_analyzing is False

    def test_second_scan_while_busy_is_refused(self, storage, expense_store, flow, audit_logger):
        refused = []
        analyzer = FakeAnalyzer(result=ExpenseDraft(item="Bakery", amount=Decimal("1")))
        controller = make_controller(storage, expense_store, flow, audit_logger, analyzer)

        async def try_again():
            assert controller.is_analyzing is True
            try:
                await controller.scan_receipt(RECEIPT, "image/jpeg")
            except AnalysisInProgressError as e:
                refused.append(e)

        analyzer.during = try_again
        _, can_proceed, _ = asyncio.run(controller.scan_receipt(RECEIPT, "image/jpeg"))

        assert len(refused) == 1
        assert can_proceed is True
        assert len(analyzer.calls) == 1

    def test_result_after_user_moved_on_is_discarded(self, storage, expense_store, flow, audit_logger, audit_sink):
        analyzer = FakeAnalyzer(result=ExpenseDraft(item="Late", amount=Decimal("8")))
        controller = make_controller(storage, expense_store, flow, audit_logger, analyzer)

        async def user_starts_manual_entry():
            controller.manual_add(today=TODAY)
            controller.update_draft(item="Typed by hand")

        analyzer.during = user_starts_manual_entry
        draft, can_proceed, _ = asyncio.run(controller.scan_receipt(RECEIPT, "image/jpeg"))

        assert draft is None
        assert can_proceed is False
        assert controller.draft.item == "Typed by hand"
        assert controller.draft_source == DraftSource.MANUAL
        assert audit_sink.get_recent_events(1)[0].event_type == AuditEventType.ANALYSIS_DISCARDED

    def test_without_analyzer(self, storage, expense_store, flow, audit_logger):
        controller = make_controller(storage, expense_store, flow, audit_logger)

        draft, can_proceed, message = asyncio.run(controller.scan_receipt(RECEIPT, "image/jpeg"))

        assert controller.can_analyze is False
        assert draft is None
        assert can_proceed is False
        assert "not configured" in message


class TestCreateAppComponents:

    def test_wires_controller_without_analyzer(self, storage):
        controller = create_app_components(storage=storage, use_analyzer=False)

        assert controller.can_analyze is False
        assert controller.draft_state == DraftState.IDLE
        assert controller.settings.user_a_name == "You"

    def test_uses_given_analyzer(self, storage):
        analyzer = FakeAnalyzer(result=ExpenseDraft(item="Bakery", amount=Decimal("1")))
        controller = create_app_components(storage=storage, analyzer=analyzer)

        assert controller.can_analyze is True
