"""
Streamlit Frontend for CoSpend

This is the page two people sharing expenses use day to day.

DESIGN PRINCIPLES:
1. Simple, clear interface
2. Explicit confirmation before anything is saved
3. Clear error messages in simple language
4. Visual feedback for all operations
5. No hidden actions

The UI enforces the human-in-the-loop principle:
- User sees what was extracted from the receipt
- User confirms or edits
- Nothing is saved without explicit "Save" action
"""

import asyncio
from datetime import date
from decimal import Decimal

import streamlit as st

from cospend.config import get_settings, validate_all_settings
from cospend.models.expense import MAX_ITEM_LENGTH, Category, PartyID
from cospend.orchestrator import (
    AnalysisInProgressError,
    CoSpendController,
    DraftSource,
    DraftState,
    DraftValidationError,
    create_app_components,
)
from cospend.services.storage import StorageError


CATEGORY_ICONS = {
    Category.FOOD: "🍜",
    Category.GROCERIES: "🛒",
    Category.TRANSPORT: "🚕",
    Category.SHOPPING: "🛍️",
    Category.ENTERTAINMENT: "🎬",
    Category.UTILITIES: "💡",
    Category.HOUSING: "🏠",
    Category.HEALTH: "💊",
    Category.TRAVEL: "✈️",
    Category.OTHER: "📦",
}


# Page configuration
st.set_page_config(
    page_title="CoSpend",
    page_icon="💸",
    layout="wide",
    initial_sidebar_state="expanded",
)

# Custom CSS for better UX
st.markdown("""
<style>
    .stButton>button {
        width: 100%;
        margin-top: 10px;
    }
    .balance-box {
        padding: 20px;
        background-color: #ede9fe;
        border-radius: 10px;
        border-left: 5px solid #7c3aed;
        margin: 10px 0;
    }
    .payer-a {
        color: #7c3aed;
        font-weight: bold;
    }
    .payer-b {
        color: #e11d48;
        font-weight: bold;
    }
    .big-number {
        font-size: 2.0em;
        font-weight: bold;
        color: #2c3e50;
    }
</style>
""", unsafe_allow_html=True)


def run_async(coro):
    """Helper to run async functions in Streamlit."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@st.cache_resource
def get_controller() -> CoSpendController:
    """Get or create the application controller (cached)."""
    return create_app_components()


def money(amount: Decimal) -> str:
    symbol = get_settings().app.currency_symbol
    return f"{symbol}{amount:,.2f}"


def main():
    """Main application entry point."""
    try:
        controller = get_controller()
    except Exception as e:
        st.error(f"Failed to load your data: {e}")
        st.stop()

    st.sidebar.title("💸 CoSpend")
    st.sidebar.markdown("---")

    page = st.sidebar.radio(
        "Navigate to:",
        ["🏠 Expenses", "⚙️ Settings"],
        index=0,
    )

    st.sidebar.markdown("---")
    st.sidebar.markdown(
        """
        **How to use:**
        1. Scan a receipt or add an expense by hand
        2. Check the details and who paid
        3. Save

        Every expense is split 50/50.
        """
    )

    if page == "🏠 Expenses":
        render_expenses_page(controller)
    else:
        render_settings_page(controller)


def render_summary(controller: CoSpendController):
    """Monthly totals and who owes whom."""
    summary = controller.monthly_summary()
    name_a = controller.display_name(PartyID.A)
    name_b = controller.display_name(PartyID.B)

    st.subheader(date(summary.year, summary.month, 1).strftime("%B %Y"))

    col1, col2, col3 = st.columns(3)
    col1.metric("Total", money(summary.total))
    col2.metric(f"{name_a} paid", money(summary.party_a_total))
    col3.metric(f"{name_b} paid", money(summary.party_b_total))

    if summary.is_settled:
        verdict = "You're all square 🎉"
    else:
        debtor = controller.display_name(summary.debtor)
        creditor = controller.display_name(summary.creditor)
        verdict = f"{debtor} owes {creditor} {money(summary.settlement_amount)}"

    st.markdown(f"""
    <div class="balance-box">
        <div class="big-number">{verdict}</div>
    </div>
    """, unsafe_allow_html=True)


def render_actions(controller: CoSpendController):
    """Scan receipt / manual add."""
    col1, col2 = st.columns(2)

    with col1:
        uploaded_file = st.file_uploader(
            "Scan Receipt",
            type=get_settings().app.supported_formats_list,
            disabled=not controller.can_analyze or controller.is_analyzing,
            help="Take a clear photo of the receipt",
        )
        if uploaded_file and st.button("📷 Analyze Receipt", type="primary"):
            with st.spinner("Analyzing Receipt..."):
                try:
                    _, can_proceed, message = run_async(
                        controller.scan_receipt(
                            image_bytes=uploaded_file.getvalue(),
                            mime_type=uploaded_file.type,
                        )
                    )
                except AnalysisInProgressError as e:
                    st.error(str(e))
                    return
            if can_proceed:
                st.rerun()
            st.error(message)

    with col2:
        st.markdown("&nbsp;", unsafe_allow_html=True)
        if st.button("➕ Manual Add"):
            controller.manual_add()
            st.rerun()


def render_draft_form(controller: CoSpendController):
    """Edit and confirm the open draft."""
    draft = controller.draft
    settings = controller.settings

    st.markdown("---")
    title = (
        "📋 Review Scanned Receipt"
        if controller.draft_source == DraftSource.RECEIPT
        else "➕ New Expense"
    )
    st.subheader(title)

    with st.form("draft_form"):
        col1, col2 = st.columns(2)
        with col1:
            item = st.text_input("Item *", value=draft.item, max_chars=MAX_ITEM_LENGTH)
            amount = st.number_input(
                "Amount *",
                value=float(draft.amount) if draft.amount and draft.amount.is_finite() else 0.0,
                min_value=0.0,
                step=0.01,
                format="%.2f",
            )
            category = st.selectbox(
                "Category",
                options=list(Category),
                index=list(Category).index(draft.category),
                format_func=lambda c: f"{CATEGORY_ICONS[c]} {c.value}",
            )
        with col2:
            expense_date = st.date_input("Date", value=draft.date)
            payer = st.radio(
                "Paid by",
                options=[PartyID.A, PartyID.B],
                index=[PartyID.A, PartyID.B].index(settings.current_user_id),
                format_func=settings.name_for,
                horizontal=True,
            )

        col_save, col_cancel = st.columns(2)
        save_clicked = col_save.form_submit_button("✅ Save", type="primary")
        cancel_clicked = col_cancel.form_submit_button("❌ Cancel")

    if cancel_clicked:
        controller.cancel_draft()
        st.rerun()

    if save_clicked:
        try:
            controller.update_draft(
                item=item,
                amount=Decimal(str(amount)),
                category=category,
                date=expense_date,
            )
            expense = controller.save_draft(payer=payer)
        except DraftValidationError as e:
            for issue in e.result.issues:
                if issue.severity == "error":
                    st.error(issue.message)
            return
        except (ValueError, StorageError) as e:
            st.error(f"Could not save the expense: {e}")
            return
        # Shown after the rerun, see show_flash()
        st.session_state.flash = f"Saved {expense.item} ({money(expense.amount)})"
        st.rerun()

    warnings = controller.validate_draft().warnings
    for warning in warnings:
        st.warning(warning)


def render_expense_list(controller: CoSpendController):
    """Expenses grouped by day, newest first."""
    grouped = controller.grouped_expenses()

    if not grouped.dates:
        st.info(
            "💸 No expenses yet. Start tracking your shared expenses by "
            "scanning a receipt or adding one manually."
        )
        return

    for day, expenses in grouped.items():
        st.markdown(f"#### {day:%a, %B} {day.day}")
        for expense in expenses:
            css = "payer-a" if expense.payer == PartyID.A else "payer-b"
            col1, col2, col3 = st.columns([1, 6, 3])
            col1.markdown(f"## {CATEGORY_ICONS[expense.category]}")
            col2.markdown(f"**{expense.item}**  \n{expense.category.value}")
            col3.markdown(
                f"**{money(expense.amount)}**  \n"
                f"<span class='{css}'>{controller.display_name(expense.payer)}</span>",
                unsafe_allow_html=True,
            )


def show_flash():
    """Show (once) a message queued before the last st.rerun()."""
    message = st.session_state.pop("flash", None)
    if message:
        st.success(message)


def render_expenses_page(controller: CoSpendController):
    st.title("🏠 Shared Expenses")
    show_flash()
    render_summary(controller)
    render_actions(controller)

    if controller.draft_state == DraftState.DRAFTING:
        render_draft_form(controller)

    st.markdown("---")
    render_expense_list(controller)


def render_settings_page(controller: CoSpendController):
    """Names, current user, import/export, status."""
    st.title("⚙️ Settings")
    settings = controller.settings

    st.markdown("### People")
    with st.form("settings_form"):
        user_a = st.text_input("Person A", value=settings.user_a_name)
        user_b = st.text_input("Person B", value=settings.user_b_name)
        current = st.radio(
            "Who is using this device?",
            options=[PartyID.A, PartyID.B],
            index=[PartyID.A, PartyID.B].index(settings.current_user_id),
            format_func=lambda p: "Person A" if p == PartyID.A else "Person B",
            horizontal=True,
        )
        if st.form_submit_button("Save Settings", type="primary"):
            try:
                controller.update_settings(
                    user_a_name=user_a,
                    user_b_name=user_b,
                    current_user_id=current,
                )
                st.success("Settings saved")
            except (ValueError, StorageError) as e:
                st.error(f"Could not save settings: {e}")

    st.markdown("---")
    st.markdown("### Sync Data")
    st.markdown("Copy this code to the other device, then paste it under *Import*.")
    st.code(controller.export_data(), language="json")

    import_text = st.text_area("Import", placeholder="Paste exported data here...")
    if st.button("📥 Import") and import_text:
        try:
            result = controller.import_data(import_text)
        except StorageError as e:
            st.error(f"Could not save the imported data: {e}")
        else:
            if result.success:
                st.success(result.message)
            else:
                st.error(result.message)

    st.markdown("---")
    st.markdown("### Connection Status")
    status = validate_all_settings()
    if status.get("gemini", False):
        st.success("✅ Gemini (Receipt Scanning) - Configured")
    else:
        st.error(f"❌ Gemini (Receipt Scanning) - {status.get('gemini_error', 'Not configured')}")

    with st.expander("🕑 Recent Activity"):
        for event in controller.recent_activity(limit=20):
            st.markdown(
                f"`{event.timestamp:%Y-%m-%d %H:%M}` {event.description}"
            )


if __name__ == "__main__":
    main()
