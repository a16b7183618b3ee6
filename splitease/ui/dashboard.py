"""
dashboard.py - Streamlit UI entrypoint and orchestration

This module wires the UI components (splitease.ui.components) with the
application logic (splitease.tracker). main() builds the sidebar menu and
routes actions to components and tracker methods.

Design notes:
 - Keep the dashboard responsible only for UI orchestration and presentation.
 - All persistence and balance rules live in splitease.tracker and below.
 - Components return lightweight data objects (ExpenseInput, SettlementInput).
"""

import datetime

import streamlit as st

from splitease.errors import LedgerError
from splitease.models import GROUP_TYPES
from splitease.money import is_settled
from splitease.simplify import available_strategies
from splitease.tracker import LedgerTracker
from splitease.ui import components


def _people_names(tracker: LedgerTracker):
    return {f.friend_email: f.friend_name for f in tracker.list_friends()}


def _show_dashboard(tracker: LedgerTracker, symbol: str):
    summary = tracker.balances()
    components.display_balances(summary, symbol=symbol, names=_people_names(tracker))

    strategy = st.sidebar.selectbox("Payment plan strategy", options=available_strategies(),
                                    index=available_strategies().index(tracker.strategy))
    components.display_payment_plan(tracker.simplified_payments(strategy=strategy), symbol=symbol)
    with st.expander("Payoff plan for everyone"):
        components.display_payment_plan(tracker.payoff_plan(strategy=strategy), title="Everyone's payoff plan",
                                        symbol=symbol)

    nxt = tracker.who_should_pay_next()
    if nxt:
        st.info(f"Next up to pay: {nxt}")

    search = st.text_input("Search expenses")
    components.display_expense_list(tracker.list_expenses(search=search)[:20], title="Recent Expenses")


def _show_groups(tracker: LedgerTracker, symbol: str):
    st.header("Groups")
    with st.expander("Create group"):
        with st.form(key="group_form"):
            name = st.text_input("Group name")
            description = st.text_input("Description (optional)")
            group_type = st.selectbox("Type", options=GROUP_TYPES, index=len(GROUP_TYPES) - 1)
            members = st.text_input("Members (comma-separated emails)")
            simplify = st.checkbox("Simplify debts", value=True)
            if st.form_submit_button("Create Group"):
                try:
                    tracker.create_group(name, members=[m.strip() for m in members.split(",")],
                                         description=description, type=group_type,
                                         simplify_debts=simplify)
                except LedgerError as exc:
                    st.error(str(exc))
                else:
                    st.success("Group created successfully!")
                    components.trigger_rerun()

    groups = tracker.list_groups()
    if not groups:
        st.write("No groups yet.")
        return
    labels = {f"{g.name} ({len(g.members)} members)": g for g in groups}
    group = labels[st.selectbox("Group", options=list(labels.keys()))]
    if group.description:
        st.caption(group.description)
    st.write("Members: " + ", ".join(group.members))

    summary = tracker.balances(group_id=group.id)
    components.display_balances(summary, symbol=symbol)
    if group.simplify_debts:
        components.display_payment_plan(tracker.payoff_plan(group_id=group.id), title="Group payoff plan",
                                        symbol=symbol)
    components.display_expense_list(tracker.list_expenses(group_id=group.id), title="Group Expenses")

    if st.button("Delete group"):
        tracker.delete_group(group.id)
        st.success("Group deleted successfully!")
        components.trigger_rerun()


def _show_friends(tracker: LedgerTracker, symbol: str):
    st.header("Friends")
    with st.form(key="friend_form"):
        email = st.text_input("Friend email")
        name = st.text_input("Name (optional)")
        if st.form_submit_button("Add Friend"):
            try:
                tracker.add_friend(email, name)
            except LedgerError as exc:
                st.error(str(exc))
            else:
                st.success("Friend added successfully!")

    summary = tracker.balances()
    friends = tracker.list_friends()
    if not friends:
        st.write("Add friends to track balances")
        return
    for f in friends:
        col1, col2 = st.columns([4, 1])
        bal = summary.net.get(f.friend_email, 0.0)
        status = "settled up" if is_settled(bal) else (f"owes you {symbol}{bal:.2f}" if bal > 0
                                               else f"you owe {symbol}{-bal:.2f}")
        col1.write(f"**{f.friend_name}** ({f.friend_email}): {status}")
        if col2.button("Remove", key=f"remove_friend_{f.id}"):
            tracker.remove_friend(f.id)
            components.trigger_rerun()


def _show_settings(tracker: LedgerTracker):
    st.header("Settings")
    user = tracker.user
    with st.form(key="profile_form"):
        full_name = st.text_input("Full name", value=user.get("full_name", ""))
        currencies = list(components.CURRENCY_SYMBOLS.keys())
        cur = user.get("default_currency", "USD")
        default_currency = st.selectbox("Default currency", options=currencies,
                                        index=currencies.index(cur) if cur in currencies else 0)
        upi_id = st.text_input("UPI ID (optional)", value=user.get("upi_id", ""))
        if st.form_submit_button("Save profile"):
            tracker.update_profile(full_name=full_name, default_currency=default_currency, upi_id=upi_id.strip())
            st.success("Profile updated.")
    st.caption(f"Signed in as {user.get('email', '')}. "
               "The email identifies you in every record and cannot be changed.")
    link = tracker.upi_link()
    if link:
        st.markdown(f"Your UPI payment link: [{link}]({link})")

    st.subheader("Export")
    today = datetime.date.today().isoformat()
    st.download_button("Export CSV", data=tracker.export_csv(), file_name=f"splitease_complete_{today}.csv",
                       mime="text/csv")
    st.download_button("Backup JSON", data=tracker.export_json(), file_name=f"splitease_backup_{today}.json",
                       mime="application/json")

    st.subheader("Import")
    uploaded = st.file_uploader("Restore from JSON backup", type=["json"])
    if uploaded is not None and st.button("Import data"):
        try:
            tracker.import_json(uploaded.getvalue().decode("utf-8"))
        except LedgerError as exc:
            st.error(str(exc))
        else:
            st.success("Data imported successfully!")

    st.subheader("Danger zone")
    if st.button("Confirm Clear All Data"):
        tracker.clear()
        st.success("All data cleared.")


def main():
    """
    Streamlit page: sidebar menu controls which view is shown.
    Views: Dashboard, Add Expense, Settle Up, Groups, Friends, History,
    Analytics, Edit Expense, Settings.
    """
    st.title("SplitEase")
    tracker = LedgerTracker()
    backend_name, backend_msg = tracker.store.storage_status()
    if backend_name == "google_sheets":
        st.sidebar.success(backend_msg)
    else:
        st.sidebar.warning(backend_msg)
        st.sidebar.caption(
            "For durable cloud persistence, set GOOGLE_SHEET_ID and "
            "GOOGLE_SERVICE_ACCOUNT_JSON in Streamlit app Secrets."
        )
    symbol = components.currency_symbol(tracker.user.get("default_currency", "USD"))

    menu = [
        "Dashboard",
        "Add Expense",
        "Settle Up",
        "Groups",
        "Friends",
        "History",
        "Analytics",
        "Edit Expense",
        "Settings",
    ]
    choice = st.sidebar.selectbox("Select an option", menu)

    if choice == "Dashboard":
        _show_dashboard(tracker, symbol)

    elif choice == "Add Expense":
        def on_submit(exp_input: components.ExpenseInput):
            try:
                tracker.add_expense(
                    description=exp_input.description,
                    amount=exp_input.amount,
                    splits=exp_input.splits,
                    split_method=exp_input.split_method,
                    payer=exp_input.payer,
                    currency=exp_input.currency,
                    date=exp_input.date,
                    category=exp_input.category,
                    group_id=exp_input.group_id,
                    payment_method=exp_input.payment_method,
                    due_date=exp_input.due_date,
                    tags=exp_input.tags,
                )
            except LedgerError as exc:
                st.error(str(exc))
            else:
                st.success("Expense added successfully!")

        groups = [(g.id, g.name) for g in tracker.list_groups()]
        components.display_expense_form(on_submit, tracker.known_people(), tracker.me, groups,
                                        default_currency=tracker.user.get("default_currency", "USD"))

    elif choice == "Settle Up":
        def on_settle(s: components.SettlementInput):
            try:
                tracker.record_settlement(s.counterparty, s.amount, direction=s.direction, note=s.note)
            except LedgerError as exc:
                st.error(str(exc))
            else:
                st.success("Settlement recorded successfully!")

        components.display_settle_form(on_settle, tracker.balances(), tracker.known_people(), symbol=symbol,
                                       payment_link=tracker.upi_link)

    elif choice == "Groups":
        _show_groups(tracker, symbol)

    elif choice == "Friends":
        _show_friends(tracker, symbol)

    elif choice == "History":
        st.header("History")
        kind = st.radio("Show", options=["all", "expenses", "settlements"], horizontal=True)
        components.display_history(tracker.history(kind), symbol=symbol)

        settlements = tracker.list_settlements()
        if settlements:
            with st.expander("Delete a settlement"):
                options = {f"{s.date} {s.from_user} → {s.to_user} {symbol}{s.amount:.2f}": s.id for s in settlements}
                label = st.selectbox("Settlement", options=list(options.keys()))
                if st.button("Delete settlement"):
                    tracker.delete_settlement(options[label])
                    st.success("Settlement deleted.")
                    components.trigger_rerun()

    elif choice == "Analytics":
        st.header("Analytics")
        st.metric("Total spent", f"{symbol}{tracker.total_spent():.2f}")
        components.display_category_totals(tracker.totals_by_category(), symbol=symbol)
        components.display_monthly_totals(tracker.monthly_totals(6))

    elif choice == "Edit Expense":
        components.display_manage_expenses(tracker)

    elif choice == "Settings":
        _show_settings(tracker)


if __name__ == "__main__":
    main()
