"""
components.py - reusable Streamlit components / forms / displays

This module contains pure-UI helpers used by the dashboard:
 - display_expense_form(on_submit, people, me, groups, default_currency)
 - display_settle_form(on_submit, summary, people, symbol, payment_link)
 - display_expense_list / balances / payment plan / history
 - display_category_totals / display_monthly_totals (Altair charts)
 - display_manage_expenses(tracker) for edit / delete

The expense form enforces the same rules as the tracker before submitting:
 - description and amount > 0 are required
 - the current user is always a participant
 - for exact and percentage splits, amounts must add up to the total (0.01 tolerance)
Every LedgerError raised by the tracker is shown with st.error.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple
from io import BytesIO
import datetime

import altair as alt
import pandas as pd
import streamlit as st

from splitease.errors import LedgerError
from splitease.models import (
    CATEGORIES,
    CATEGORY_LABELS,
    PAYMENT_METHODS,
    SPLIT_EQUAL,
    SPLIT_EXACT,
    SPLIT_METHODS,
    SPLIT_PERCENTAGE,
    SPLIT_SHARES,
    BalanceSummary,
    Expense,
    PaymentInstruction,
)
from splitease.money import amounts_match
from splitease.splits import compute_split

CURRENCY_SYMBOLS = {
    "USD": "$", "EUR": "€", "GBP": "£", "JPY": "¥", "CAD": "C$", "AUD": "A$",
    "CHF": "CHF", "CNY": "¥", "INR": "₹", "MXN": "MX$", "BRL": "R$", "ZAR": "R",
    "SGD": "S$", "NZD": "NZ$", "KRW": "₩", "SEK": "kr", "NOK": "kr", "DKK": "kr",
    "PLN": "zł", "THB": "฿", "IDR": "Rp",
}

PALETTE = [
    "#1f77b4", "#ff7f0e", "#2ca02c", "#d62728", "#9467bd",
    "#8c564b", "#e377c2", "#7f7f7f", "#bcbd22", "#17becf"
]


def currency_symbol(code: str) -> str:
    return CURRENCY_SYMBOLS.get((code or "").upper(), "$")


def trigger_rerun():
    """Trigger a Streamlit rerun in a way compatible with multiple Streamlit versions."""
    if hasattr(st, "rerun"):
        st.rerun()
    elif hasattr(st, "experimental_rerun"):
        st.experimental_rerun()


@dataclass
class ExpenseInput:
    """Lightweight container passed to the on_submit callback."""
    description: str
    amount: float
    currency: str
    date: str  # ISO date string
    category: str
    payer: str
    split_method: str
    splits: List[Dict[str, Any]]
    group_id: Optional[str] = None
    payment_method: str = "cash"
    due_date: str = ""
    tags: List[str] = field(default_factory=list)


@dataclass
class SettlementInput:
    counterparty: str
    amount: float
    direction: str
    note: str = ""


def _parse_people(text: str) -> List[str]:
    return [p.strip() for p in (text or "").replace(";", ",").split(",") if p.strip()]


def display_expense_form(on_submit: Callable[[ExpenseInput], None],
                         people: List[str],
                         me: str,
                         groups: List[Tuple[str, str]],
                         default_currency: str = "USD"):
    """
    Display the 'Add Expense' form.

    Parameters:
      - on_submit: callback invoked with ExpenseInput when the form validates
      - people: known people to pick participants from (friends, group members)
      - me: current user's email, always included in the split
      - groups: (group_id, name) pairs for the optional group selector
    """
    st.header("Add Expense")
    # outside the form: the per-person inputs below depend on these
    others = st.multiselect("Split with", options=[p for p in people if p != me])
    extra = st.text_input("Other people (comma-separated emails)")
    participants = [me] + [p for p in others + _parse_people(extra) if p != me]
    # dedupe while keeping order
    participants = list(dict.fromkeys(participants))
    payer = st.selectbox("Paid by", options=participants)
    split_method = st.radio("Split method", options=list(SPLIT_METHODS), horizontal=True)

    with st.form(key="expense_form"):
        description = st.text_input("Description")
        amount = st.number_input("Amount", min_value=0.0, format="%.2f")
        currencies = list(CURRENCY_SYMBOLS.keys())
        cur_idx = currencies.index(default_currency) if default_currency in currencies else 0
        currency = st.selectbox("Currency", options=currencies, index=cur_idx)
        date_val = st.date_input("Date", value=datetime.date.today())
        category = st.selectbox("Category", options=CATEGORIES, format_func=lambda c: CATEGORY_LABELS.get(c, c))
        group_labels = {"(no group)": None}
        group_labels.update({name: gid for gid, name in groups})
        group_sel = st.selectbox("Group", options=list(group_labels.keys()))

        entries: List[Dict[str, Any]] = []
        if split_method == SPLIT_EXACT:
            st.write("Enter the amount each person owes (must sum to total amount):")
            for p in participants:
                entries.append({"email": p, "amount": st.number_input(f"Amount for {p}", min_value=0.0,
                                                                       format="%.2f", key=f"exact_{p}")})
        elif split_method == SPLIT_PERCENTAGE:
            st.write("Enter percentages (must sum to 100):")
            for p in participants:
                default_pct = 100.0 if p == me and len(participants) == 1 else 0.0
                entries.append({"email": p, "percentage": st.number_input(f"% for {p}", min_value=0.0,
                                                                           max_value=100.0, value=default_pct,
                                                                           key=f"pct_{p}")})
        elif split_method == SPLIT_SHARES:
            for p in participants:
                entries.append({"email": p, "shares": int(st.number_input(f"Shares for {p}", min_value=0,
                                                                           value=1, step=1, key=f"shares_{p}"))})
        else:
            entries = [{"email": p} for p in participants]
            st.caption(f"Split equally between {len(participants)} "
                       f"{'person' if len(participants) == 1 else 'people'}.")

        payment_method = st.selectbox("Payment method", options=PAYMENT_METHODS)
        due_date = st.date_input("Due date (optional)", value=None)
        tags = st.text_input("Tags (comma-separated, optional)")

        submit_button = st.form_submit_button("Add Expense")

        if submit_button:
            if not description.strip():
                st.error("Description is required.")
                return
            if amount <= 0:
                st.error("Amount must be greater than 0.")
                return
            try:
                preview = compute_split(amount, split_method, entries)
            except LedgerError as exc:
                st.error(str(exc))
                return
            total_split = round(sum(s.amount for s in preview), 2)
            if not amounts_match(total_split, round(amount, 2)):
                st.error(f"Split amounts sum to {total_split:.2f} but amount is {amount:.2f}. Adjust the split.")
                return

            on_submit(ExpenseInput(
                description=description.strip(),
                amount=round(amount, 2),
                currency=currency,
                date=date_val.isoformat(),
                category=category,
                payer=payer,
                split_method=split_method,
                splits=entries,
                group_id=group_labels[group_sel],
                payment_method=payment_method,
                due_date=due_date.isoformat() if due_date else "",
                tags=_parse_people(tags),
            ))


def display_settle_form(on_submit: Callable[[SettlementInput], None], summary: BalanceSummary,
                        people: List[str], symbol: str = "$",
                        payment_link: Optional[Callable[[float, str], Optional[str]]] = None):
    """
    Record a payment between the current user and someone else.
    payment_link(amount, note) may return a upi:// link that is shown when the person owes the user.
    """
    st.header("Settle Up")
    candidates = list(summary.net.keys()) + [p for p in people if p not in summary.net]
    if not candidates:
        st.info("No one to settle with yet.")
        return
    person = st.selectbox("Person", options=candidates)
    balance = summary.net.get(person, 0.0)
    if balance > 0:
        st.caption(f"{person} owes you {symbol}{balance:.2f}")
        link = payment_link(balance, f"SplitEase settle up with {person}") if payment_link else None
        if link:
            st.markdown(f"Send {person} this UPI payment link: [{link}]({link})")
    elif balance < 0:
        st.caption(f"You owe {person} {symbol}{-balance:.2f}")
    else:
        st.caption("All settled up.")

    with st.form(key="settle_form"):
        direction = st.radio("Direction", options=["you_pay", "they_pay"],
                             format_func=lambda d: "I paid them" if d == "you_pay" else "They paid me",
                             index=0 if balance <= 0 else 1)
        amount = st.number_input("Amount", min_value=0.0, value=round(abs(balance), 2), format="%.2f")
        note = st.text_input("Note (optional)")
        if st.form_submit_button("Record Payment"):
            if amount <= 0:
                st.error("Amount must be greater than 0.")
                return
            on_submit(SettlementInput(counterparty=person, amount=round(amount, 2), direction=direction, note=note))


def display_expense_list(expenses: List[Expense], title: str = "Expenses"):
    """
    Render expenses as an interactive table and provide an XLSX export button.

    The exported spreadsheet contains columns:
      date, description, category, amount, currency, paid_by, split_method, split_with
    """
    st.header(title)
    if not expenses:
        st.write("No expenses recorded.")
        return

    rows = []
    for e in expenses:
        rows.append({
            "date": e.date,
            "description": e.description,
            "category": e.category,
            "amount": float(e.amount),
            "currency": e.currency,
            "paid_by": e.payer or "",
            "split_method": e.split_method,
            "split_with": ", ".join(f"{s.person} ({s.amount:.2f})" for s in e.splits),
        })
    df = pd.DataFrame(rows, columns=["date", "description", "category", "amount", "currency",
                                     "paid_by", "split_method", "split_with"])
    st.dataframe(df.style.format({"amount": "{:.2f}"}), use_container_width=True)

    totals = df.groupby("currency")["amount"].sum().reset_index()
    st.markdown("**Totals by currency**")
    for _, r in totals.iterrows():
        st.write(f"- {r['currency']}: {r['amount']:.2f}")

    buffer = BytesIO()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        df.to_excel(writer, index=False, sheet_name="expenses")
        totals.to_excel(writer, index=False, sheet_name="totals_by_currency")
    buffer.seek(0)
    st.download_button(
        label="Download as XLSX",
        data=buffer.getvalue(),
        file_name="splitease_expenses.xlsx",
        mime="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    )


def display_balances(summary: BalanceSummary, symbol: str = "$", names: Optional[Dict[str, str]] = None):
    """Show the user's total balance plus the 'You Owe' and 'Owed to You' columns."""
    names = names or {}
    net = summary.net_total
    st.metric("Total Balance", f"{symbol}{abs(net):.2f}", "you are owed" if net >= 0 else "you owe",
              delta_color="normal" if net >= 0 else "inverse")
    col1, col2 = st.columns(2)
    with col1:
        st.subheader("You Owe")
        if not summary.owe_them:
            st.write("No balances yet")
        # largest first
        for person, amt in sorted(summary.owe_them.items(), key=lambda x: x[1], reverse=True):
            st.write(f"{names.get(person, person)}: {symbol}{amt:.2f}")
    with col2:
        st.subheader("Owed to You")
        if not summary.owed_by_them:
            st.write("No balances yet")
        for person, amt in sorted(summary.owed_by_them.items(), key=lambda x: x[1], reverse=True):
            st.write(f"{names.get(person, person)}: {symbol}{amt:.2f}")


def display_payment_plan(instructions: List[PaymentInstruction], title: str = "Simplified Payments",
                         symbol: str = "$"):
    st.subheader(title)
    if not instructions:
        st.write("Nothing to settle.")
        return
    st.caption("Minimize transactions with these simplified payments:")
    for p in instructions:
        st.write(f"  {p.from_person} → {p.to_person}: {symbol}{p.amount:.2f}")


def display_history(activity: List[Dict[str, Any]], symbol: str = "$"):
    """Show the merged expense / settlement feed."""
    if not activity:
        st.write("No activity yet.")
        return
    for item in activity:
        if item.get("type") == "settlement":
            st.write(f"{item.get('date', '')} · 💸 {item.get('from_user')} paid {item.get('to_user')} "
                     f"{symbol}{float(item.get('amount', 0.0)):.2f}" + (f" ({item['note']})" if item.get("note") else ""))
        else:
            payers = item.get("payers") or [{}]
            payer = payers[0].get("email", "") if isinstance(payers[0], dict) else payers[0]
            st.write(f"{item.get('date', '')} · 🧾 {item.get('description', '')} "
                     f"{symbol}{float(item.get('amount', 0.0)):.2f} paid by {payer}")


def _color_scale(ordered: List[str]):
    if len(PALETTE) < len(ordered):
        times = (len(ordered) + len(PALETTE) - 1) // len(PALETTE)
        colors = (PALETTE * times)[: len(ordered)]
    else:
        colors = PALETTE[: len(ordered)]
    return alt.Scale(domain=ordered, range=colors)


def display_category_totals(totals: Dict[str, float], symbol: str = "$"):
    """
    Show total amounts per category with a pie chart. Categories keep a stable
    color because the scale domain follows the fixed category order.
    """
    st.subheader("Spending by Category")
    if not totals:
        st.write("No totals to display.")
        return
    total_amount = float(sum(totals.values()))
    st.write(f"Total: {symbol}{total_amount:.2f}")
    rows = []
    for cat, amt in totals.items():
        pct = (amt / total_amount * 100) if total_amount > 0 else 0.0
        st.write(f"  {CATEGORY_LABELS.get(cat, cat)}: {symbol}{amt:.2f} ({pct:.1f}%)")
        rows.append({"category": cat, "amount": float(amt), "percent": pct})
    df = pd.DataFrame(rows)
    if df["amount"].sum() <= 0:
        st.info("No positive amounts to chart.")
        return

    ordered = [c for c in CATEGORIES if c in totals] + [c for c in totals if c not in CATEGORIES]
    pie = alt.Chart(df).mark_arc(innerRadius=50).encode(
        theta=alt.Theta(field="amount", type="quantitative"),
        color=alt.Color(field="category", type="nominal", scale=_color_scale(ordered),
                        legend=alt.Legend(title="Category"), sort=ordered),
        tooltip=[
            alt.Tooltip("category:N", title="Category"),
            alt.Tooltip("amount:Q", title="Amount", format=".2f"),
            alt.Tooltip("percent:Q", title="Share", format=".1f"),
        ],
    ).properties(title="Category share")
    st.altair_chart(pie, use_container_width=True)


def display_monthly_totals(monthly: List[Tuple[str, float]]):
    """Bar chart of spend for the last months, oldest first."""
    st.subheader("Monthly Spending")
    df = pd.DataFrame(monthly, columns=["month", "amount"])
    if df.empty or df["amount"].sum() <= 0:
        st.info("No dated expenses to chart.")
        return
    chart = alt.Chart(df).mark_bar().encode(
        x=alt.X("month:N", title="Month", sort=list(df["month"])),
        y=alt.Y("amount:Q", title="Amount"),
        tooltip=[alt.Tooltip("month:N", title="Month"), alt.Tooltip("amount:Q", title="Amount", format=".2f")],
    ).properties(width="container", height=300)
    st.altair_chart(chart, use_container_width=True)


def display_manage_expenses(tracker):
    """
    UI to select, edit and delete an existing expense.
    Expects a splitease.tracker.LedgerTracker.
    """
    st.header("Edit / Delete Expense")
    exs = tracker.list_expenses()
    if not exs:
        st.info("No expenses recorded.")
        return

    options = {f"{e.date} {e.description} {e.amount:.2f} {e.currency}": e.id for e in exs}
    sel_label = st.selectbox("Select expense", options=list(options.keys()))
    expense = next((e for e in exs if e.id == options[sel_label]), None)
    if not expense:
        st.error("Selected expense not found.")
        return

    # outside the form: the per-person inputs below depend on it
    methods = list(SPLIT_METHODS)
    split_method = st.radio("Split method", options=methods, index=methods.index(expense.split_method)
                            if expense.split_method in methods else 0, horizontal=True,
                            key=f"edit_method_{expense.id}")

    with st.form(key=f"edit_expense_{expense.id}"):
        description = st.text_input("Description", value=expense.description)
        amount = st.number_input("Amount", min_value=0.0, format="%.2f", value=float(expense.amount))
        cat_index = CATEGORIES.index(expense.category) if expense.category in CATEGORIES else len(CATEGORIES) - 1
        category = st.selectbox("Category", options=CATEGORIES, index=cat_index,
                                format_func=lambda c: CATEGORY_LABELS.get(c, c))
        try:
            date_prefill = datetime.date.fromisoformat(expense.date)
        except ValueError:
            date_prefill = datetime.date.today()
        date_selected = st.date_input("Date", value=date_prefill)
        people = [s.person for s in expense.splits]
        payer_idx = people.index(expense.payer) if expense.payer in people else 0
        payer = st.selectbox("Paid by", options=people, index=payer_idx)
        entries = []
        for s in expense.splits:
            if split_method == SPLIT_EXACT:
                entries.append({"email": s.person, "amount": st.number_input(
                    f"Amount for {s.person}", min_value=0.0, value=float(s.amount), format="%.2f",
                    key=f"edit_exact_{s.person}")})
            elif split_method == SPLIT_PERCENTAGE:
                entries.append({"email": s.person, "percentage": st.number_input(
                    f"% for {s.person}", min_value=0.0, max_value=100.0, value=float(s.percentage or 0.0),
                    key=f"edit_pct_{s.person}")})
            elif split_method == SPLIT_SHARES:
                entries.append({"email": s.person, "shares": int(st.number_input(
                    f"Shares for {s.person}", min_value=0, value=int(s.shares or 1), step=1,
                    key=f"edit_shares_{s.person}"))})
            else:
                entries.append({"email": s.person})

        if st.form_submit_button("Save changes"):
            try:
                tracker.edit_expense(
                    expense.id,
                    description=description,
                    amount=round(amount, 2),
                    category=category,
                    date=date_selected.isoformat(),
                    payer=payer,
                    split_method=split_method or SPLIT_EQUAL,
                    splits=entries,
                )
            except LedgerError as exc:
                st.error(str(exc))
            else:
                st.success("Expense updated.")
                trigger_rerun()

    # Delete UI (separate to avoid accidental deletes)
    st.markdown("---")
    st.write("Delete this expense")
    delete_confirm = st.checkbox("I confirm I want to delete this expense")
    if st.button("Delete expense") and delete_confirm:
        if tracker.delete_expense(expense.id):
            st.success("Expense deleted.")
            trigger_rerun()
        else:
            st.error("Failed to delete expense. Check the server logs for details.")
