"""
tracker.py - application logic on top of the ledger store

Responsibilities:
 - build Expense / Settlement / Group / Friend records from UI input and
   persist them through the LedgerStore
 - run the split calculator and its validation before an expense is stored
 - provide helper APIs consumed by the UI:
     balances (optionally scoped to a group), simplified payments,
     payoff plan, who should pay next, activity history, analytics totals,
     CSV / JSON export and JSON import

The current user (from the store) is the reference person for every balance.
"""

from typing import Any, Dict, List, Optional, Tuple
from collections import defaultdict
import csv
import datetime
import io
import json
import logging
from urllib.parse import quote, urlencode

from splitease import balances as balance_engine
from splitease.errors import InvalidSplitConfiguration, LedgerError
from splitease.models import (
    CATEGORIES,
    SPLIT_METHODS,
    BalanceSummary,
    Expense,
    Friend,
    Group,
    Payer,
    PaymentInstruction,
    Settlement,
    Split,
)
from splitease.simplify import DEFAULT_STRATEGY, simplify_debts
from splitease.splits import compute_split, validate_split
from splitease.storage import LedgerStore

# ensure a logger is available
logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)

CSV_COLUMNS = [
    "Date",
    "Description",
    "Amount",
    "Currency",
    "Category",
    "Paid By",
    "Split With",
    "Split Method",
    "Payment Method",
    "Group ID",
    "Due Date",
    "Created Date",
]

# fields whose change forces the split to be recomputed
_SPLIT_INPUTS = ("amount", "split_method", "splits")


def _parse_date(value: str) -> Optional[datetime.date]:
    try:
        return datetime.date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


class LedgerTracker:
    """
    Single-instance style tracker object. The UI creates one LedgerTracker()
    and uses its methods to read/write data.
    """

    def __init__(self, store: Optional[LedgerStore] = None, strategy: str = DEFAULT_STRATEGY):
        self.store = store if store is not None else LedgerStore()
        self.strategy = strategy

    # -----------------------
    # user
    # -----------------------
    @property
    def user(self) -> Dict[str, Any]:
        return self.store.get_user()

    @property
    def me(self) -> str:
        """Reference person key for every balance."""
        return self.user["email"]

    def update_profile(self, **fields) -> Dict[str, Any]:
        """
        Update display fields of the user (full_name, default_currency, upi_id).
        The email is the person key stored in every record, so it is fixed.
        """
        if "email" in fields and fields["email"] != self.me:
            raise LedgerError("the email identifies you in every record and cannot be changed")
        fields.pop("email", None)
        if "default_currency" in fields and fields["default_currency"]:
            fields["default_currency"] = str(fields["default_currency"]).upper()
        return self.store.update_user(**fields)

    def upi_link(self, amount: Optional[float] = None, note: str = "") -> Optional[str]:
        """
        upi://pay link that lets someone pay the user, or None when no UPI id is set.
        UPI only settles in INR, whatever the ledger currency label says.
        """
        upi_id = (self.user.get("upi_id") or "").strip()
        if not upi_id:
            return None
        params = [("pa", upi_id), ("pn", self.user.get("full_name") or self.me)]
        if amount:
            params.append(("am", f"{float(amount):.2f}"))
        params.append(("cu", "INR"))
        if note:
            params.append(("tn", note))
        return "upi://pay?" + urlencode(params, quote_via=quote)

    # -----------------------
    # expenses
    # -----------------------
    def build_splits(self, amount: float, split_method: str, participants: List[Any]) -> List[Split]:
        """
        Run the split calculator and validate the result.
        `exact` splits are taken as given; every method must add up to `amount`.
        """
        if split_method not in SPLIT_METHODS:
            raise InvalidSplitConfiguration(f"unknown split method {split_method!r}")
        splits = compute_split(amount, split_method, participants)
        return validate_split(amount, splits)

    def add_expense(
        self,
        description: str,
        amount: float,
        splits: List[Any],
        split_method: str = "equal",
        payer: Optional[str] = None,
        currency: Optional[str] = None,
        date: str = "",
        category: str = "other",
        group_id: Optional[str] = None,
        payment_method: str = "cash",
        receipt_url: str = "",
        due_date: str = "",
        tags: Optional[List[str]] = None,
    ) -> Expense:
        """
        Create and persist an expense.

        splits: participants as Split objects, stored-shape dicts or bare emails.
        The current user is always part of the split; the payer defaults to them.
        """
        if not description or not str(description).strip():
            raise LedgerError("description is required")
        amount = float(amount)
        if amount <= 0:
            raise LedgerError("amount must be greater than 0")
        if category not in CATEGORIES:
            raise LedgerError(f"unknown category {category!r}")

        participants = list(splits)
        if not any(self._person_of(p) == self.me for p in participants):
            raise InvalidSplitConfiguration("you must be included in the split")
        final_splits = self.build_splits(amount, split_method, participants)

        expense = Expense(
            description=str(description).strip(),
            amount=amount,
            currency=(currency or self.user.get("default_currency") or "USD").upper(),
            date=date or datetime.date.today().isoformat(),
            category=category,
            group_id=group_id or None,
            payers=[Payer(person=payer or self.me, amount=amount)],
            split_method=split_method,
            splits=final_splits,
            payment_method=payment_method,
            receipt_url=receipt_url,
            due_date=due_date,
            tags=list(tags or []),
        )
        stored = self.store.expenses.create(expense.to_dict())
        return Expense.from_dict(stored)

    @staticmethod
    def _person_of(p: Any) -> str:
        if isinstance(p, Split):
            return p.person
        if isinstance(p, str):
            return p
        return str(p.get("email", p.get("person", "")) or "")

    def get_expense(self, expense_id: str) -> Expense:
        return Expense.from_dict(self.store.expenses.get(expense_id))

    def edit_expense(self, expense_id: str, **kwargs) -> Expense:
        """
        Update an existing expense. Supported kwargs: description, amount,
        currency, date, category, group_id, payer, split_method, splits,
        payment_method, receipt_url, due_date, tags.

        Changing amount, split method or participants re-runs the split
        calculator over the full participant list (exact splits keep the
        amounts they carry).
        """
        current = self.get_expense(expense_id)
        updates: Dict[str, Any] = {}
        for key in ("description", "currency", "date", "category", "group_id",
                    "payment_method", "receipt_url", "due_date", "tags"):
            if key in kwargs:
                updates[key] = kwargs[key]
        if "category" in updates and updates["category"] not in CATEGORIES:
            raise LedgerError(f"unknown category {updates['category']!r}")

        amount = float(kwargs.get("amount", current.amount))
        if amount <= 0:
            raise LedgerError("amount must be greater than 0")
        payer = kwargs.get("payer") or current.payer
        if any(k in kwargs for k in _SPLIT_INPUTS):
            method = kwargs.get("split_method", current.split_method)
            participants = kwargs.get("splits", current.splits)
            updates["splits"] = [s.to_dict() for s in self.build_splits(amount, method, participants)]
            updates["split_method"] = method
        updates["amount"] = amount
        updates["payers"] = [Payer(person=payer, amount=amount).to_dict()]

        stored = self.store.expenses.update(expense_id, updates)
        logger.info("Updated expense id=%s", expense_id)
        return Expense.from_dict(stored)

    def delete_expense(self, expense_id: str) -> bool:
        return self.store.expenses.delete(expense_id)

    def list_expenses(
        self,
        year: Optional[int] = None,
        month: Optional[int] = None,
        search: str = "",
        group_id: Optional[str] = None,
    ) -> List[Expense]:
        """
        Expenses newest-created first, optionally filtered by date year/month,
        a case-insensitive description search, and group.
        Records with a missing or invalid date are skipped by the date filters.
        """
        query = {"group_id": group_id} if group_id else {}
        records = self.store.expenses.filter(query, sort_by="-created_date")
        out: List[Expense] = []
        needle = (search or "").strip().lower()
        for r in records:
            e = Expense.from_dict(r)
            if needle and needle not in e.description.lower() and needle not in e.category.lower():
                continue
            if year is not None or month is not None:
                d = _parse_date(e.date)
                if d is None:
                    continue
                if year is not None and d.year != year:
                    continue
                if month is not None and d.month != month:
                    continue
            out.append(e)
        return out

    # -----------------------
    # settlements
    # -----------------------
    def record_settlement(
        self,
        counterparty: str,
        amount: float,
        direction: str = "you_pay",
        note: str = "",
        group_id: Optional[str] = None,
        date: str = "",
        payment_method: str = "",
    ) -> Settlement:
        """
        Record a direct payment between the current user and `counterparty`.
        direction "you_pay": the user paid them; "they_pay": they paid the user.
        """
        counterparty = (counterparty or "").strip()
        if not counterparty:
            raise LedgerError("select a person to settle with")
        if counterparty == self.me:
            raise LedgerError("cannot settle with yourself")
        amount = float(amount)
        if amount <= 0:
            raise LedgerError("amount must be greater than 0")
        if direction not in ("you_pay", "they_pay"):
            raise LedgerError(f"unknown direction {direction!r}")

        settlement = Settlement(
            from_user=self.me if direction == "you_pay" else counterparty,
            to_user=counterparty if direction == "you_pay" else self.me,
            amount=amount,
            date=date or datetime.date.today().isoformat(),
            note=(note or "").strip(),
            group_id=group_id or None,
            currency=self.user.get("default_currency", "USD"),
            payment_method=payment_method,
        )
        stored = self.store.settlements.create(settlement.to_dict())
        return Settlement.from_dict(stored)

    def delete_settlement(self, settlement_id: str) -> bool:
        return self.store.settlements.delete(settlement_id)

    def list_settlements(self, group_id: Optional[str] = None) -> List[Settlement]:
        query = {"group_id": group_id} if group_id else {}
        return [Settlement.from_dict(r) for r in self.store.settlements.filter(query, sort_by="-created_date")]

    # -----------------------
    # groups / friends
    # -----------------------
    def create_group(
        self,
        name: str,
        members: Optional[List[str]] = None,
        description: str = "",
        type: str = "other",
        default_currency: Optional[str] = None,
        simplify_debts: bool = True,
    ) -> Group:
        """Create a group; the current user is always a member."""
        name = (name or "").strip()
        if not name:
            raise LedgerError("group name is required")
        member_list: List[str] = [self.me]
        for m in members or []:
            m = (m or "").strip()
            if m and m not in member_list:
                member_list.append(m)
        group = Group(
            name=name,
            members=member_list,
            description=description,
            type=type,
            default_currency=(default_currency or self.user.get("default_currency", "USD")).upper(),
            simplify_debts=simplify_debts,
        )
        return Group.from_dict(self.store.groups.create(group.to_dict()))

    def get_group(self, group_id: str) -> Group:
        return Group.from_dict(self.store.groups.get(group_id))

    def delete_group(self, group_id: str) -> bool:
        # expenses keep their group_id; it is a weak reference
        return self.store.groups.delete(group_id)

    def list_groups(self, mine_only: bool = True) -> List[Group]:
        groups = [Group.from_dict(r) for r in self.store.groups.list("-created_date")]
        if mine_only:
            groups = [g for g in groups if self.me in g.members]
        return groups

    def add_friend(self, friend_email: str, friend_name: str = "") -> Friend:
        friend_email = (friend_email or "").strip()
        if not friend_email:
            raise LedgerError("please enter an email")
        if friend_email == self.me:
            raise LedgerError("you cannot add yourself as a friend")
        if self.store.friends.filter({"user_email": self.me, "friend_email": friend_email}):
            raise LedgerError(f"{friend_email} is already a friend")
        friend = Friend(
            user_email=self.me,
            friend_email=friend_email,
            friend_name=(friend_name or "").strip() or friend_email,
            added_date=datetime.date.today().isoformat(),
        )
        return Friend.from_dict(self.store.friends.create(friend.to_dict()))

    def remove_friend(self, friend_id: str) -> bool:
        return self.store.friends.delete(friend_id)

    def list_friends(self) -> List[Friend]:
        return [Friend.from_dict(r) for r in self.store.friends.filter({"user_email": self.me})]

    def known_people(self) -> List[str]:
        """Everyone the user can split with: friends, group members, past participants."""
        people: List[str] = []

        def _add(p: str):
            if p and p != self.me and p not in people:
                people.append(p)

        for f in self.list_friends():
            _add(f.friend_email)
        for g in self.list_groups():
            for m in g.members:
                _add(m)
        for e in self.list_expenses():
            for s in e.splits:
                _add(s.person)
        return people

    # -----------------------
    # balances
    # -----------------------
    def _records(self, group_id: Optional[str]) -> Tuple[List[Dict], List[Dict]]:
        if group_id:
            return (self.store.expenses.filter({"group_id": group_id}),
                    self.store.settlements.filter({"group_id": group_id}))
        return self.store.expenses.list(sort_by=None, limit=None), self.store.settlements.list(sort_by=None, limit=None)

    def balances(self, group_id: Optional[str] = None) -> BalanceSummary:
        """Balances between the current user and everyone else, optionally scoped to one group."""
        expenses, settlements = self._records(group_id)
        return balance_engine.aggregate_balances(self.me, expenses, settlements)

    def simplified_payments(self, group_id: Optional[str] = None, strategy: Optional[str] = None) -> List[PaymentInstruction]:
        """
        Payment suggestions derived from the user's own balance mapping, the
        dashboard's "minimize transactions" panel.
        """
        summary = self.balances(group_id)
        return simplify_debts(summary.net, strategy or self.strategy)

    def payoff_plan(self, group_id: Optional[str] = None, strategy: Optional[str] = None) -> List[PaymentInstruction]:
        """Payments that settle everyone's overall position, not only the user's."""
        expenses, settlements = self._records(group_id)
        positions = balance_engine.net_positions(expenses, settlements)
        return simplify_debts(positions, strategy or self.strategy)

    def who_should_pay_next(self, group_id: Optional[str] = None) -> Optional[str]:
        expenses, _ = self._records(group_id)
        return balance_engine.who_should_pay_next(self.me, expenses)

    # -----------------------
    # history / analytics
    # -----------------------
    def history(self, kind: str = "all") -> List[Dict[str, Any]]:
        """
        Expenses and settlements merged into one activity feed, newest date
        first; each entry is the stored dict plus a "type" key.
        """
        if kind not in ("all", "expenses", "settlements"):
            raise LedgerError(f"unknown history filter {kind!r}")
        activity: List[Dict[str, Any]] = []
        if kind in ("all", "expenses"):
            activity += [dict(r, type="expense") for r in self.store.expenses.list("-created_date", None)]
        if kind in ("all", "settlements"):
            activity += [dict(r, type="settlement") for r in self.store.settlements.list("-created_date", None)]
        activity.sort(key=lambda a: a.get("date") or "", reverse=True)
        return activity

    def total_spent(self) -> float:
        return round(sum(e.amount for e in self.list_expenses()), 2)

    def totals_by_category(self, expenses: Optional[List[Expense]] = None) -> Dict[str, float]:
        """Total amount per category, in CATEGORIES order, categories without spend omitted."""
        totals: Dict[str, float] = defaultdict(float)
        for e in (expenses if expenses is not None else self.list_expenses()):
            totals[e.category] += e.amount
        ordered = [c for c in CATEGORIES if c in totals] + sorted(c for c in totals if c not in CATEGORIES)
        return {c: round(totals[c], 2) for c in ordered}

    def monthly_totals(self, months: int = 6, today: Optional[datetime.date] = None) -> List[Tuple[str, float]]:
        """
        Spend for each of the last `months` calendar months, oldest first, as
        ("Mon YYYY", total) pairs. Months with no expenses report 0.0.
        """
        today = today or datetime.date.today()
        keys: List[Tuple[int, int]] = []
        y, m = today.year, today.month
        for _ in range(months):
            keys.append((y, m))
            m -= 1
            if m == 0:
                y, m = y - 1, 12
        keys.reverse()
        totals = {k: 0.0 for k in keys}
        for e in self.list_expenses():
            d = _parse_date(e.date)
            if d is not None and (d.year, d.month) in totals:
                totals[(d.year, d.month)] += e.amount
        return [(datetime.date(y, m, 1).strftime("%b %Y"), round(totals[(y, m)], 2)) for y, m in keys]

    def available_periods(self) -> Tuple[List[int], Dict[int, List[int]]]:
        """
        Inspect all expenses and return available years and the months per year.
        Useful for populating year/month filters in the UI.
        """
        years = set()
        months_by_year = defaultdict(set)
        for e in self.list_expenses():
            d = _parse_date(e.date)
            if d is None:
                continue
            years.add(d.year)
            months_by_year[d.year].add(d.month)
        years_list = sorted(years)
        return years_list, {y: sorted(months_by_year[y]) for y in years_list}

    # -----------------------
    # export / import
    # -----------------------
    def export_rows(self) -> List[Dict[str, Any]]:
        """Expenses and settlements as flat rows (CSV_COLUMNS), newest date first."""
        rows: List[Dict[str, Any]] = []
        for e in self.list_expenses():
            rows.append({
                "Date": e.date,
                "Description": e.description,
                "Amount": e.amount,
                "Currency": e.currency or "USD",
                "Category": e.category,
                "Paid By": e.payer or "",
                "Split With": "; ".join(s.person for s in e.splits),
                "Split Method": e.split_method or "equal",
                "Payment Method": e.payment_method or "",
                "Group ID": e.group_id or "",
                "Due Date": e.due_date or "",
                "Created Date": e.created_date,
            })
        for s in self.list_settlements():
            rows.append({
                "Date": s.date,
                "Description": "Payment Settlement",
                "Amount": s.amount,
                "Currency": s.currency or "USD",
                "Category": "settlement",
                "Paid By": s.from_user,
                "Split With": s.to_user,
                "Split Method": "settlement",
                "Payment Method": s.payment_method or "",
                "Group ID": s.group_id or "",
                "Due Date": "",
                "Created Date": s.created_date,
            })
        rows.sort(key=lambda r: r["Date"] or "", reverse=True)
        return rows

    def export_csv(self) -> str:
        buffer = io.StringIO()
        writer = csv.DictWriter(buffer, fieldnames=CSV_COLUMNS, lineterminator="\n")
        writer.writeheader()
        for row in self.export_rows():
            writer.writerow(row)
        return buffer.getvalue()

    def export_json(self) -> str:
        return json.dumps(self.store.export_snapshot(), indent=2)

    def import_json(self, text: str):
        """Load a JSON backup produced by export_json."""
        try:
            data = json.loads(text)
        except ValueError as exc:
            raise LedgerError(f"invalid import file: {exc}")
        if not isinstance(data, dict):
            raise LedgerError("invalid import file: expected a JSON object")
        self.store.import_snapshot(data)

    def clear(self):
        """Reset all data. The default user is recreated on next access."""
        self.store.clear()
        logger.info("Cleared all ledger data")


