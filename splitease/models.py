"""
models.py - Data model definitions

Records persisted by the ledger store (Expense, Settlement, Group, Friend, User)
and the derived, never-persisted results of the balance engine
(BalanceSummary, PaymentInstruction).

Records are serialized to/from plain dicts so the store can keep them as JSON
(or as rows in Google Sheets). People are referenced everywhere by a stable
string key, the email address; in the stored dicts that key is called "email".
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from splitease.errors import MalformedRecord


# fixed category enumeration used by the expense form and analytics
CATEGORIES = [
    "food",
    "transportation",
    "entertainment",
    "accommodation",
    "utilities",
    "shopping",
    "groceries",
    "healthcare",
    "other",
]

CATEGORY_LABELS = {
    "food": "Food & Drinks",
    "transportation": "Transportation",
    "entertainment": "Entertainment",
    "accommodation": "Accommodation",
    "utilities": "Utilities",
    "shopping": "Shopping",
    "groceries": "Groceries",
    "healthcare": "Healthcare",
    "other": "Other",
}

SPLIT_EQUAL = "equal"
SPLIT_EXACT = "exact"
SPLIT_PERCENTAGE = "percentage"
SPLIT_SHARES = "shares"
SPLIT_METHODS = (SPLIT_EQUAL, SPLIT_EXACT, SPLIT_PERCENTAGE, SPLIT_SHARES)

PAYMENT_METHODS = ["cash", "credit_card", "venmo", "paypal", "zelle", "bank_transfer", "other"]

GROUP_TYPES = ["home", "trip", "couple", "friends", "work", "other"]


def _missing(d: Dict[str, Any], keys) -> List[str]:
    return [k for k in keys if d.get(k) is None]


@dataclass
class Payer:
    person: str
    amount: float = 0.0

    def to_dict(self) -> Dict:
        return {"email": self.person, "amount": self.amount}

    @staticmethod
    def from_dict(d: Any) -> "Payer":
        # older records store the payer as a bare email string
        if isinstance(d, str):
            return Payer(person=d)
        return Payer(person=str(d.get("email", d.get("person", "")) or ""), amount=float(d.get("amount", 0.0) or 0.0))


@dataclass
class Split:
    """
    One participant's share of an expense.

    Fields:
      - person: participant key (email)
      - amount: owed amount, filled in by the split calculator
      - percentage: used by the "percentage" method (0-100)
      - shares: used by the "shares" method; None means 1
    """
    person: str
    amount: float = 0.0
    percentage: float = 0.0
    shares: Optional[int] = 1

    def to_dict(self) -> Dict:
        return {
            "email": self.person,
            "amount": self.amount,
            "percentage": self.percentage,
            "shares": self.shares,
        }

    @staticmethod
    def from_dict(d: Any) -> "Split":
        if isinstance(d, Split):
            return d
        return Split(
            person=str(d.get("email", d.get("person", "")) or ""),
            amount=float(d.get("amount", 0.0) or 0.0),
            percentage=float(d.get("percentage", 0.0) or 0.0),
            shares=d.get("shares", 1),
        )


@dataclass
class Expense:
    """
    One shared cost.

    Only the first entry of `payers` is used by the balance engine; the list
    shape is kept so stored records round-trip unchanged.
    """
    amount: float
    payers: List[Payer]
    splits: List[Split]
    description: str = ""
    currency: str = "USD"
    date: str = ""  # ISO "YYYY-MM-DD"
    category: str = "other"
    split_method: str = SPLIT_EQUAL
    group_id: Optional[str] = None
    payment_method: str = "cash"
    receipt_url: str = ""
    due_date: str = ""
    comments: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    id: Optional[str] = None
    created_date: str = ""
    updated_date: str = ""
    created_by: str = ""

    REQUIRED = ("amount", "payers", "splits")

    @property
    def payer(self) -> Optional[str]:
        if not self.payers:
            return None
        return self.payers[0].person or None

    def to_dict(self) -> Dict:
        d = {
            "description": self.description,
            "amount": self.amount,
            "currency": self.currency,
            "date": self.date,
            "category": self.category,
            "group_id": self.group_id or "",
            "payers": [p.to_dict() for p in self.payers],
            "split_method": self.split_method,
            "splits": [s.to_dict() for s in self.splits],
            "payment_method": self.payment_method,
            "receipt_url": self.receipt_url,
            "due_date": self.due_date,
            "comments": list(self.comments),
            "tags": list(self.tags),
        }
        # store-managed fields only once the store has assigned them
        for key in ("id", "created_date", "updated_date", "created_by"):
            value = getattr(self, key)
            if value:
                d[key] = value
        return d

    @staticmethod
    def from_dict(d: Dict) -> "Expense":
        """
        Build an Expense from a stored dict.
        Optional fields fall back to defaults; required ones raise MalformedRecord.
        """
        missing = _missing(d, Expense.REQUIRED)
        if not missing and not d["payers"]:
            missing = ["payers"]
        if missing:
            raise MalformedRecord("Expense", missing, d.get("id"))
        try:
            amount = float(d["amount"])
        except (TypeError, ValueError):
            raise MalformedRecord("Expense", ["amount"], d.get("id"))
        return Expense(
            id=d.get("id"),
            description=d.get("description", "") or "",
            amount=amount,
            currency=d.get("currency", "USD") or "USD",
            date=d.get("date", "") or "",
            category=d.get("category", "other") or "other",
            group_id=d.get("group_id") or None,
            payers=[Payer.from_dict(p) for p in d["payers"]],
            split_method=d.get("split_method", SPLIT_EQUAL) or SPLIT_EQUAL,
            splits=[Split.from_dict(s) for s in d["splits"]],
            payment_method=d.get("payment_method", "cash") or "cash",
            receipt_url=d.get("receipt_url", "") or "",
            due_date=d.get("due_date", "") or "",
            comments=list(d.get("comments", []) or []),
            tags=list(d.get("tags", []) or []),
            created_date=d.get("created_date", "") or "",
            updated_date=d.get("updated_date", "") or "",
            created_by=d.get("created_by", "") or "",
        )


@dataclass
class Settlement:
    """A direct payment: from_user paid to_user `amount`."""
    from_user: str
    to_user: str
    amount: float
    date: str = ""
    note: str = ""
    group_id: Optional[str] = None
    currency: str = "USD"
    payment_method: str = ""
    id: Optional[str] = None
    created_date: str = ""
    created_by: str = ""

    REQUIRED = ("from_user", "to_user", "amount")

    def to_dict(self) -> Dict:
        d = {
            "from_user": self.from_user,
            "to_user": self.to_user,
            "amount": self.amount,
            "date": self.date,
            "note": self.note,
            "group_id": self.group_id or "",
            "currency": self.currency,
            "payment_method": self.payment_method,
        }
        for key in ("id", "created_date", "created_by"):
            value = getattr(self, key)
            if value:
                d[key] = value
        return d

    @staticmethod
    def from_dict(d: Dict) -> "Settlement":
        missing = [k for k in Settlement.REQUIRED if d.get(k) in (None, "")]
        if missing:
            raise MalformedRecord("Settlement", missing, d.get("id"))
        try:
            amount = float(d["amount"])
        except (TypeError, ValueError):
            raise MalformedRecord("Settlement", ["amount"], d.get("id"))
        return Settlement(
            id=d.get("id"),
            from_user=str(d["from_user"]),
            to_user=str(d["to_user"]),
            amount=amount,
            date=d.get("date", "") or "",
            note=d.get("note", "") or "",
            group_id=d.get("group_id") or None,
            currency=d.get("currency", "USD") or "USD",
            payment_method=d.get("payment_method", "") or "",
            created_date=d.get("created_date", "") or "",
            created_by=d.get("created_by", "") or "",
        )


@dataclass
class Group:
    """Named set of members; only scopes which records are aggregated together."""
    name: str
    members: List[str] = field(default_factory=list)
    description: str = ""
    type: str = "other"
    default_currency: str = "USD"
    simplify_debts: bool = True
    id: Optional[str] = None
    created_date: str = ""

    def to_dict(self) -> Dict:
        d = {
            "name": self.name,
            "description": self.description,
            "type": self.type,
            "members": list(self.members),
            "default_currency": self.default_currency,
            "simplify_debts": self.simplify_debts,
        }
        if self.id:
            d["id"] = self.id
        if self.created_date:
            d["created_date"] = self.created_date
        return d

    @staticmethod
    def from_dict(d: Dict) -> "Group":
        return Group(
            id=d.get("id"),
            name=d.get("name", "") or "",
            description=d.get("description", "") or "",
            type=d.get("type", "other") or "other",
            members=list(d.get("members", []) or []),
            default_currency=d.get("default_currency", "USD") or "USD",
            simplify_debts=bool(d.get("simplify_debts", True)),
            created_date=d.get("created_date", "") or "",
        )


@dataclass
class Friend:
    user_email: str
    friend_email: str
    friend_name: str = ""
    added_date: str = ""
    id: Optional[str] = None

    def to_dict(self) -> Dict:
        d = {
            "user_email": self.user_email,
            "friend_email": self.friend_email,
            "friend_name": self.friend_name or self.friend_email,
            "added_date": self.added_date,
        }
        if self.id:
            d["id"] = self.id
        return d

    @staticmethod
    def from_dict(d: Dict) -> "Friend":
        return Friend(
            id=d.get("id"),
            user_email=d.get("user_email", "") or "",
            friend_email=d.get("friend_email", "") or "",
            friend_name=d.get("friend_name", "") or "",
            added_date=d.get("added_date", "") or "",
        )


@dataclass
class User:
    """The single implicit local user; its email is the reference person."""
    email: str = "user@splitease.local"
    full_name: str = "Local User"
    role: str = "admin"
    default_currency: str = "USD"
    upi_id: str = ""
    id: Optional[str] = None

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "email": self.email,
            "full_name": self.full_name,
            "role": self.role,
            "default_currency": self.default_currency,
            "upi_id": self.upi_id,
        }

    @staticmethod
    def from_dict(d: Dict) -> "User":
        return User(
            id=d.get("id"),
            email=d.get("email", "user@splitease.local") or "user@splitease.local",
            full_name=d.get("full_name", "Local User") or "Local User",
            role=d.get("role", "admin") or "admin",
            default_currency=d.get("default_currency", "USD") or "USD",
            upi_id=d.get("upi_id", "") or "",
        )


@dataclass
class PaymentInstruction:
    """Derived: `from_person` should pay `to_person` `amount`."""
    from_person: str
    to_person: str
    amount: float

    def to_dict(self) -> Dict:
        return {"from": self.from_person, "to": self.to_person, "amount": self.amount}

    def describe(self, currency: str = "") -> str:
        suffix = f" {currency}" if currency else ""
        return f"{self.from_person} pays {self.to_person} {self.amount:.2f}{suffix}"


@dataclass
class BalanceSummary:
    """
    Derived balances relative to one reference person.

    Fields:
      - reference: the person the balances are computed for
      - owe_them: people the reference owes, positive magnitudes
      - owed_by_them: people who owe the reference, positive magnitudes
      - net: signed map, positive meaning "owes the reference"
    Entries below the 0.01 tolerance never appear in any of the maps.
    """
    reference: str
    owe_them: Dict[str, float] = field(default_factory=dict)
    owed_by_them: Dict[str, float] = field(default_factory=dict)
    net: Dict[str, float] = field(default_factory=dict)

    @property
    def total_owing(self) -> float:
        """Total the reference owes other people."""
        return round(sum(self.owe_them.values()), 2)

    @property
    def total_owed(self) -> float:
        """Total other people owe the reference."""
        return round(sum(self.owed_by_them.values()), 2)

    @property
    def net_total(self) -> float:
        return round(self.total_owed - self.total_owing, 2)

    def to_dict(self) -> Dict:
        return {"oweThem": dict(self.owe_them), "owedByThem": dict(self.owed_by_them)}
