"""
balances.py - balance aggregation

Folds the full expense + settlement history into balances. Nothing is cached:
every call rescans the records it is given, so the result always agrees with
the stored history.

  - aggregate_balances: balances relative to one reference person (who owes
    me / whom do I owe), the view shown on the dashboard and group pages
  - net_positions: every person's overall position across all records, the
    input for a group-wide payoff plan
  - who_should_pay_next: the person who has consumed the most relative to
    what they paid

Only the first payer of an expense is consulted. Multi-payer expenses are
accepted by the data model but balanced as if the first payer paid it all.
"""

from collections import defaultdict
import logging
import math
from typing import Any, Dict, Iterable, List, Optional

from splitease.errors import MalformedRecord
from splitease.models import BalanceSummary, Expense, Settlement
from splitease.money import EPSILON_CENTS, from_cents, to_cents

logger = logging.getLogger(__name__)


def _as_expense(e: Any) -> Expense:
    if not isinstance(e, Expense):
        return Expense.from_dict(e)
    missing = []
    if e.amount is None:
        missing.append("amount")
    if not e.payers or not e.payer:
        missing.append("payers")
    if e.splits is None:
        missing.append("splits")
    if missing:
        raise MalformedRecord("Expense", missing, e.id)
    return e


def _as_settlement(s: Any) -> Settlement:
    if not isinstance(s, Settlement):
        return Settlement.from_dict(s)
    missing = [k for k in Settlement.REQUIRED if getattr(s, k) in (None, "")]
    if missing:
        raise MalformedRecord("Settlement", missing, s.id)
    return s


def _payer_of(expense: Expense) -> str:
    payer = expense.payer
    if not payer:
        raise MalformedRecord("Expense", ["payers"], expense.id)
    return payer

class _Ledger:
    """
    Per-person running totals kept at full float precision.
    Amounts are only rounded to cents once, when the totals are read.
    """

    def __init__(self):
        self._parts: Dict[str, List[float]] = defaultdict(list)

    def add(self, person: str, amount: float):
        self._parts[person].append(float(amount))

    def cents(self) -> Dict[str, int]:
        return {person: to_cents(math.fsum(parts)) for person, parts in self._parts.items()}


def aggregate_balances(reference: str, expenses: Iterable[Any], settlements: Iterable[Any]) -> BalanceSummary:
    """
    Compute balances between `reference` and everyone they share records with.

    For every expense, each split of someone other than the payer moves money:
      - reference paid: that person owes the reference their split amount
      - reference is the split person: the reference owes the payer
      - neither: ignored (this is a per-reference view, not a full ledger)
    Settlements from the reference increase what the counterparty owes back,
    settlements to the reference decrease it.

    Raises MalformedRecord on the first record missing a required field
    instead of treating the gap as zero.
    """
    ledger = _Ledger()

    for raw in expenses:
        expense = _as_expense(raw)
        payer = _payer_of(expense)
        for split in expense.splits:
            if split.person == payer:
                continue
            if payer == reference:
                ledger.add(split.person, split.amount)
            elif split.person == reference:
                ledger.add(payer, -split.amount)

    for raw in settlements:
        settlement = _as_settlement(raw)
        if settlement.from_user == reference:
            ledger.add(settlement.to_user, settlement.amount)
        elif settlement.to_user == reference:
            ledger.add(settlement.from_user, -settlement.amount)

    summary = BalanceSummary(reference=reference)
    for person, cents in ledger.cents().items():
        # anything under one cent counts as settled
        if abs(cents) < EPSILON_CENTS:
            continue
        summary.net[person] = from_cents(cents)
        if cents > 0:
            summary.owed_by_them[person] = from_cents(cents)
        else:
            summary.owe_them[person] = from_cents(-cents)

    logger.debug(
        "aggregated balances for %s: %d owe them, %d owed by them",
        reference, len(summary.owe_them), len(summary.owed_by_them),
    )
    return summary


def net_positions(expenses: Iterable[Any], settlements: Iterable[Any]) -> Dict[str, float]:
    """
    Net position of every person across all records.

    Positive means the person is owed money overall, negative means they owe.
    Every movement is booked twice, so the exact positions sum to zero; after
    rounding each person to cents the sum can be off by a cent or so.
    """
    ledger = _Ledger()

    for raw in expenses:
        expense = _as_expense(raw)
        payer = _payer_of(expense)
        for split in expense.splits:
            if split.person == payer:
                continue
            ledger.add(payer, split.amount)
            ledger.add(split.person, -split.amount)

    for raw in settlements:
        settlement = _as_settlement(raw)
        ledger.add(settlement.from_user, settlement.amount)
        ledger.add(settlement.to_user, -settlement.amount)

    return {person: from_cents(cents) for person, cents in ledger.cents().items() if cents != 0}


def who_should_pay_next(reference: str, expenses: Iterable[Any]) -> Optional[str]:
    """
    Pick the person (other than `reference`) whose consumed share exceeds what
    they paid by the largest margin. Settlements are not considered.
    Returns None when nobody is behind.
    """
    ledger = _Ledger()
    for raw in expenses:
        expense = _as_expense(raw)
        payer = _payer_of(expense)
        for split in expense.splits:
            ledger.add(split.person, split.amount)
            ledger.add(payer, -split.amount)

    candidates: List = [(cents, person) for person, cents in ledger.cents().items()
                        if person != reference and cents > 0]
    if not candidates:
        return None
    # stable: ties keep first-seen order
    candidates.sort(key=lambda x: x[0], reverse=True)
    return candidates[0][1]
