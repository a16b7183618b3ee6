"""
simplify.py - debt simplification

Reduces a balance mapping to a short list of payment instructions that zero
every balance when executed. Positive balances are creditors (owed money),
negative balances are debtors.

Strategies are looked up by name so a stricter algorithm can be plugged in
without changing callers:
  - "in_order" (default): match the first unresolved creditor with the first
    unresolved debtor, in the mapping's insertion order
  - "largest_first": same matching after sorting both sides by descending
    magnitude, which usually gives fewer payments

Neither is a proven minimum; both emit at most creditors + debtors - 1
instructions for a balanced input.
"""

import logging
from typing import Callable, Dict, List, Mapping, Tuple, Union

from splitease.errors import UnknownStrategy
from splitease.models import PaymentInstruction
from splitease.money import from_cents, to_cents

logger = logging.getLogger(__name__)

# (debtor, creditor, cents)
Transfer = Tuple[str, str, int]
Strategy = Callable[[Dict[str, int]], List[Transfer]]

DEFAULT_STRATEGY = "in_order"


def _partition(balances: Dict[str, int]) -> Tuple[List[List], List[List]]:
    creditors = [[person, cents] for person, cents in balances.items() if cents > 0]
    debtors = [[person, -cents] for person, cents in balances.items() if cents < 0]
    return creditors, debtors


def _match(creditors: List[List], debtors: List[List]) -> List[Transfer]:
    transfers: List[Transfer] = []
    i = j = 0
    while i < len(creditors) and j < len(debtors):
        c_name, c_amt = creditors[i]
        d_name, d_amt = debtors[j]
        settle = min(c_amt, d_amt)
        transfers.append((d_name, c_name, settle))
        creditors[i][1] = c_amt - settle
        debtors[j][1] = d_amt - settle
        if creditors[i][1] == 0:
            i += 1
        if debtors[j][1] == 0:
            j += 1
    # leftovers only exist when credits and debits do not balance
    if i < len(creditors) or j < len(debtors):
        logger.debug("simplification left %d creditors and %d debtors unresolved",
                     len(creditors) - i, len(debtors) - j)
    return transfers


def in_order(balances: Dict[str, int]) -> List[Transfer]:
    creditors, debtors = _partition(balances)
    return _match(creditors, debtors)


def largest_first(balances: Dict[str, int]) -> List[Transfer]:
    creditors, debtors = _partition(balances)
    creditors.sort(key=lambda x: x[1], reverse=True)
    debtors.sort(key=lambda x: x[1], reverse=True)
    return _match(creditors, debtors)


_STRATEGIES: Dict[str, Strategy] = {
    "in_order": in_order,
    "largest_first": largest_first,
}


def register_strategy(name: str, fn: Strategy) -> None:
    """Make `fn` available to simplify_debts under `name`."""
    _STRATEGIES[name] = fn


def available_strategies() -> List[str]:
    return sorted(_STRATEGIES)


def get_strategy(name: str) -> Strategy:
    try:
        return _STRATEGIES[name]
    except KeyError:
        raise UnknownStrategy(f"unknown simplification strategy {name!r}; choose one of {available_strategies()}")


def simplify_debts(
    balances: Mapping[str, float],
    strategy: Union[str, Strategy, None] = DEFAULT_STRATEGY,
) -> List[PaymentInstruction]:
    """
    Turn a signed balance mapping into payment instructions.

    balances: person -> signed amount, positive = is owed, negative = owes.
    Entries under one cent are ignored. Returns PaymentInstruction objects
    (debtor pays creditor), amounts as 2-decimal floats.
    """
    fn = strategy if callable(strategy) else get_strategy(strategy or DEFAULT_STRATEGY)
    cents = {person: to_cents(amount) for person, amount in balances.items()}
    cents = {person: c for person, c in cents.items() if c != 0}
    transfers = fn(cents)
    instructions = [PaymentInstruction(from_person=d, to_person=c, amount=from_cents(amt)) for d, c, amt in transfers]
    logger.debug("simplified %d balances into %d payments", len(cents), len(instructions))
    return instructions
