"""
splits.py - split calculator

Turns an expense total plus a participant list into per-person owed amounts.
Four methods are supported:
  - equal:      total / N for everyone
  - exact:      amounts supplied by the caller, kept as-is
  - percentage: total * percentage / 100
  - shares:     total * shares / sum(shares), unset shares count as 1

compute_split never checks that the result adds up to the total (exact and
percentage inputs can be off); callers run validate_split before persisting.
"""

import logging
from typing import Any, Iterable, List

from splitease.errors import InvalidSplitConfiguration
from splitease.models import SPLIT_EQUAL, SPLIT_EXACT, SPLIT_METHODS, SPLIT_PERCENTAGE, SPLIT_SHARES, Split
from splitease.money import amounts_match

logger = logging.getLogger(__name__)


def _as_split(p: Any) -> Split:
    if isinstance(p, Split):
        return Split(person=p.person, amount=p.amount, percentage=p.percentage, shares=p.shares)
    if isinstance(p, str):
        return Split(person=p)
    return Split.from_dict(p)


def _shares_of(s: Split) -> int:
    if s.shares is None:
        return 1
    shares = int(s.shares)
    if shares < 0:
        raise InvalidSplitConfiguration(f"shares for {s.person} must not be negative")
    return shares


def compute_split(total_amount: float, method: str, participants: Iterable[Any]) -> List[Split]:
    """
    Fill in `amount` for every participant according to `method`.

    participants may be Split objects, dicts in the stored shape
    ({"email", "amount", "percentage", "shares"}) or bare person keys.
    Returns new Split objects in the input order; the inputs are not mutated.

    Raises InvalidSplitConfiguration for an unknown method, an empty
    participant list, or a zero share total.
    """
    if method not in SPLIT_METHODS:
        raise InvalidSplitConfiguration(f"unknown split method {method!r}")
    splits = [_as_split(p) for p in participants]
    if not splits:
        raise InvalidSplitConfiguration("at least one participant is required")
    total = float(total_amount)

    if method == SPLIT_EQUAL:
        share = total / len(splits)
        for s in splits:
            s.amount = share
    elif method == SPLIT_PERCENTAGE:
        for s in splits:
            pct = float(s.percentage or 0.0)
            if pct < 0 or pct > 100:
                raise InvalidSplitConfiguration(f"percentage for {s.person} must be between 0 and 100")
            s.amount = total * pct / 100
    elif method == SPLIT_SHARES:
        counts = [_shares_of(s) for s in splits]
        total_shares = sum(counts)
        if total_shares == 0:
            raise InvalidSplitConfiguration("total shares must be greater than zero")
        for s, n in zip(splits, counts):
            s.shares = n
            s.amount = total * n / total_shares
    elif method == SPLIT_EXACT:
        # amounts are user-entered; nothing to compute
        pass

    logger.debug("computed %s split of %.2f over %d participants", method, total, len(splits))
    return splits


def validate_split(total_amount: float, splits: Iterable[Any]) -> List[Split]:
    """
    Check that a split can be persisted: at least one participant, one entry
    per person, no negative amount, and amounts summing to the total within 0.01.
    Returns the splits as Split objects.
    """
    checked = [_as_split(s) for s in splits]
    if not checked:
        raise InvalidSplitConfiguration("at least one participant is required")
    seen = set()
    for s in checked:
        if not s.person:
            raise InvalidSplitConfiguration("every participant needs a person key")
        if s.person in seen:
            raise InvalidSplitConfiguration(f"{s.person} appears more than once in the split")
        seen.add(s.person)
        if s.amount < 0:
            raise InvalidSplitConfiguration(f"amount for {s.person} must not be negative")
    split_total = sum(s.amount for s in checked)
    if not amounts_match(split_total, total_amount):
        raise InvalidSplitConfiguration(
            f"split amounts sum to {split_total:.2f} but the expense total is {float(total_amount):.2f}"
        )
    return checked
