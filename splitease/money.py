"""
money.py - integer-cent helpers

Amounts enter and leave the ledger as floats (that is how records are stored).
Balances are summed at full precision and converted to integer cents once per
person; the simplifier then works purely in cents.
"""

from typing import Any

# absolute tolerance used for "is this settled / does this add up" checks
EPSILON = 0.01
EPSILON_CENTS = 1


def to_cents(amount: Any) -> int:
    """Convert a decimal amount to integer cents (round half away from zero)."""
    value = float(amount)
    cents = abs(value) * 100.0
    rounded = int(cents + 0.5)
    return -rounded if value < 0 else rounded


def from_cents(cents: int) -> float:
    return round(cents / 100.0, 2)


def is_settled(amount: float) -> bool:
    """True when the magnitude is below the 0.01 tolerance."""
    return abs(amount) < EPSILON


def amounts_match(a: float, b: float) -> bool:
    return abs(float(a) - float(b)) <= EPSILON + 1e-9
