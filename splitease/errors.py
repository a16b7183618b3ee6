"""
errors.py - typed errors raised by the ledger

Callers catch LedgerError to tell "bad input" apart from a programming bug.
"""

from typing import Iterable, Optional


class LedgerError(Exception):
    """Base class for every error raised on purpose by splitease."""


class InvalidSplitConfiguration(LedgerError, ValueError):
    """Zero participants, zero total shares, or split amounts that do not add up."""


class MalformedRecord(LedgerError, ValueError):
    """An Expense or Settlement record is missing required fields."""

    def __init__(self, record_type: str, missing: Iterable[str], record_id: Optional[str] = None):
        self.record_type = record_type
        self.missing = list(missing)
        self.record_id = record_id
        where = f" (id={record_id})" if record_id else ""
        super().__init__(f"{record_type}{where} is missing required fields: {', '.join(self.missing)}")


class RecordNotFound(LedgerError, KeyError):
    def __init__(self, collection: str, record_id: str):
        self.collection = collection
        self.record_id = record_id
        super().__init__(f"{collection} record {record_id!r} not found")

    def __str__(self) -> str:
        # KeyError repr-quotes its message otherwise
        return self.args[0]


class UnknownStrategy(LedgerError, ValueError):
    """Requested debt simplification strategy is not registered."""
