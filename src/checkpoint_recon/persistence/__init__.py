"""Ledger access and reconciliation state storage."""

from .ledger import InMemoryLedger, LedgerAccessor, LedgerChange
from .repositories import CheckpointRepository, PeriodRepository, SessionRepository

__all__ = [
    "InMemoryLedger",
    "LedgerAccessor",
    "LedgerChange",
    "CheckpointRepository",
    "PeriodRepository",
    "SessionRepository",
]
