"""
Ledger accessor interface and an in-memory implementation.

The engine only ever reads the ledger, except for posting adjustment
transactions. Change listeners let the engine notice edits to transactions
that fed a gap computation.
"""

from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import date, datetime
from enum import Enum
from typing import Callable, Iterable, Optional
import logging
import threading

from ..models.ledger import Transaction
from ..utils.exceptions import ValidationError

logger = logging.getLogger(__name__)


class LedgerChange(Enum):
    ADDED = "added"
    UPDATED = "updated"
    DELETED = "deleted"


ChangeListener = Callable[[Transaction, LedgerChange], None]


class LedgerAccessor(ABC):
    """Read access to the transaction store."""

    @abstractmethod
    def list_transactions(
        self,
        account_id: str,
        after: Optional[date],
        through: date,
        include_deleted: bool = False,
    ) -> list[Transaction]:
        """
        List an account's transactions dated in ``(after, through]``.

        Args:
            account_id: Account to query
            after: Exclusive lower bound, or None for no lower bound
            through: Inclusive upper bound
            include_deleted: Also return soft-deleted transactions

        Returns:
            Transactions ordered by date, then id
        """
        pass

    def add(self, transaction: Transaction) -> Transaction:
        """Post a transaction. Read-only accessors refuse."""
        raise NotImplementedError(f"{type(self).__name__} is read-only")


class InMemoryLedger(LedgerAccessor):
    """Thread-safe ledger kept in a dict, with soft delete."""

    def __init__(self, transactions: Optional[Iterable[Transaction]] = None):
        self._lock = threading.RLock()
        self._transactions: dict[str, Transaction] = {}
        self._listeners: list[ChangeListener] = []
        for txn in transactions or []:
            self._transactions[txn.id] = txn

    def on_change(self, listener: ChangeListener) -> None:
        self._listeners.append(listener)

    def list_transactions(
        self,
        account_id: str,
        after: Optional[date],
        through: date,
        include_deleted: bool = False,
    ) -> list[Transaction]:
        with self._lock:
            matches = [
                txn
                for txn in self._transactions.values()
                if txn.account_id == account_id
                and (after is None or txn.date > after)
                and txn.date <= through
                and (include_deleted or not txn.is_deleted)
            ]
        return sorted(matches, key=lambda t: (t.date, t.id))

    def get(self, transaction_id: str) -> Optional[Transaction]:
        with self._lock:
            return self._transactions.get(transaction_id)

    def add(self, transaction: Transaction) -> Transaction:
        with self._lock:
            if transaction.id in self._transactions:
                raise ValidationError(f"Transaction {transaction.id} already exists")
            self._transactions[transaction.id] = transaction
        logger.debug(f"Ledger add {transaction.id} on {transaction.account_id}")
        self._notify(transaction, LedgerChange.ADDED)
        return transaction

    def update(self, transaction_id: str, **changes) -> Transaction:
        with self._lock:
            current = self._require(transaction_id)
            updated = replace(current, **changes)
            self._transactions[transaction_id] = updated
        logger.debug(f"Ledger update {transaction_id}: {sorted(changes)}")
        self._notify(updated, LedgerChange.UPDATED)
        return updated

    def delete(self, transaction_id: str, deleted_at: datetime) -> Transaction:
        """Soft delete: the record stays but stops counting."""
        with self._lock:
            current = self._require(transaction_id)
            deleted = replace(current, deleted_at=deleted_at)
            self._transactions[transaction_id] = deleted
        logger.debug(f"Ledger soft delete {transaction_id}")
        self._notify(deleted, LedgerChange.DELETED)
        return deleted

    def _require(self, transaction_id: str) -> Transaction:
        txn = self._transactions.get(transaction_id)
        if txn is None:
            raise ValidationError(f"Unknown transaction: {transaction_id}")
        return txn

    def _notify(self, transaction: Transaction, change: LedgerChange) -> None:
        for listener in list(self._listeners):
            listener(transaction, change)
