"""Ledger transaction model consumed by the reconciliation engine."""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from ..constants import ZERO, to_decimal
from ..utils.exceptions import ValidationError


class TransactionType(Enum):
    """Direction of a ledger transaction."""

    INCOME = "income"  # Money in
    EXPENSE = "expense"  # Money out


@dataclass
class Transaction:
    """
    A ledger transaction as returned by the ledger accessor.

    Amounts are stored as positive magnitudes; ``type`` carries the sign.
    """

    id: str
    account_id: str

    # Positive magnitude, direction comes from ``type``
    amount: Decimal

    type: TransactionType
    date: date

    description: str = ""
    category_id: Optional[str] = None
    workspace_id: Optional[str] = None

    # Soft-delete marker; deleted transactions never participate in balance math
    deleted_at: Optional[datetime] = None

    # Set for synthetic entries created by the adjustment workflow
    is_adjustment: bool = False

    raw_data: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.amount = to_decimal(self.amount)
        if self.amount <= ZERO:
            raise ValidationError(
                f"Transaction {self.id}: amount must be a positive magnitude, got {self.amount}"
            )
        if isinstance(self.type, str):
            self.type = TransactionType(self.type)

    @property
    def signed_amount(self) -> Decimal:
        """+amount for income, -amount for expense."""
        if self.type == TransactionType.INCOME:
            return self.amount
        return -self.amount

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


@dataclass
class Account:
    """Account master data, owned by the surrounding application."""

    id: str
    name: str
    currency: str
    workspace_id: Optional[str] = None
