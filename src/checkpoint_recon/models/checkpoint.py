"""Checkpoint snapshot models: account balances, gaps and the checkpoint itself."""

from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from ..constants import ZERO, GAP_EPSILON, is_gap_resolved, to_decimal
from ..utils.exceptions import ValidationError


class Severity(Enum):
    """Gap severity relative to period transaction volume."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {Severity.LOW: 0, Severity.MEDIUM: 1, Severity.HIGH: 2}


class ResolutionMethod(Enum):
    """How a gap was extinguished."""

    QUICK_CLOSE = "quick_close"
    MANUAL_TRANSACTION = "manual_transaction"


class CheckpointStatus(Enum):
    """Checkpoint lifecycle: only the status ever changes after creation."""

    OPEN = "open"
    RESOLVED = "resolved"  # Every gap extinguished, period not yet closed
    CLOSED = "closed"


@dataclass
class AccountBalance:
    """Declared versus computed balance for one account at a checkpoint."""

    account_id: str
    account_name: str
    currency: str
    actual_balance: Decimal
    expected_balance: Decimal

    # Derived from actual - expected when not supplied
    gap_amount: Optional[Decimal] = None

    # Percentage of period transaction volume, not of the balance
    gap_percentage: Decimal = ZERO

    def __post_init__(self) -> None:
        self.actual_balance = to_decimal(self.actual_balance)
        self.expected_balance = to_decimal(self.expected_balance)
        self.gap_percentage = to_decimal(self.gap_percentage)

        computed = self.actual_balance - self.expected_balance
        if self.gap_amount is None:
            self.gap_amount = computed
        else:
            self.gap_amount = to_decimal(self.gap_amount)
            if abs(self.gap_amount - computed) >= GAP_EPSILON:
                raise ValidationError(
                    f"Account {self.account_id}: gap {self.gap_amount} does not equal "
                    f"actual {self.actual_balance} - expected {self.expected_balance}"
                )

    @property
    def is_reconciled(self) -> bool:
        return is_gap_resolved(self.gap_amount)

    def to_dict(self) -> dict[str, Any]:
        return {
            "account_id": self.account_id,
            "account_name": self.account_name,
            "currency": self.currency,
            "actual_balance": str(self.actual_balance),
            "expected_balance": str(self.expected_balance),
            "gap_amount": str(self.gap_amount),
            "gap_percentage": str(self.gap_percentage),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AccountBalance":
        return cls(
            account_id=data["account_id"],
            account_name=data.get("account_name", ""),
            currency=data.get("currency", ""),
            actual_balance=data["actual_balance"],
            expected_balance=data["expected_balance"],
            gap_amount=data.get("gap_amount"),
            gap_percentage=data.get("gap_percentage", ZERO),
        )


@dataclass
class ReconciliationGap:
    """Signed discrepancy for one account plus how it was resolved."""

    account_id: str
    gap_amount: Decimal
    gap_percentage: Decimal
    severity: Severity
    resolution_method: Optional[ResolutionMethod] = None
    adjustment_transaction_id: Optional[str] = None

    # Quick close keeps the accepted discrepancy here and records a zero gap
    written_off_amount: Optional[Decimal] = None

    def __post_init__(self) -> None:
        self.gap_amount = to_decimal(self.gap_amount)
        self.gap_percentage = to_decimal(self.gap_percentage)
        if isinstance(self.severity, str):
            self.severity = Severity(self.severity)
        if isinstance(self.resolution_method, str):
            self.resolution_method = ResolutionMethod(self.resolution_method)
        if self.written_off_amount is not None:
            self.written_off_amount = to_decimal(self.written_off_amount)

    @property
    def is_resolved(self) -> bool:
        return is_gap_resolved(self.gap_amount)

    def with_changes(self, **changes: Any) -> "ReconciliationGap":
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        return {
            "account_id": self.account_id,
            "gap_amount": str(self.gap_amount),
            "gap_percentage": str(self.gap_percentage),
            "severity": self.severity.value,
            "resolution_method": (
                self.resolution_method.value if self.resolution_method else None
            ),
            "adjustment_transaction_id": self.adjustment_transaction_id,
            "written_off_amount": (
                str(self.written_off_amount) if self.written_off_amount is not None else None
            ),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ReconciliationGap":
        return cls(
            account_id=data["account_id"],
            gap_amount=data["gap_amount"],
            gap_percentage=data.get("gap_percentage", ZERO),
            severity=data["severity"],
            resolution_method=data.get("resolution_method"),
            adjustment_transaction_id=data.get("adjustment_transaction_id"),
            written_off_amount=data.get("written_off_amount"),
        )


@dataclass
class Checkpoint:
    """
    Immutable snapshot of declared versus computed balances.

    Created once per reconciliation event. Only ``status`` transitions after
    creation; gap resolution is tracked on the reconciliation period.
    """

    id: str
    workspace_id: str
    created_at: datetime
    created_by: str

    # Date the declared balances refer to
    as_of_date: date

    account_balances: list[AccountBalance] = field(default_factory=list)
    gaps: list[ReconciliationGap] = field(default_factory=list)
    status: CheckpointStatus = CheckpointStatus.OPEN
    notes: Optional[str] = None

    def __post_init__(self) -> None:
        self.created_at = truncate_to_millis(self.created_at)
        if isinstance(self.status, str):
            self.status = CheckpointStatus(self.status)

    def balance_for(self, account_id: str) -> Optional[AccountBalance]:
        return next((b for b in self.account_balances if b.account_id == account_id), None)

    def gap_for(self, account_id: str) -> Optional[ReconciliationGap]:
        return next((g for g in self.gaps if g.account_id == account_id), None)

    @property
    def account_ids(self) -> list[str]:
        return [b.account_id for b in self.account_balances]

    def to_dict(self) -> dict[str, Any]:
        """Serialize with ISO-8601 millisecond timestamps."""
        return {
            "id": self.id,
            "workspace_id": self.workspace_id,
            "created_at": format_timestamp(self.created_at),
            "created_by": self.created_by,
            "as_of_date": self.as_of_date.isoformat(),
            "account_balances": [b.to_dict() for b in self.account_balances],
            "gaps": [g.to_dict() for g in self.gaps],
            "status": self.status.value,
            "notes": self.notes,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Checkpoint":
        return cls(
            id=data["id"],
            workspace_id=data["workspace_id"],
            created_at=parse_timestamp(data["created_at"]),
            created_by=data["created_by"],
            as_of_date=date.fromisoformat(data["as_of_date"]),
            account_balances=[AccountBalance.from_dict(b) for b in data.get("account_balances", [])],
            gaps=[ReconciliationGap.from_dict(g) for g in data.get("gaps", [])],
            status=data.get("status", CheckpointStatus.OPEN.value),
            notes=data.get("notes"),
        )


def truncate_to_millis(value: datetime) -> datetime:
    """Drop sub-millisecond precision and normalize naive values to UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.replace(microsecond=(value.microsecond // 1000) * 1000)


def format_timestamp(value: datetime) -> str:
    return truncate_to_millis(value).isoformat(timespec="milliseconds")


def parse_timestamp(value: str) -> datetime:
    # fromisoformat only accepts a trailing "Z" on Python 3.11+
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return truncate_to_millis(datetime.fromisoformat(value))
