"""
Reconciliation period model and closure rules.

A period is opened by a checkpoint and tracks the gaps that checkpoint
surfaced. It may only be sealed once every one of those gaps is extinguished;
closing is terminal.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, Union

from ..constants import ZERO, all_gaps_resolved
from .checkpoint import ReconciliationGap

GAPS_UNRESOLVED_REASON = "All gaps must be resolved before closure"
PERIOD_INACTIVE_REASON = "Period is not active"


class PeriodStatus(Enum):
    """Period lifecycle. CLOSED is terminal."""

    ACTIVE = "active"
    CLOSED = "closed"


@dataclass
class ReconciliationPeriod:
    """Open interval between two checkpoints."""

    id: str
    workspace_id: str
    start_checkpoint_id: str
    start_date: datetime

    end_checkpoint_id: Optional[str] = None
    end_date: Optional[datetime] = None
    status: PeriodStatus = PeriodStatus.ACTIVE

    # Activity attributed to the period
    total_transactions: int = 0
    total_amount: Decimal = ZERO
    pattern_learning_completed: bool = False

    # Transactions that fed the last gap computation
    locked_transactions: list[str] = field(default_factory=list)

    # Working copy of the start checkpoint's gaps as they get resolved
    gaps: list[ReconciliationGap] = field(default_factory=list)

    # Locked transactions touched since the last computation
    stale_transactions: list[str] = field(default_factory=list)

    # Optimistic concurrency token, bumped on every successful write
    version: int = 0

    def __post_init__(self) -> None:
        if isinstance(self.status, str):
            self.status = PeriodStatus(self.status)

    @property
    def is_active(self) -> bool:
        return self.status == PeriodStatus.ACTIVE

    @property
    def needs_recompute(self) -> bool:
        return bool(self.stale_transactions)

    @property
    def all_gaps_zero(self) -> bool:
        return all_gaps_resolved(g.gap_amount for g in self.gaps)

    def lock_transactions(self, transaction_ids: list[str]) -> None:
        seen = set(self.locked_transactions)
        for txn_id in transaction_ids:
            if txn_id not in seen:
                self.locked_transactions.append(txn_id)
                seen.add(txn_id)

    def is_locked(self, transaction_id: str) -> bool:
        return transaction_id in self.locked_transactions

    def gap_for(self, account_id: str) -> Optional[ReconciliationGap]:
        return next((g for g in self.gaps if g.account_id == account_id), None)

    def replace_gap(self, gap: ReconciliationGap) -> None:
        self.gaps = [gap if g.account_id == gap.account_id else g for g in self.gaps]


@dataclass(frozen=True)
class ClosureDecision:
    """Outcome of a closure check. A refusal is a normal result, not an error."""

    can_close: bool
    reason: Optional[str] = None


def validate_closure_constraints(
    period: ReconciliationPeriod, all_gaps_zero: bool
) -> ClosureDecision:
    """Check whether ``period`` may be sealed right now."""
    if period.status != PeriodStatus.ACTIVE:
        return ClosureDecision(can_close=False, reason=PERIOD_INACTIVE_REASON)
    if not all_gaps_zero:
        return ClosureDecision(can_close=False, reason=GAPS_UNRESOLVED_REASON)
    return ClosureDecision(can_close=True)


def can_transition_status(
    from_status: Union[PeriodStatus, str],
    to_status: Union[PeriodStatus, str],
    all_gaps_zero: bool,
) -> bool:
    """
    Legal transitions are active -> closed (gaps zero) and closed -> closed.

    Periods never reopen.
    """
    from_status = PeriodStatus(from_status)
    to_status = PeriodStatus(to_status)

    if from_status == PeriodStatus.CLOSED:
        return to_status == PeriodStatus.CLOSED
    if to_status == PeriodStatus.CLOSED:
        return all_gaps_zero
    return False


def is_ready_for_closure(period: ReconciliationPeriod, all_gaps_zero: bool) -> bool:
    return validate_closure_constraints(period, all_gaps_zero).can_close
