"""Data models for checkpoint reconciliation."""

from .ledger import Account, Transaction, TransactionType
from .checkpoint import (
    AccountBalance,
    Checkpoint,
    CheckpointStatus,
    ReconciliationGap,
    ResolutionMethod,
    Severity,
)
from .period import (
    ClosureDecision,
    PeriodStatus,
    ReconciliationPeriod,
    can_transition_status,
    is_ready_for_closure,
    validate_closure_constraints,
)
from .session import (
    STEP_ORDER,
    ReconciliationSession,
    ReconciliationStep,
    SessionMetadata,
    SessionStatus,
)

__all__ = [
    "Account",
    "Transaction",
    "TransactionType",
    "AccountBalance",
    "Checkpoint",
    "CheckpointStatus",
    "ReconciliationGap",
    "ResolutionMethod",
    "Severity",
    "ClosureDecision",
    "PeriodStatus",
    "ReconciliationPeriod",
    "can_transition_status",
    "is_ready_for_closure",
    "validate_closure_constraints",
    "STEP_ORDER",
    "ReconciliationSession",
    "ReconciliationStep",
    "SessionMetadata",
    "SessionStatus",
]
