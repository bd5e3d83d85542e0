"""Reconciliation services: adjustments, progress and the workflow orchestrator."""

from .adjustment import (
    AdjustmentPayload,
    AdjustmentTransactionCreator,
    AdjustmentType,
    GapResolutionSummary,
    GapResolutionValidation,
    ResolutionMethodCounts,
)
from .progress import (
    GapsSummary,
    ReconciliationProgressService,
    SessionProgress,
    StepDisplayInfo,
    StepValidation,
)
from .reconciliation_service import (
    AccountBalanceInput,
    GapSummary,
    PeriodClosureResult,
    ReconciliationService,
    SessionAdvance,
    balance_inputs,
)

__all__ = [
    "AdjustmentPayload",
    "AdjustmentTransactionCreator",
    "AdjustmentType",
    "GapResolutionSummary",
    "GapResolutionValidation",
    "ResolutionMethodCounts",
    "GapsSummary",
    "ReconciliationProgressService",
    "SessionProgress",
    "StepDisplayInfo",
    "StepValidation",
    "AccountBalanceInput",
    "GapSummary",
    "PeriodClosureResult",
    "ReconciliationService",
    "SessionAdvance",
    "balance_inputs",
]
