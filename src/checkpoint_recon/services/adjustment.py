"""
Adjustment transaction creation for residual gaps.

A positive gap (actual above expected) is found money and becomes income; a
negative gap is missing money and becomes an expense. Both are posted as
synthetic ledger entries so the books agree with the declared balance.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Callable, Iterable, Optional
import logging
import uuid

from ..config import PolicyConfig
from ..constants import ZERO, MoneyLike, all_gaps_resolved, is_gap_resolved, to_decimal
from ..models.checkpoint import ReconciliationGap, ResolutionMethod
from ..models.ledger import Transaction, TransactionType
from ..persistence.ledger import LedgerAccessor
from ..utils.exceptions import ValidationError

logger = logging.getLogger(__name__)

INCOME_DESCRIPTION = "Reconciliation Adjustment - Other Income"
EXPENSE_DESCRIPTION = "Reconciliation Adjustment - Other Expense"


@dataclass(frozen=True)
class AdjustmentType:
    type: TransactionType
    category_type: TransactionType
    description: str


@dataclass
class AdjustmentPayload:
    """Caller overrides for a manual adjustment transaction."""

    amount: Optional[Decimal] = None
    description: Optional[str] = None
    category_id: Optional[str] = None
    date: Optional[date] = None
    transaction_id: Optional[str] = None


@dataclass
class GapResolutionValidation:
    is_resolved: bool
    remaining_gaps: list[ReconciliationGap] = field(default_factory=list)
    total_remaining_amount: Decimal = ZERO


@dataclass
class ResolutionMethodCounts:
    quick_close: int = 0
    manual_transaction: int = 0
    unresolved: int = 0

    @property
    def total(self) -> int:
        return self.quick_close + self.manual_transaction + self.unresolved


@dataclass
class GapResolutionSummary:
    total_original_gap: Decimal
    total_resolved_gap: Decimal
    resolution_methods: ResolutionMethodCounts
    adjustment_transactions: list[str] = field(default_factory=list)


class AdjustmentTransactionCreator:
    """Determines and posts adjustment transactions for unresolved gaps."""

    def __init__(
        self,
        ledger: LedgerAccessor,
        policy: Optional[PolicyConfig] = None,
        id_factory: Optional[Callable[[], str]] = None,
    ):
        """
        Args:
            ledger: Ledger that receives the adjustment entries
            policy: Resolution policy (category ids per direction)
            id_factory: Generates transaction ids, uuid4 by default
        """
        self.ledger = ledger
        self.policy = policy or PolicyConfig()
        self.id_factory = id_factory or (lambda: str(uuid.uuid4()))

    @staticmethod
    def determine_adjustment_type(gap_amount: MoneyLike) -> AdjustmentType:
        """
        Pick the transaction direction for a gap.

        Raises:
            ValidationError: If the gap is already below the tolerance
        """
        amount = to_decimal(gap_amount)
        if is_gap_resolved(amount):
            raise ValidationError(
                f"Gap {amount} is below the resolution threshold and needs no adjustment"
            )
        if amount > ZERO:
            return AdjustmentType(
                type=TransactionType.INCOME,
                category_type=TransactionType.INCOME,
                description=INCOME_DESCRIPTION,
            )
        return AdjustmentType(
            type=TransactionType.EXPENSE,
            category_type=TransactionType.EXPENSE,
            description=EXPENSE_DESCRIPTION,
        )

    @staticmethod
    def validate_gap_resolution(gaps: Iterable[ReconciliationGap]) -> GapResolutionValidation:
        remaining = [g for g in gaps if not is_gap_resolved(g.gap_amount)]
        return GapResolutionValidation(
            is_resolved=not remaining,
            remaining_gaps=remaining,
            total_remaining_amount=sum((abs(g.gap_amount) for g in remaining), ZERO),
        )

    @staticmethod
    def get_gap_resolution_summary(
        original_gaps: Iterable[ReconciliationGap],
        resolved_gaps: Iterable[ReconciliationGap],
    ) -> GapResolutionSummary:
        """
        Summarize how a set of gaps was resolved.

        Every entry of ``resolved_gaps`` is counted exactly once: by its
        resolution method, or as unresolved when it has none.
        """
        original = list(original_gaps)
        resolved = list(resolved_gaps)

        counts = ResolutionMethodCounts()
        adjustment_ids: list[str] = []
        for gap in resolved:
            if gap.resolution_method == ResolutionMethod.QUICK_CLOSE:
                counts.quick_close += 1
            elif gap.resolution_method == ResolutionMethod.MANUAL_TRANSACTION:
                counts.manual_transaction += 1
            else:
                counts.unresolved += 1
            if gap.adjustment_transaction_id:
                adjustment_ids.append(gap.adjustment_transaction_id)

        return GapResolutionSummary(
            total_original_gap=sum((abs(g.gap_amount) for g in original), ZERO),
            total_resolved_gap=sum((abs(g.gap_amount) for g in resolved), ZERO),
            resolution_methods=counts,
            adjustment_transactions=adjustment_ids,
        )

    @staticmethod
    def is_period_closure_enabled(gaps: Iterable[ReconciliationGap]) -> bool:
        return all_gaps_resolved(g.gap_amount for g in gaps)

    def build_adjustment_transaction(
        self,
        gap: ReconciliationGap,
        as_of_date: date,
        workspace_id: Optional[str] = None,
        payload: Optional[AdjustmentPayload] = None,
        window_start: Optional[date] = None,
    ) -> Transaction:
        """
        Build, without posting, the transaction that offsets ``gap``.

        ``window_start`` is the exclusive lower bound of the expected-balance
        window; an adjustment dated on or before it would not move the gap.
        """
        adjustment = self.determine_adjustment_type(gap.gap_amount)
        payload = payload or AdjustmentPayload()

        amount = abs(gap.gap_amount)
        if payload.amount is not None:
            amount = to_decimal(payload.amount)
            if amount <= ZERO:
                raise ValidationError(f"Adjustment amount must be positive, got {amount}")

        txn_date = payload.date or as_of_date
        if txn_date > as_of_date:
            raise ValidationError(
                f"Adjustment dated {txn_date} falls after the checkpoint date {as_of_date}"
            )
        if window_start is not None and txn_date <= window_start:
            raise ValidationError(
                f"Adjustment dated {txn_date} falls on or before the reconciliation window start {window_start}"
            )

        category_id = payload.category_id or self.policy.adjustment_category_ids.get(
            adjustment.category_type.value
        )

        return Transaction(
            id=payload.transaction_id or self.id_factory(),
            account_id=gap.account_id,
            amount=amount,
            type=adjustment.type,
            date=txn_date,
            description=payload.description or adjustment.description,
            category_id=category_id,
            workspace_id=workspace_id,
            is_adjustment=True,
        )

    def create_adjustment(
        self,
        gap: ReconciliationGap,
        as_of_date: date,
        workspace_id: Optional[str] = None,
        payload: Optional[AdjustmentPayload] = None,
        window_start: Optional[date] = None,
    ) -> Transaction:
        """Post the adjustment transaction for ``gap`` to the ledger."""
        transaction = self.build_adjustment_transaction(
            gap, as_of_date, workspace_id, payload, window_start=window_start
        )
        posted = self.ledger.add(transaction)
        logger.info(
            f"Posted {posted.type.value} adjustment {posted.id} of {posted.amount} "
            f"on {posted.account_id} for gap {gap.gap_amount}"
        )
        return posted
