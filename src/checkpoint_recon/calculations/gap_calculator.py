"""
Gap calculation, severity classification and multi-account aggregation.

Gap percentage is measured against the transaction volume of the
reconciliation period, so a gap against light activity reads as more severe
than the same gap against heavy activity.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, Union
import logging

from ..constants import (
    HIGH_SEVERITY_LIMIT,
    HUNDRED,
    LOW_SEVERITY_LIMIT,
    ZERO,
    MoneyLike,
    is_gap_resolved,
    to_decimal,
)
from ..models.checkpoint import AccountBalance, ReconciliationGap, Severity
from ..utils.exceptions import ValidationError

logger = logging.getLogger(__name__)

SEVERITY_COLORS = {
    Severity.LOW: "#4E7A58",
    Severity.MEDIUM: "#D97706",
    Severity.HIGH: "#EF4444",
}

SEVERITY_LABELS = {
    Severity.LOW: "Good",
    Severity.MEDIUM: "Review",
    Severity.HIGH: "Action Required",
}


@dataclass(frozen=True)
class GapCalculation:
    amount: Decimal
    percentage: Decimal


@dataclass
class GapAggregation:
    """Consolidated view of gaps across accounts."""

    total_gap_amount: Decimal
    total_absolute_gap: Decimal
    overall_severity: Severity
    accounts_with_gaps: list[AccountBalance] = field(default_factory=list)
    gaps_by_account: dict[str, ReconciliationGap] = field(default_factory=dict)

    @property
    def account_ids_with_gaps(self) -> list[str]:
        return [b.account_id for b in self.accounts_with_gaps]


def calculate_gap_percentage(gap_amount: MoneyLike, period_transaction_total: MoneyLike) -> Decimal:
    """abs(gap) / period total * 100, or zero when there was no activity."""
    total = _period_total(period_transaction_total)
    if total == ZERO:
        return ZERO
    return abs(to_decimal(gap_amount)) / total * HUNDRED


def severity_for_percentage(percentage: MoneyLike) -> Severity:
    """Below 2% is low, 2% through 5% inclusive is medium, above 5% is high."""
    value = abs(to_decimal(percentage))
    if value < LOW_SEVERITY_LIMIT:
        return Severity.LOW
    if value <= HIGH_SEVERITY_LIMIT:
        return Severity.MEDIUM
    return Severity.HIGH


def analyze_gap_severity(gap_amount: MoneyLike, period_transaction_total: MoneyLike) -> Severity:
    """
    Classify a gap against the period's transaction volume.

    With no activity in the period there is nothing to judge against, so the
    severity is low whatever the gap.
    """
    total = _period_total(period_transaction_total)
    if total == ZERO:
        return Severity.LOW
    return severity_for_percentage(calculate_gap_percentage(gap_amount, total))


def calculate_gap(
    actual_balance: MoneyLike,
    expected_balance: MoneyLike,
    period_transaction_total: MoneyLike = ZERO,
) -> GapCalculation:
    amount = to_decimal(actual_balance) - to_decimal(expected_balance)
    return GapCalculation(
        amount=amount,
        percentage=calculate_gap_percentage(amount, period_transaction_total),
    )


def create_reconciliation_gap(
    account_balance: AccountBalance, period_total: MoneyLike
) -> ReconciliationGap:
    """Copy the balance's gap figures and attach severity."""
    return ReconciliationGap(
        account_id=account_balance.account_id,
        gap_amount=account_balance.gap_amount,
        gap_percentage=account_balance.gap_percentage,
        severity=analyze_gap_severity(account_balance.gap_amount, period_total),
    )


def aggregate_multi_account_gaps(account_balances: Iterable[AccountBalance]) -> GapAggregation:
    """
    Consolidate gaps across accounts.

    Accounts whose gap is below the tolerance are left out of
    ``accounts_with_gaps`` and ``gaps_by_account``. The overall severity is
    the worst severity among the accounts that still carry a gap.
    """
    balances = list(account_balances)

    total_gap = sum((b.gap_amount for b in balances), ZERO)
    total_absolute = sum((abs(b.gap_amount) for b in balances), ZERO)

    with_gaps: list[AccountBalance] = []
    gaps_by_account: dict[str, ReconciliationGap] = {}
    overall = Severity.LOW

    for balance in balances:
        if is_gap_resolved(balance.gap_amount):
            continue
        severity = severity_for_percentage(balance.gap_percentage)
        with_gaps.append(balance)
        gaps_by_account[balance.account_id] = ReconciliationGap(
            account_id=balance.account_id,
            gap_amount=balance.gap_amount,
            gap_percentage=balance.gap_percentage,
            severity=severity,
        )
        if severity.rank > overall.rank:
            overall = severity

    logger.debug(
        f"Aggregated {len(balances)} accounts: total {total_gap}, "
        f"absolute {total_absolute}, {len(with_gaps)} with gaps, {overall.value}"
    )

    return GapAggregation(
        total_gap_amount=total_gap,
        total_absolute_gap=total_absolute,
        overall_severity=overall,
        accounts_with_gaps=with_gaps,
        gaps_by_account=gaps_by_account,
    )


def get_gap_severity_color(severity: Union[Severity, str]) -> str:
    return SEVERITY_COLORS[Severity(severity)]


def get_gap_severity_text(severity: Union[Severity, str]) -> str:
    return SEVERITY_LABELS[Severity(severity)]


def _period_total(value: MoneyLike) -> Decimal:
    total = to_decimal(value)
    if total < ZERO:
        raise ValidationError(f"Period transaction total cannot be negative: {total}")
    return total
