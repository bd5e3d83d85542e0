"""
Expected-balance calculation.

expected = baseline + signed sum of non-deleted transactions after the baseline
date, up to and including the as-of date. The baseline is the actual balance
of the most recent closed checkpoint for the account, or zero at the start of
the current month for an account that was never reconciled.
"""

from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from typing import Optional
import logging

from ..constants import ZERO
from ..models.ledger import Transaction
from ..persistence.ledger import LedgerAccessor
from ..persistence.repositories import CheckpointRepository
from ..utils.exceptions import DataIntegrityError

logger = logging.getLogger(__name__)


@dataclass
class ExpectedBalanceResult:
    """Expected balance plus the inputs that produced it."""

    account_id: str
    as_of_date: date
    baseline: Decimal
    expected_balance: Decimal

    # None when the implicit month-start baseline was used
    baseline_checkpoint_id: Optional[str] = None

    # Exclusive lower bound of the transaction window
    window_start: Optional[date] = None

    transactions: list[Transaction] = field(default_factory=list)

    @property
    def transaction_ids(self) -> list[str]:
        return [t.id for t in self.transactions]

    @property
    def transaction_volume(self) -> Decimal:
        """Sum of transaction magnitudes in the window."""
        return sum((t.amount for t in self.transactions), ZERO)


class ExpectedBalanceCalculator:
    """Derives expected balances from the last closed checkpoint and the ledger."""

    def __init__(self, ledger: LedgerAccessor, checkpoints: CheckpointRepository):
        self.ledger = ledger
        self.checkpoints = checkpoints

    def calculate_expected_balance(
        self,
        account_id: str,
        workspace_id: str,
        as_of_date: date,
        exclude_checkpoint_id: Optional[str] = None,
    ) -> Decimal:
        """Expected balance for ``account_id`` at ``as_of_date``."""
        return self.compute(
            account_id, workspace_id, as_of_date, exclude_checkpoint_id
        ).expected_balance

    def compute(
        self,
        account_id: str,
        workspace_id: str,
        as_of_date: date,
        exclude_checkpoint_id: Optional[str] = None,
    ) -> ExpectedBalanceResult:
        """
        Compute the expected balance and keep the contributing transactions.

        Args:
            account_id: Account to compute
            workspace_id: Workspace owning the checkpoints
            as_of_date: Inclusive end of the transaction window
            exclude_checkpoint_id: Checkpoint that must not serve as its own baseline

        Returns:
            ExpectedBalanceResult

        Raises:
            DataIntegrityError: If the prior checkpoint is dated after ``as_of_date``
        """
        previous = self.checkpoints.latest_closed_before(
            workspace_id, account_id, as_of_date, exclude_id=exclude_checkpoint_id
        )

        if previous is None:
            baseline = ZERO
            baseline_checkpoint_id = None
            window_start = month_start(as_of_date) - timedelta(days=1)
        else:
            balance = previous.balance_for(account_id)
            if balance is None or previous.as_of_date > as_of_date:
                raise DataIntegrityError(
                    f"Checkpoint {previous.id} cannot serve as baseline for "
                    f"{account_id} at {as_of_date}"
                )
            baseline = balance.actual_balance
            baseline_checkpoint_id = previous.id
            window_start = previous.as_of_date

        transactions = self.ledger.list_transactions(
            account_id, after=window_start, through=as_of_date
        )
        # Accessors are expected to filter soft deletes; do not rely on it
        transactions = [t for t in transactions if not t.is_deleted]

        delta = sum((t.signed_amount for t in transactions), ZERO)
        expected = baseline + delta

        logger.debug(
            f"Expected balance {account_id}@{as_of_date}: baseline {baseline} "
            f"({baseline_checkpoint_id or 'month start'}) + {delta} "
            f"over {len(transactions)} txns = {expected}"
        )

        return ExpectedBalanceResult(
            account_id=account_id,
            as_of_date=as_of_date,
            baseline=baseline,
            expected_balance=expected,
            baseline_checkpoint_id=baseline_checkpoint_id,
            window_start=window_start,
            transactions=transactions,
        )


def month_start(value: date) -> date:
    return value.replace(day=1)
