"""Tests for the expected-balance calculator."""

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from checkpoint_recon.calculations.expected_balance import ExpectedBalanceCalculator, month_start
from checkpoint_recon.models.checkpoint import AccountBalance, Checkpoint, CheckpointStatus
from checkpoint_recon.persistence.ledger import InMemoryLedger
from checkpoint_recon.persistence.repositories import CheckpointRepository

from conftest import WORKSPACE, make_transaction


def closed_checkpoint(checkpoint_id, as_of, actual, account_id="checking", status=CheckpointStatus.CLOSED):
    return Checkpoint(
        id=checkpoint_id,
        workspace_id=WORKSPACE,
        created_at=datetime(as_of.year, as_of.month, as_of.day, 18, tzinfo=timezone.utc),
        created_by="alice",
        as_of_date=as_of,
        account_balances=[
            AccountBalance(
                account_id=account_id,
                account_name="Checking",
                currency="UAH",
                actual_balance=Decimal(actual),
                expected_balance=Decimal(actual),
            )
        ],
        status=status,
    )


@pytest.fixture
def checkpoints():
    repo = CheckpointRepository()
    repo.add(closed_checkpoint("cp-dec", date(2023, 12, 31), "1000.00"))
    return repo


class TestExpectedBalanceWithPriorCheckpoint:
    """Baseline comes from the latest closed checkpoint."""

    def test_baseline_plus_signed_deltas(self, ledger, checkpoints):
        """1000 + 500 - 200 - 50 = 1250."""
        calculator = ExpectedBalanceCalculator(ledger, checkpoints)
        expected = calculator.calculate_expected_balance("checking", WORKSPACE, date(2024, 1, 31))
        assert expected == Decimal("1250.00")

    def test_transactions_on_boundary_date_are_included(self, ledger, checkpoints):
        calculator = ExpectedBalanceCalculator(ledger, checkpoints)
        # t3 is dated exactly 2024-01-20
        assert calculator.calculate_expected_balance(
            "checking", WORKSPACE, date(2024, 1, 20)
        ) == Decimal("1250.00")
        assert calculator.calculate_expected_balance(
            "checking", WORKSPACE, date(2024, 1, 19)
        ) == Decimal("1300.00")

    def test_transactions_on_checkpoint_date_are_excluded(self, checkpoints):
        ledger = InMemoryLedger(
            [
                make_transaction("same-day", "checking", "99", "income", date(2023, 12, 31)),
                make_transaction("next-day", "checking", "1", "income", date(2024, 1, 1)),
            ]
        )
        result = ExpectedBalanceCalculator(ledger, checkpoints).compute(
            "checking", WORKSPACE, date(2024, 1, 31)
        )
        assert result.expected_balance == Decimal("1001.00")
        assert result.transaction_ids == ["next-day"]
        assert result.baseline_checkpoint_id == "cp-dec"

    def test_zero_transactions_returns_baseline(self, checkpoints):
        calculator = ExpectedBalanceCalculator(InMemoryLedger(), checkpoints)
        assert calculator.calculate_expected_balance(
            "checking", WORKSPACE, date(2024, 1, 31)
        ) == Decimal("1000.00")

    def test_soft_deleted_transactions_do_not_count(self, ledger, checkpoints):
        ledger.delete("t1", datetime(2024, 1, 25, tzinfo=timezone.utc))
        calculator = ExpectedBalanceCalculator(ledger, checkpoints)
        assert calculator.calculate_expected_balance(
            "checking", WORKSPACE, date(2024, 1, 31)
        ) == Decimal("750.00")

    def test_latest_closed_checkpoint_wins(self, ledger, checkpoints):
        checkpoints.add(closed_checkpoint("cp-jan10", date(2024, 1, 10), "2000.00"))
        result = ExpectedBalanceCalculator(ledger, checkpoints).compute(
            "checking", WORKSPACE, date(2024, 1, 31)
        )
        assert result.baseline_checkpoint_id == "cp-jan10"
        assert result.expected_balance == Decimal("1950.00")

    def test_open_checkpoints_are_never_a_baseline(self, ledger, checkpoints):
        checkpoints.add(
            closed_checkpoint("cp-open", date(2024, 1, 10), "9999", status=CheckpointStatus.OPEN)
        )
        result = ExpectedBalanceCalculator(ledger, checkpoints).compute(
            "checking", WORKSPACE, date(2024, 1, 31)
        )
        assert result.baseline_checkpoint_id == "cp-dec"

    def test_excluded_checkpoint_is_skipped(self, ledger, checkpoints):
        checkpoints.add(closed_checkpoint("cp-self", date(2024, 1, 31), "5000"))
        result = ExpectedBalanceCalculator(ledger, checkpoints).compute(
            "checking", WORKSPACE, date(2024, 1, 31), exclude_checkpoint_id="cp-self"
        )
        assert result.baseline_checkpoint_id == "cp-dec"


class TestExpectedBalanceWithoutCheckpoint:
    """Never-reconciled accounts start from zero at the start of the month."""

    def test_month_start_baseline(self, ledger):
        calculator = ExpectedBalanceCalculator(ledger, CheckpointRepository())
        result = calculator.compute("checking", WORKSPACE, date(2024, 1, 31))
        assert result.baseline == Decimal("0")
        assert result.baseline_checkpoint_id is None
        assert result.expected_balance == Decimal("250")

    def test_previous_month_is_ignored(self):
        ledger = InMemoryLedger(
            [
                make_transaction("dec", "checking", "400", "income", date(2023, 12, 31)),
                make_transaction("jan1", "checking", "10", "income", date(2024, 1, 1)),
            ]
        )
        calculator = ExpectedBalanceCalculator(ledger, CheckpointRepository())
        assert calculator.calculate_expected_balance(
            "checking", WORKSPACE, date(2024, 1, 15)
        ) == Decimal("10")

    def test_month_start_helper(self):
        assert month_start(date(2024, 2, 29)) == date(2024, 2, 1)


class TestDeterminism:
    """Repeated calls return identical results."""

    def test_repeated_calls_are_identical(self, ledger, checkpoints):
        calculator = ExpectedBalanceCalculator(ledger, checkpoints)
        results = {
            calculator.calculate_expected_balance("checking", WORKSPACE, date(2024, 1, 31))
            for _ in range(5)
        }
        assert len(results) == 1

    def test_volume_is_sum_of_magnitudes(self, ledger, checkpoints):
        result = ExpectedBalanceCalculator(ledger, checkpoints).compute(
            "checking", WORKSPACE, date(2024, 1, 31)
        )
        assert result.transaction_volume == Decimal("750")
