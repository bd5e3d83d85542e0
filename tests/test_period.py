"""Tests for period closure rules."""

from datetime import datetime, timezone
from decimal import Decimal
import random

import pytest

from checkpoint_recon.constants import all_gaps_resolved
from checkpoint_recon.models.checkpoint import ReconciliationGap, Severity
from checkpoint_recon.models.period import (
    GAPS_UNRESOLVED_REASON,
    PERIOD_INACTIVE_REASON,
    PeriodStatus,
    ReconciliationPeriod,
    can_transition_status,
    is_ready_for_closure,
    validate_closure_constraints,
)
from checkpoint_recon.services.adjustment import AdjustmentTransactionCreator


def make_period(status=PeriodStatus.ACTIVE, gaps=None):
    return ReconciliationPeriod(
        id="period-1",
        workspace_id="household",
        start_checkpoint_id="cp-1",
        start_date=datetime(2024, 1, 31, tzinfo=timezone.utc),
        status=status,
        gaps=gaps or [],
    )


def gap(account_id, amount):
    return ReconciliationGap(
        account_id=account_id,
        gap_amount=Decimal(amount),
        gap_percentage=Decimal("0"),
        severity=Severity.LOW,
    )


class TestValidateClosureConstraints:
    """Tests for validate_closure_constraints."""

    def test_active_with_zero_gaps_can_close(self):
        decision = validate_closure_constraints(make_period(), all_gaps_zero=True)
        assert decision.can_close is True
        assert decision.reason is None

    def test_nonzero_gaps_refuse_with_reason(self):
        decision = validate_closure_constraints(make_period(), all_gaps_zero=False)
        assert decision.can_close is False
        assert decision.reason == GAPS_UNRESOLVED_REASON == "All gaps must be resolved before closure"

    def test_closed_period_refuses_with_reason(self):
        decision = validate_closure_constraints(make_period(PeriodStatus.CLOSED), all_gaps_zero=True)
        assert decision.can_close is False
        assert decision.reason == PERIOD_INACTIVE_REASON == "Period is not active"

    def test_is_ready_for_closure_matches_decision(self):
        for status in PeriodStatus:
            for zero in (True, False):
                period = make_period(status)
                assert is_ready_for_closure(period, zero) == (
                    validate_closure_constraints(period, zero).can_close
                )


class TestClosureSafety:
    """Closure is allowed iff every gap is below a cent."""

    def test_generated_gap_sets(self):
        rng = random.Random(7)
        for _ in range(200):
            gaps = [
                gap(f"acc-{i}", Decimal(rng.choice([0, 0, 0, rng.randint(-500, 500)])) / 100)
                for i in range(rng.randint(1, 6))
            ]
            zero = all_gaps_resolved(g.gap_amount for g in gaps)
            period = make_period(gaps=gaps)

            assert period.all_gaps_zero == zero
            assert AdjustmentTransactionCreator.is_period_closure_enabled(gaps) == zero
            assert validate_closure_constraints(period, zero).can_close == zero

    def test_flipping_one_gap_blocks_closure(self):
        gaps = [gap("a", "0"), gap("b", "0.004"), gap("c", "-0.009")]
        period = make_period(gaps=gaps)
        assert validate_closure_constraints(period, period.all_gaps_zero).can_close is True

        period.replace_gap(gap("b", "0.01"))
        assert validate_closure_constraints(period, period.all_gaps_zero).can_close is False


class TestCanTransitionStatus:
    """Periods never reopen."""

    @pytest.mark.parametrize("all_zero", [True, False])
    def test_closed_to_active_is_always_illegal(self, all_zero):
        assert can_transition_status("closed", "active", all_zero) is False

    @pytest.mark.parametrize("all_zero", [True, False])
    def test_closed_to_closed_is_allowed(self, all_zero):
        assert can_transition_status(PeriodStatus.CLOSED, PeriodStatus.CLOSED, all_zero) is True

    def test_active_to_closed_requires_zero_gaps(self):
        assert can_transition_status("active", "closed", True) is True
        assert can_transition_status("active", "closed", False) is False

    def test_active_to_active_is_not_a_transition(self):
        assert can_transition_status("active", "active", True) is False


class TestPeriodLocks:
    """Tests for locked transaction bookkeeping."""

    def test_lock_transactions_deduplicates(self):
        period = make_period()
        period.lock_transactions(["t1", "t2"])
        period.lock_transactions(["t2", "t3"])
        assert period.locked_transactions == ["t1", "t2", "t3"]
        assert period.is_locked("t3")
        assert not period.is_locked("t9")

    def test_needs_recompute_follows_stale_list(self):
        period = make_period()
        assert period.needs_recompute is False
        period.stale_transactions.append("t1")
        assert period.needs_recompute is True
