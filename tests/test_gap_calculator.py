"""Tests for gap calculation, severity and multi-account aggregation."""

from decimal import Decimal
import random

import pytest

from checkpoint_recon.calculations.gap_calculator import (
    aggregate_multi_account_gaps,
    analyze_gap_severity,
    calculate_gap,
    calculate_gap_percentage,
    create_reconciliation_gap,
    get_gap_severity_color,
    get_gap_severity_text,
    severity_for_percentage,
)
from checkpoint_recon.models.checkpoint import AccountBalance, Severity
from checkpoint_recon.utils.exceptions import ValidationError


def balance(account_id, actual, expected, percentage="0"):
    return AccountBalance(
        account_id=account_id,
        account_name=account_id.upper(),
        currency="UAH",
        actual_balance=Decimal(actual),
        expected_balance=Decimal(expected),
        gap_percentage=Decimal(percentage),
    )


class TestSeverityThresholds:
    """Boundaries are closed on the medium side."""

    @pytest.mark.parametrize(
        "percentage, severity",
        [
            ("0", Severity.LOW),
            ("1.99", Severity.LOW),
            ("2.00", Severity.MEDIUM),
            ("3.5", Severity.MEDIUM),
            ("5.00", Severity.MEDIUM),
            ("5.01", Severity.HIGH),
            ("250", Severity.HIGH),
        ],
    )
    def test_percentage_thresholds(self, percentage, severity):
        assert severity_for_percentage(Decimal(percentage)) == severity

    @pytest.mark.parametrize(
        "gap, total, severity",
        [
            ("1.99", "100", Severity.LOW),
            ("2", "100", Severity.MEDIUM),
            ("-5", "100", Severity.MEDIUM),
            ("5.01", "100", Severity.HIGH),
        ],
    )
    def test_analyze_gap_severity(self, gap, total, severity):
        assert analyze_gap_severity(Decimal(gap), Decimal(total)) == severity

    def test_zero_activity_is_low_regardless_of_gap(self):
        rng = random.Random(1234)
        for _ in range(200):
            gap = Decimal(rng.randint(-10_000_000, 10_000_000)) / 100
            assert analyze_gap_severity(gap, Decimal("0")) == Severity.LOW

    def test_negative_total_is_rejected(self):
        with pytest.raises(ValidationError):
            analyze_gap_severity(Decimal("10"), Decimal("-1"))


class TestGapCalculation:
    """Tests for calculate_gap and calculate_gap_percentage."""

    def test_gap_is_actual_minus_expected(self):
        result = calculate_gap(Decimal("1300"), Decimal("1250"), Decimal("1000"))
        assert result.amount == Decimal("50")
        assert result.percentage == Decimal("5")

    def test_percentage_uses_absolute_gap(self):
        assert calculate_gap_percentage(Decimal("-30"), Decimal("600")) == Decimal("5")

    def test_percentage_is_zero_without_activity(self):
        assert calculate_gap_percentage(Decimal("30"), Decimal("0")) == Decimal("0")

    def test_gap_identity_holds_for_generated_balances(self):
        """gap_amount == actual - expected within a cent."""
        rng = random.Random(42)
        for _ in range(200):
            actual = Decimal(rng.randint(-1_000_000, 1_000_000)) / 100
            expected = Decimal(rng.randint(-1_000_000, 1_000_000)) / 100
            b = balance("acc", actual, expected)
            assert abs(b.gap_amount - (actual - expected)) < Decimal("0.01")

    def test_inconsistent_declared_gap_is_rejected(self):
        with pytest.raises(ValidationError):
            AccountBalance(
                account_id="acc",
                account_name="Acc",
                currency="UAH",
                actual_balance=Decimal("100"),
                expected_balance=Decimal("90"),
                gap_amount=Decimal("5"),
            )

    def test_create_reconciliation_gap_copies_figures(self):
        b = balance("acc", "130", "100", percentage="3")
        gap = create_reconciliation_gap(b, Decimal("1000"))
        assert gap.account_id == "acc"
        assert gap.gap_amount == Decimal("30")
        assert gap.gap_percentage == Decimal("3")
        assert gap.severity == Severity.MEDIUM
        assert gap.resolution_method is None


class TestAggregation:
    """Tests for aggregate_multi_account_gaps."""

    def test_three_account_scenario(self):
        """A +30, B -10, C 0 -> total 20, absolute 40, [A, B]."""
        result = aggregate_multi_account_gaps(
            [
                balance("A", "130", "100", percentage="1"),
                balance("B", "90", "100", percentage="1"),
                balance("C", "100", "100"),
            ]
        )
        assert result.total_gap_amount == Decimal("20")
        assert result.total_absolute_gap == Decimal("40")
        assert result.account_ids_with_gaps == ["A", "B"]
        assert set(result.gaps_by_account) == {"A", "B"}

    def test_sub_cent_gaps_are_excluded(self):
        result = aggregate_multi_account_gaps([balance("A", "100.004", "100")])
        assert result.accounts_with_gaps == []
        assert result.gaps_by_account == {}
        assert result.overall_severity == Severity.LOW

    def test_overall_severity_is_worst_account(self):
        result = aggregate_multi_account_gaps(
            [
                balance("A", "101", "100", percentage="1"),
                balance("B", "110", "100", percentage="7.5"),
                balance("C", "103", "100", percentage="3"),
            ]
        )
        assert result.overall_severity == Severity.HIGH
        assert result.gaps_by_account["B"].severity == Severity.HIGH
        assert result.gaps_by_account["C"].severity == Severity.MEDIUM

    def test_empty_input(self):
        result = aggregate_multi_account_gaps([])
        assert result.total_gap_amount == Decimal("0")
        assert result.total_absolute_gap == Decimal("0")
        assert result.overall_severity == Severity.LOW


class TestSeverityDisplay:
    """Fixed label and color lookups."""

    @pytest.mark.parametrize(
        "severity, label, color",
        [
            (Severity.LOW, "Good", "#4E7A58"),
            (Severity.MEDIUM, "Review", "#D97706"),
            (Severity.HIGH, "Action Required", "#EF4444"),
        ],
    )
    def test_lookups(self, severity, label, color):
        assert get_gap_severity_text(severity) == label
        assert get_gap_severity_color(severity) == color

    def test_lookup_accepts_string_value(self):
        assert get_gap_severity_text("medium") == "Review"
