"""Tests for money conversion and the shared zero-gap tolerance."""

from decimal import Decimal

import pytest

from checkpoint_recon.constants import (
    GAP_EPSILON,
    all_gaps_resolved,
    is_gap_resolved,
    quantize_money,
    to_decimal,
)
from checkpoint_recon.utils.exceptions import ValidationError


class TestToDecimal:
    """Tests for to_decimal."""

    def test_float_goes_through_str(self):
        """A float keeps its short decimal form, not its binary expansion."""
        assert to_decimal(0.1) == Decimal("0.1")

    def test_int_and_str(self):
        assert to_decimal(150) == Decimal("150")
        assert to_decimal(" -75.50 ") == Decimal("-75.50")

    @pytest.mark.parametrize("value", ["abc", "", "NaN", "Infinity", True])
    def test_rejects_non_numbers(self, value):
        with pytest.raises(ValidationError):
            to_decimal(value)


class TestGapTolerance:
    """Tests for the one-cent tolerance shared by every component."""

    def test_epsilon_is_one_cent(self):
        assert GAP_EPSILON == Decimal("0.01")

    @pytest.mark.parametrize(
        "amount, resolved",
        [
            ("0", True),
            ("0.009", True),
            ("-0.009", True),
            ("0.01", False),
            ("-0.01", False),
            ("150", False),
        ],
    )
    def test_is_gap_resolved(self, amount, resolved):
        assert is_gap_resolved(Decimal(amount)) is resolved

    def test_all_gaps_resolved_empty_is_true(self):
        assert all_gaps_resolved([]) is True

    def test_all_gaps_resolved_single_gap_flips(self):
        amounts = [Decimal("0"), Decimal("0.001"), Decimal("-0.005")]
        assert all_gaps_resolved(amounts) is True
        amounts[1] = Decimal("0.02")
        assert all_gaps_resolved(amounts) is False

    def test_quantize_money_rounds_half_up(self):
        assert quantize_money(Decimal("1.005")) == Decimal("1.01")
        assert quantize_money(Decimal("-2.344")) == Decimal("-2.34")
