"""Balance and gap calculations."""

from .expected_balance import ExpectedBalanceCalculator, ExpectedBalanceResult
from .gap_calculator import (
    GapAggregation,
    GapCalculation,
    aggregate_multi_account_gaps,
    analyze_gap_severity,
    calculate_gap,
    calculate_gap_percentage,
    create_reconciliation_gap,
    get_gap_severity_color,
    get_gap_severity_text,
    severity_for_percentage,
)

__all__ = [
    "ExpectedBalanceCalculator",
    "ExpectedBalanceResult",
    "GapAggregation",
    "GapCalculation",
    "aggregate_multi_account_gaps",
    "analyze_gap_severity",
    "calculate_gap",
    "calculate_gap_percentage",
    "create_reconciliation_gap",
    "get_gap_severity_color",
    "get_gap_severity_text",
    "severity_for_percentage",
]
