"""
Shared reconciliation constants and money helpers.

The zero-gap tolerance is defined once here. The gap calculator, the period
closure validator and the adjustment creator all call ``is_gap_resolved`` so
they can never disagree about whether an account is reconciled.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Iterable, Union

from .utils.exceptions import ValidationError

# Smallest resolvable money unit. Gaps strictly below it are rounding noise.
GAP_EPSILON = Decimal("0.01")

# Severity thresholds in percent of period transaction volume.
LOW_SEVERITY_LIMIT = Decimal("2")
HIGH_SEVERITY_LIMIT = Decimal("5")

ZERO = Decimal("0")
HUNDRED = Decimal("100")

MoneyLike = Union[Decimal, int, float, str]


def to_decimal(value: MoneyLike) -> Decimal:
    """
    Convert a money-like value to Decimal.

    Floats go through ``str()`` so ``0.1`` becomes ``Decimal("0.1")`` rather
    than its binary expansion.

    Raises:
        ValidationError: If the value is not a finite number
    """
    if isinstance(value, Decimal):
        result = value
    else:
        if isinstance(value, bool):
            raise ValidationError(f"Invalid money value: {value!r}")
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError) as e:
            raise ValidationError(f"Invalid money value: {value!r}") from e

    if not result.is_finite():
        raise ValidationError(f"Money value must be finite: {value!r}")
    return result


def quantize_money(value: Decimal) -> Decimal:
    """Round to cents, half up."""
    return value.quantize(GAP_EPSILON, rounding=ROUND_HALF_UP)


def is_gap_resolved(gap_amount: MoneyLike) -> bool:
    """A gap is resolved iff its magnitude is below one cent."""
    return abs(to_decimal(gap_amount)) < GAP_EPSILON


def all_gaps_resolved(gap_amounts: Iterable[MoneyLike]) -> bool:
    """True iff every gap is below the tolerance. Vacuously true when empty."""
    return all(is_gap_resolved(amount) for amount in gap_amounts)
