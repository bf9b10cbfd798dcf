"""
Money helpers - all ledger amounts are Decimal rounded to cents.
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Any

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value: Any) -> Decimal:
    """Coerce int/float/str/Decimal to a Decimal rounded half-up to cents"""
    if value is None:
        return ZERO
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def within_tolerance(a: Any, b: Any, tolerance: Any) -> bool:
    """True when |a - b| is strictly below tolerance"""
    return abs(to_money(a) - to_money(b)) < Decimal(str(tolerance))
