"""
Numeric helpers shared by the billing and insights engines.

Currency values are rounded half-up to two decimal places using Decimal so
that values such as 24.999999999999964 (binary float residue of 0.95 - 0.90)
land on 25.00 rather than drifting a cent.

CHANGELOG:
- 2026-10-12: Initial creation (STORY-021)

TODO:
- None
"""

import math
from decimal import ROUND_HALF_UP, Decimal

_CENT = Decimal("0.01")


def round_currency(value: float) -> float:
    """Round a currency amount half-up to 2 decimal places.

    Args:
        value: Unrounded amount.

    Returns:
        float: Amount rounded to the nearest cent.
    """
    # + 0.0 folds -0.0 into 0.0
    return float(Decimal(repr(value)).quantize(_CENT, rounding=ROUND_HALF_UP)) + 0.0


def round_to(value: float, places: int) -> float:
    """Round half-up to an arbitrary number of decimal places."""
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(repr(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def is_finite_number(value: object) -> bool:
    """Return True for real, finite numbers (bools excluded)."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)
