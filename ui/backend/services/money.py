"""Conversions between API dollars and stored integer cents."""
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Union

# Tolerance for client-side float rounding, in cents
EPSILON_CENTS = 1

_CENT = Decimal("0.01")


def to_cents(amount: Union[Decimal, float, int, str]) -> int:
    """Convert a dollar amount to cents, rounding half up."""
    if not isinstance(amount, Decimal):
        # str() keeps floats like 42.17 from turning into 42.169999...
        amount = Decimal(str(amount))
    return int((amount.quantize(_CENT, rounding=ROUND_HALF_UP) * 100).to_integral_value())


def to_dollars(cents: Optional[int]) -> Optional[float]:
    if cents is None:
        return None
    return float(Decimal(cents) / 100)
