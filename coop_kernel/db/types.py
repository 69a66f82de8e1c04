"""
Module: coop_kernel.db.types
Responsibility: Rounding and coercion helpers used for every monetary value
    in the ledger.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/ and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - No floats.  Every amount is a Decimal.
    - round_money() is the only sanctioned rounding function for amounts
      persisted or returned to callers (2 places, ROUND_HALF_UP).

Failure modes:
    - decimal.InvalidOperation on non-numeric input to to_decimal().
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Any

MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP
ZERO = Decimal("0.00")


def to_decimal(value: Any) -> Decimal:
    """Coerce ints, strings and Decimals to Decimal.  Floats are refused."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        raise TypeError("float amounts are not accepted; pass a Decimal or str")
    return Decimal(str(value))


def round_money(
    amount: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary amount.

    Args:
        amount: Amount to round.
        decimal_places: Number of decimal places (default 2).
        rounding: Rounding mode (default ROUND_HALF_UP).

    Returns:
        Rounded Decimal.
    """
    quantize_str = "0." + "0" * decimal_places if decimal_places > 0 else "1"
    return to_decimal(amount).quantize(Decimal(quantize_str), rounding=rounding)
