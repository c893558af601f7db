"""
Module: order_kernel.db.types
Responsibility: Numeric column types and the rounding helper for
    monetary values.  Every model and service uses these definitions so
    that prices, amounts and discount rates share one precision.

    CRITICAL: No floats for money.  Spreadsheet cells arrive as floats and
    are converted through str() to Decimal at the parsing boundary.
"""

from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import Numeric

# Monetary amount: 38 digits total, 9 decimal places
MONEY_TYPE = Numeric(38, 9)

# Discount multiplier in (0, 1]
RATE_TYPE = Numeric(10, 4)

MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to the given number of decimal places.

    This is the only rounding function used for settlement amounts.

    Args:
        value: The Decimal value to round.
        decimal_places: Number of decimal places to keep.
        rounding: Rounding mode (default: ROUND_HALF_UP).
    """
    quantize_str = "0." + "0" * decimal_places if decimal_places else "1"
    return value.quantize(Decimal(quantize_str), rounding=rounding)
