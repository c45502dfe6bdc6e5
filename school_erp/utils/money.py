from decimal import Decimal, ROUND_HALF_UP
from typing import Any

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value: Any) -> Decimal:
    """Quantize an amount to cents. None and empty values count as zero."""
    if value is None or value == "":
        return ZERO
    if not isinstance(value, Decimal):
        # str() keeps float sums from SQLite at their printed precision
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def percentage(part: Any, whole: Any) -> float:
    whole = to_money(whole)
    if whole <= 0:
        return 0.0
    ratio = to_money(part) / whole * 100
    return float(ratio.quantize(CENT, rounding=ROUND_HALF_UP))


def round_ratio(value: Any) -> float:
    if value is None:
        return 0.0
    return float(Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP))
