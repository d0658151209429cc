from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

CENT = Decimal("0.01")


def to_decimal(value: Any) -> Decimal:
    """Convert floats/ints/strings to Decimal without float contamination."""
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, float):
        result = Decimal(str(value))
    else:
        try:
            result = Decimal(str(value).strip().replace(",", "."))
        except InvalidOperation as e:
            raise ValueError(f"not a number: {value!r}") from e
    if not result.is_finite():
        raise ValueError(f"not a number: {value!r}")
    return result


def quantize(value: Decimal, places: int) -> Decimal:
    return value.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)


def round_money(value: Any, places: int = 2) -> Decimal:
    return quantize(to_decimal(value), places)


def derive_weight(total_price: Decimal, price_per_kg: Decimal, places: int = 3) -> Decimal:
    return quantize(total_price / price_per_kg, places)
