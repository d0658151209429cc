from __future__ import annotations

from decimal import Decimal

from cashdesk.services.pricing import to_decimal


def parse_decimal(text: str, name: str = "value") -> Decimal:
    try:
        return to_decimal(text)
    except ValueError:
        raise ValueError(f"{name} must be a number, e.g. 12.50") from None


def parse_int(text: str, name: str = "value") -> int:
    try:
        return int(text.strip())
    except ValueError:
        raise ValueError(f"{name} must be a whole number, e.g. 2") from None
