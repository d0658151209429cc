from __future__ import annotations

from decimal import Decimal
from typing import Any, Iterable

from cashdesk import config
from cashdesk.core.models import CartLine
from cashdesk.services.pricing import quantize, to_decimal


def money(v: Any) -> str:
    return f"{quantize(to_decimal(v), config.settings.decimals)} {config.settings.currency}"


def weight(v: Any) -> str:
    return f"{quantize(to_decimal(v), config.settings.weight_decimals)} kg"


def line_text(line: CartLine) -> str:
    item = line.item
    if line.is_weighed:
        return f"{item.name} — {weight(line.derived_weight)} @ {money(item.unit_price)}/kg = {money(line.line_total)}"
    return f"{item.name} × {line.quantity} @ {money(item.unit_price)} = {money(line.line_total)}"


def cart_text(lines: Iterable[CartLine], total: Decimal) -> str:
    rows = [f"• {line_text(line)}" for line in lines]
    if not rows:
        return "Cart is empty"
    rows.append("")
    rows.append(f"<b>TOTAL: {money(total)}</b>")
    return "\n".join(rows)
