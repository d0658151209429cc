from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Optional, Tuple

from cashdesk.constants import DEFAULT_CATEGORY
from cashdesk.services.pricing import round_money, to_decimal


@dataclass(frozen=True)
class CatalogItem:
    id: str
    name: str
    unit_price: Decimal  # per unit, or per kg when is_weighed
    stock_quantity: Decimal
    is_weighed: bool = False
    category: str = DEFAULT_CATEGORY
    unit: str = "pcs"
    cost_price: Decimal = Decimal("0")

    def __post_init__(self) -> None:
        # accept floats/strings from forms and rows, keep Decimal inside
        for name in ("unit_price", "stock_quantity", "cost_price"):
            value = to_decimal(getattr(self, name))
            if value < 0:
                raise ValueError(f"{name} must be >= 0")
            object.__setattr__(self, name, value)


class LineMode(str, enum.Enum):
    QUANTITY = "quantity"
    WEIGHED = "weighed"


@dataclass(frozen=True)
class CartLine:
    item: CatalogItem
    mode: LineMode
    quantity: int = 1
    entered_total_price: Optional[Decimal] = None
    derived_weight: Optional[Decimal] = None

    @property
    def item_id(self) -> str:
        return self.item.id

    @property
    def is_weighed(self) -> bool:
        return self.mode is LineMode.WEIGHED

    @property
    def line_total(self) -> Decimal:
        if self.mode is LineMode.WEIGHED:
            return self.entered_total_price
        return round_money(self.item.unit_price * self.quantity)

    @property
    def sold_amount(self) -> Decimal:
        """Amount taken out of stock: pieces, or kilograms for weighed lines."""
        if self.mode is LineMode.WEIGHED:
            return self.derived_weight
        return Decimal(self.quantity)


@dataclass(frozen=True)
class Sale:
    id: str
    lines: Tuple[CartLine, ...]
    total: Decimal
    created_at: datetime = field(default_factory=datetime.now)
    client_id: Optional[int] = None
    partner_id: Optional[int] = None
