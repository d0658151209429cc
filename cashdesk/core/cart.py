from __future__ import annotations

import logging
from dataclasses import replace
from decimal import ROUND_FLOOR, Decimal
from typing import Any, Dict, List, Optional

from cashdesk.constants import STOCK_POLICIES, STOCK_POLICY_CLAMP, STOCK_POLICY_REJECT
from cashdesk.core.errors import (
    AlreadyWeighed,
    DuplicateLine,
    InsufficientStock,
    InvalidOperation,
    InvalidPrice,
    InvalidQuantity,
    LineNotFound,
    NotWeighable,
)
from cashdesk.core.models import CartLine, CatalogItem, LineMode
from cashdesk.services.pricing import derive_weight, round_money, to_decimal

log = logging.getLogger(__name__)


def _require_int(quantity: Any) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise InvalidQuantity(f"quantity must be a whole number, got {quantity!r}")
    return quantity


def _stock_cap(item: CatalogItem) -> int:
    return int(item.stock_quantity.to_integral_value(rounding=ROUND_FLOOR))


class Cart:
    """
    Lines of the sale being rung up, one per catalog item, in the order they were added.

    stock_policy decides what happens when a quantity goes above the stock:
    "clamp" caps it silently, "reject" raises InsufficientStock.
    Weighed items added by count are always capped, never rejected.
    """

    def __init__(self, stock_policy: str = STOCK_POLICY_CLAMP, weight_decimals: int = 3):
        if stock_policy not in STOCK_POLICIES:
            raise ValueError(f"unknown stock policy: {stock_policy!r}")
        self.stock_policy = stock_policy
        self.weight_decimals = weight_decimals
        self._lines: Dict[str, CartLine] = {}

    def __len__(self) -> int:
        return len(self._lines)

    def __iter__(self):
        return iter(self._lines.values())

    @property
    def lines(self) -> List[CartLine]:
        return list(self._lines.values())

    @property
    def item_ids(self) -> List[str]:
        return list(self._lines)

    @property
    def is_empty(self) -> bool:
        return not self._lines

    def get_line(self, item_id: str) -> Optional[CartLine]:
        return self._lines.get(item_id)

    def add_quantity_item(self, item: CatalogItem, quantity: int = 1) -> CartLine:
        quantity = _require_int(quantity)
        if quantity <= 0:
            raise InvalidQuantity("quantity must be > 0")

        existing = self._lines.get(item.id)
        if existing is not None and existing.is_weighed:
            raise AlreadyWeighed(f"{item.name} is already in the cart as a weighed item; remove it first")

        cap = _stock_cap(item)
        wanted = quantity if existing is None else existing.quantity + quantity
        if wanted > item.stock_quantity:
            if self.stock_policy == STOCK_POLICY_REJECT and not item.is_weighed:
                raise InsufficientStock(f"not enough {item.name} in stock: available {item.stock_quantity}")
            log.info("capping %s at stock %s (asked %s)", item.id, cap, wanted)
            wanted = cap
        if wanted < 1:
            raise InsufficientStock(f"{item.name} is out of stock")

        if existing is None:
            line = CartLine(item=item, mode=LineMode.QUANTITY, quantity=wanted)
        else:
            line = replace(existing, item=item, quantity=wanted)
        self._lines[item.id] = line
        return line

    def add_weighed_item(self, item: CatalogItem, entered_total_price: Any) -> CartLine:
        if not item.is_weighed:
            raise NotWeighable(f"{item.name} is not sold by weight")
        try:
            price = round_money(to_decimal(entered_total_price))
        except ValueError:
            raise InvalidPrice(f"invalid total price: {entered_total_price!r}") from None
        if price <= 0:
            raise InvalidPrice("total price must be > 0")
        if item.unit_price <= 0:
            raise InvalidPrice(f"{item.name} has no price per kg")
        if item.id in self._lines:
            raise DuplicateLine(f"{item.name} is already in the cart; remove it to add it again")

        line = CartLine(
            item=item,
            mode=LineMode.WEIGHED,
            quantity=1,
            entered_total_price=price,
            derived_weight=derive_weight(price, item.unit_price, self.weight_decimals),
        )
        self._lines[item.id] = line
        return line

    def update_quantity(
        self, item_id: str, new_quantity: int, item: Optional[CatalogItem] = None
    ) -> Optional[CartLine]:
        """
        Set the quantity of a counted line. Zero or less removes the line and returns None.

        A fresh item replaces the stored one, so the stock check uses current levels.
        """
        line = self._lines.get(item_id)
        if line is None:
            raise LineNotFound(f"no cart line for {item_id}")
        if line.is_weighed:
            raise InvalidOperation(f"{line.item.name} is weighed; its quantity cannot be changed")
        new_quantity = _require_int(new_quantity)
        if new_quantity <= 0:
            self.remove_line(item_id)
            return None
        if item is not None:
            line = replace(line, item=item)
        if new_quantity > line.item.stock_quantity:
            raise InsufficientStock(
                f"cannot exceed available stock for {line.item.name}: available {line.item.stock_quantity}"
            )
        line = replace(line, quantity=new_quantity)
        self._lines[item_id] = line
        return line

    def remove_line(self, item_id: str) -> None:
        self._lines.pop(item_id, None)

    def clear(self) -> None:
        self._lines.clear()

    def compute_total(self) -> Decimal:
        return sum((line.line_total for line in self._lines.values()), Decimal("0"))
