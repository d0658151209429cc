from __future__ import annotations

import logging
import uuid
from decimal import Decimal
from typing import List, Optional, Protocol, Tuple

from cashdesk.core.cart import Cart
from cashdesk.core.errors import EmptyCart
from cashdesk.core.models import Sale

log = logging.getLogger(__name__)


class Inventory(Protocol):
    def get_stock(self, item_id: str) -> Decimal: ...

    def decrement_stock(self, item_id: str, amount: Decimal) -> bool: ...


class SaleStore(Protocol):
    def save_sale(self, sale: Sale) -> None: ...


class Checkout:
    """
    Turns a cart into a Sale.

    Order of work: snapshot -> store -> stock decrement -> clear cart.
    The stock decrement is best-effort: failures are logged and kept in
    failed_decrements, the sale itself stands.
    """

    def __init__(self, inventory: Optional[Inventory] = None, store: Optional[SaleStore] = None):
        self.inventory = inventory
        self.store = store
        self.failed_decrements: List[Tuple[str, Decimal]] = []

    def checkout(
        self,
        cart: Cart,
        client_id: Optional[int] = None,
        partner_id: Optional[int] = None,
    ) -> Sale:
        if cart.is_empty:
            raise EmptyCart("cart is empty, add items before checkout")

        sale = Sale(
            id=uuid.uuid4().hex,
            lines=tuple(cart.lines),
            total=cart.compute_total(),
            client_id=client_id,
            partner_id=partner_id,
        )

        if self.store is not None:
            self.store.save_sale(sale)
        log.info("sale %s recorded: %s lines, total %s", sale.id, len(sale.lines), sale.total)

        self.failed_decrements = self._decrement_stock(sale)
        cart.clear()
        return sale

    def _decrement_stock(self, sale: Sale) -> List[Tuple[str, Decimal]]:
        failed: List[Tuple[str, Decimal]] = []
        if self.inventory is None:
            return failed
        for line in sale.lines:
            amount = line.sold_amount
            try:
                ok = self.inventory.decrement_stock(line.item_id, amount)
            except Exception:
                log.exception("stock decrement crashed for %s (sale %s)", line.item_id, sale.id)
                ok = False
            if not ok:
                log.warning("stock not decremented for %s by %s (sale %s)", line.item_id, amount, sale.id)
                failed.append((line.item_id, amount))
        return failed


def checkout(
    cart: Cart,
    inventory: Optional[Inventory] = None,
    store: Optional[SaleStore] = None,
    client_id: Optional[int] = None,
    partner_id: Optional[int] = None,
) -> Sale:
    return Checkout(inventory, store).checkout(cart, client_id=client_id, partner_id=partner_id)
