from __future__ import annotations

from dataclasses import replace
from decimal import Decimal
from typing import Any, Callable, List, Optional

from cashdesk import config
from cashdesk.core.cart import Cart
from cashdesk.core.catalog import Catalog
from cashdesk.core.checkout import Checkout, Inventory, SaleStore
from cashdesk.core.models import CartLine, CatalogItem, Sale
from cashdesk.db import sqlite as db


class Register:
    """
    One cashier session: a cart plus the collaborators it needs.

    The catalog is reloaded through catalog_loader on every lookup so prices
    edited in the back office show up on the next scan.
    """

    def __init__(
        self,
        catalog_loader: Callable[[], Catalog],
        inventory: Optional[Inventory] = None,
        store: Optional[SaleStore] = None,
        stock_policy: str = "clamp",
        weight_decimals: int = 3,
    ):
        self.catalog_loader = catalog_loader
        self.inventory = inventory
        self.cart = Cart(stock_policy=stock_policy, weight_decimals=weight_decimals)
        self._checkout = Checkout(inventory=inventory, store=store)

    @property
    def failed_decrements(self):
        return self._checkout.failed_decrements

    def _item(self, item_id: str) -> CatalogItem:
        item = self.catalog_loader().find_by_id(item_id)
        if self.inventory is not None:
            item = replace(item, stock_quantity=self.inventory.get_stock(item_id))
        return item

    def search(self, term: str = "", hide_in_cart: bool = True) -> List[CatalogItem]:
        exclude = self.cart.item_ids if hide_in_cart else ()
        return self.catalog_loader().search(term, exclude=exclude)

    def add(self, item_id: str, quantity: int = 1) -> CartLine:
        return self.cart.add_quantity_item(self._item(item_id), quantity)

    def add_weighed(self, item_id: str, total_price: Any) -> CartLine:
        return self.cart.add_weighed_item(self._item(item_id), total_price)

    def set_quantity(self, item_id: str, quantity: int) -> Optional[CartLine]:
        line = self.cart.get_line(item_id)
        fresh = self._item(item_id) if line is not None and not line.is_weighed else None
        return self.cart.update_quantity(item_id, quantity, item=fresh)

    def remove(self, item_id: str) -> None:
        self.cart.remove_line(item_id)

    def clear(self) -> None:
        self.cart.clear()

    def total(self) -> Decimal:
        return self.cart.compute_total()

    def checkout(self, client_id: Optional[int] = None, partner_id: Optional[int] = None) -> Sale:
        return self._checkout.checkout(self.cart, client_id=client_id, partner_id=partner_id)


def open_register() -> Register:
    """Register wired to the SQLite catalog, stock and sales tables."""
    return Register(
        catalog_loader=db.load_catalog,
        inventory=db.SqliteInventory(),
        store=db.SqliteSaleStore(),
        stock_policy=config.settings.stock_policy,
        weight_decimals=config.settings.weight_decimals,
    )
