from __future__ import annotations

from typing import Collection, Dict, Iterable, List

from cashdesk.core.errors import ItemNotFound
from cashdesk.core.models import CatalogItem


class Catalog:
    """Read-only view over the sellable items, in the order they were loaded."""

    def __init__(self, items: Iterable[CatalogItem] = ()):
        self._items: Dict[str, CatalogItem] = {}
        for item in items:
            self._items[item.id] = item

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self):
        return iter(self._items.values())

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._items

    @property
    def items(self) -> List[CatalogItem]:
        return list(self._items.values())

    def search(self, term: str = "", exclude: Collection[str] = ()) -> List[CatalogItem]:
        needle = (term or "").strip().casefold()
        return [
            item
            for item in self._items.values()
            if item.id not in exclude and needle in item.name.casefold()
        ]

    def find_by_id(self, item_id: str) -> CatalogItem:
        try:
            return self._items[item_id]
        except KeyError:
            raise ItemNotFound(f"item not found: {item_id}") from None

    def by_category(self, category: str) -> List[CatalogItem]:
        wanted = category.strip().casefold()
        return [item for item in self._items.values() if item.category.casefold() == wanted]

    def weighable(self) -> List[CatalogItem]:
        return [item for item in self._items.values() if item.is_weighed]
