from decimal import Decimal

import pytest

from cashdesk.core.catalog import Catalog
from cashdesk.core.errors import ItemNotFound
from cashdesk.core.models import CatalogItem


@pytest.fixture
def catalog(apple, bread, chicken):
    return Catalog([apple, bread, chicken])


def test_search_is_case_insensitive_substring(catalog):
    assert [i.id for i in catalog.search("APPLE")] == ["A"]
    assert [i.id for i in catalog.search("bre")] == ["B", "M"]


def test_empty_term_returns_everything_in_catalog_order(catalog):
    assert [i.id for i in catalog.search("")] == ["A", "B", "M"]
    assert [i.id for i in catalog.search("   ")] == ["A", "B", "M"]


def test_search_can_hide_items(catalog):
    assert [i.id for i in catalog.search("", exclude={"A"})] == ["B", "M"]


def test_find_by_id(catalog, bread):
    assert catalog.find_by_id("B") is bread
    with pytest.raises(ItemNotFound):
        catalog.find_by_id("nope")


def test_filters(catalog):
    assert [i.id for i in catalog.by_category("fruit")] == ["A"]
    assert [i.id for i in catalog.weighable()] == ["M"]
    assert len(catalog) == 3
    assert "M" in catalog


def test_catalog_item_normalises_numbers():
    item = CatalogItem(id="x", name="x", unit_price=1.1, stock_quantity="4")
    assert item.unit_price == Decimal("1.1")
    assert item.stock_quantity == Decimal("4")


def test_catalog_item_rejects_negative_values():
    with pytest.raises(ValueError):
        CatalogItem(id="x", name="x", unit_price=Decimal("-1"), stock_quantity=Decimal("1"))
    with pytest.raises(ValueError):
        CatalogItem(id="x", name="x", unit_price=Decimal("1"), stock_quantity=Decimal("-1"))
