import dataclasses
from decimal import Decimal

import pytest

from cashdesk import config
from cashdesk.core.models import CatalogItem
from cashdesk.db import sqlite as db


@pytest.fixture(autouse=True)
def settings(tmp_path, monkeypatch):
    s = dataclasses.replace(
        config.settings,
        db_path=str(tmp_path / "data" / "pos.db"),
        export_dir=str(tmp_path / "exports"),
        backup_dir=str(tmp_path / "backups"),
        currency="SAR",
        decimals=2,
        weight_decimals=3,
        stock_policy="clamp",
        low_stock_threshold=10,
        log_file=None,
    )
    monkeypatch.setattr(config, "settings", s)
    db.init_db()
    return s


@pytest.fixture
def apple():
    return CatalogItem(id="A", name="Organic apple", category="Fruit", unit_price=Decimal("2.99"),
                       stock_quantity=Decimal("150"))


@pytest.fixture
def bread():
    return CatalogItem(id="B", name="Wholewheat bread", category="Bakery", unit_price=Decimal("3.49"),
                       stock_quantity=Decimal("5"))


@pytest.fixture
def chicken():
    return CatalogItem(id="M", name="Chicken breast (per kg)", category="Meat", unit_price=Decimal("9.99"),
                       stock_quantity=Decimal("50"), is_weighed=True, unit="kg")


@pytest.fixture
def seeded_db():
    """Products in the temp database: A (apple), B (bread), M (chicken, weighed)."""
    db.add_product("A", "Organic apple", "2.99", 150, category="Fruit", cost_price="2.00")
    db.add_product("B", "Wholewheat bread", "3.49", 5, category="Bakery", cost_price="1.50")
    db.add_product("M", "Chicken breast (per kg)", "9.99", 50, is_weighed=True, category="Meat",
                   unit="kg", cost_price="5.00")
