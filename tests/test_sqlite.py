import sqlite3
from decimal import Decimal

import pytest

from cashdesk.db import sqlite as db
from cashdesk.services.register import open_register


def test_add_product_validation():
    assert db.add_product("A", "Apple", "2.99", 10) == (True, "ok")
    ok, err = db.add_product("A", "Apple again", "1", 1)
    assert not ok and "already exists" in err
    ok, _ = db.add_product("", "No sku", "1", 1)
    assert not ok
    ok, _ = db.add_product("X", "Negative", "-1", 1)
    assert not ok
    ok, _ = db.add_product("Y", "Garbage", "abc", 1)
    assert not ok


@pytest.mark.usefixtures("seeded_db")
def test_load_catalog():
    catalog = db.load_catalog()
    chicken = catalog.find_by_id("M")
    assert chicken.is_weighed
    assert chicken.unit_price == Decimal("9.99")
    assert chicken.cost_price == Decimal("5.0")
    assert chicken.unit == "kg"
    assert [i.id for i in catalog.search("apple")] == ["A"]


@pytest.mark.usefixtures("seeded_db")
def test_update_and_delete_product():
    assert db.update_product("A", unit_price="3.10", name="Red apple") == (True, "ok")
    row = db.find_product("A")
    assert row["name"] == "Red apple"
    assert row["unit_price"] == pytest.approx(3.10)
    assert db.update_product("A", colour="red")[0] is False
    assert db.update_product("nope", name="x") == (False, "product not found")
    assert db.delete_product("A") == (True, "ok")
    assert db.delete_product("A") == (False, "product not found")


@pytest.mark.usefixtures("seeded_db")
def test_inventory_refuses_negative_stock():
    inv = db.SqliteInventory()
    assert inv.get_stock("B") == Decimal("5.0")
    assert inv.decrement_stock("B", Decimal("3")) is True
    assert inv.decrement_stock("B", Decimal("3")) is False
    assert inv.get_stock("B") == Decimal("2.0")
    assert inv.get_stock("unknown") == Decimal("0")


@pytest.mark.usefixtures("seeded_db")
def test_checkout_persists_sale_and_updates_stock():
    reg = open_register()
    reg.add("A", 3)
    reg.add_weighed("M", "25.00")
    sale = reg.checkout()

    stored = db.get_sale(sale.id)
    assert stored["total"] == pytest.approx(33.97)
    assert [(i["sku"], i["mode"]) for i in stored["items"]] == [("A", "quantity"), ("M", "weighed")]
    assert stored["items"][1]["derived_weight"] == pytest.approx(2.503)

    assert db.find_product("A")["stock_qty"] == pytest.approx(147)
    assert db.find_product("M")["stock_qty"] == pytest.approx(50 - 2.503)
    assert reg.failed_decrements == []
    assert [s["id"] for s in db.list_sales()] == [sale.id]


@pytest.mark.usefixtures("seeded_db")
def test_list_sales_date_filter():
    reg = open_register()
    reg.add("A")
    reg.checkout()
    assert len(db.list_sales(date_from="2000-01-01")) == 1
    assert db.list_sales(date_to="2000-01-01") == []


def test_clients():
    assert db.add_client("Ali", phone="0555") == (True, "ok")
    assert db.add_client("Ali")[0] is False
    assert db.add_client("  ")[0] is False
    client = db.get_client_by_name("Ali")
    assert client["phone"] == "0555"
    assert [c["name"] for c in db.list_clients()] == ["Ali"]
    assert db.delete_client(client["id"]) == (True, "ok")


@pytest.mark.usefixtures("seeded_db")
def test_purchase_invoice_receives_stock():
    db.add_supplier("Fresh Produce Co", contact_person="Ahmad")
    supplier = db.list_suppliers()[0]

    ok, invoice_id = db.add_purchase_invoice(
        "INV-2024-001", supplier["id"], "2024-07-15", [("A", 10, "1.80"), ("M", "4.5", "5.50")]
    )
    assert ok
    assert db.find_product("A")["stock_qty"] == pytest.approx(160)
    assert db.find_product("A")["cost_price"] == pytest.approx(1.80)
    assert db.find_product("M")["stock_qty"] == pytest.approx(54.5)

    invoices = db.list_purchase_invoices()
    assert invoices[0]["id"] == invoice_id
    assert invoices[0]["total"] == pytest.approx(18.00 + 24.75)
    assert invoices[0]["status"] == "pending"
    assert invoices[0]["supplier_name"] == "Fresh Produce Co"

    assert db.set_purchase_status(invoice_id, "paid") == (True, "ok")
    assert db.set_purchase_status(invoice_id, "lost")[0] is False

    ok, err = db.delete_supplier(supplier["id"])
    assert not ok and "purchase invoices" in err
    assert db.delete_purchase_invoice(invoice_id) is True
    assert db.delete_supplier(supplier["id"]) == (True, "ok")


@pytest.mark.usefixtures("seeded_db")
def test_purchase_invoice_rolls_back_on_bad_line():
    db.add_supplier("Bakery Goods")
    supplier_id = db.list_suppliers()[0]["id"]

    ok, err = db.add_purchase_invoice("INV-2", supplier_id, "2024-07-20", [("A", 5, "1"), ("ghost", 1, "1")])
    assert not ok and "ghost" in err
    assert db.find_product("A")["stock_qty"] == pytest.approx(150)
    assert db.list_purchase_invoices() == []

    assert db.add_purchase_invoice("INV-3", 999, "2024-07-20")[0] is False
    assert db.add_purchase_invoice("INV-3", supplier_id, "2024-07-20", status="lost")[0] is False


@pytest.mark.usefixtures("seeded_db")
def test_partner_with_sales_cannot_be_deleted():
    assert db.add_partner("Khalid", "10.5") == (True, "ok")
    assert db.add_partner("Too much", "101")[0] is False
    partner_id = db.list_partners()[0]["id"]

    reg = open_register()
    reg.add("A")
    reg.checkout(partner_id=partner_id)

    ok, err = db.delete_partner(partner_id)
    assert not ok and "linked" in err
    assert db.update_partner(partner_id, "Khalid A.", 12) == (True, "ok")
    assert db.list_partners()[0]["profit_share_pct"] == pytest.approx(12)


@pytest.mark.usefixtures("seeded_db")
def test_set_quantity_sees_received_stock():
    reg = open_register()
    reg.add("B", 1)
    assert db.receive_stock("B", 20)[0]

    line = reg.set_quantity("B", 10)
    assert line.quantity == 10


def test_foreign_keys_enforced_on_every_connection():
    conn = db._connect()
    try:
        assert conn.execute("PRAGMA foreign_keys").fetchone()[0] == 1
    finally:
        conn.close()


@pytest.mark.usefixtures("seeded_db")
def test_linked_client_and_product_cannot_be_deleted():
    db.add_client("Ali")
    client = db.get_client_by_name("Ali")
    reg = open_register()
    reg.add("A")
    reg.checkout(client_id=client["id"])

    ok, err = db.delete_client(client["id"])
    assert not ok and "linked" in err
    assert db.get_client_by_name("Ali") is not None

    db.add_supplier("Fresh Produce Co")
    supplier_id = db.list_suppliers()[0]["id"]
    assert db.add_purchase_invoice("INV-9", supplier_id, "2024-07-15", [("B", 2, "1.50")])[0]
    ok, err = db.delete_product("B")
    assert not ok and "purchase invoices" in err
    assert db.find_product("B") is not None


class _FailingInvoiceDelete:
    def __init__(self, conn):
        self._conn = conn

    def execute(self, sql, *args):
        if sql.startswith("DELETE FROM purchase_invoices"):
            raise sqlite3.OperationalError("database is locked")
        return self._conn.execute(sql, *args)

    def __getattr__(self, name):
        return getattr(self._conn, name)


@pytest.mark.usefixtures("seeded_db")
def test_delete_purchase_invoice_rolls_back(monkeypatch):
    db.add_supplier("Fresh Produce Co")
    supplier_id = db.list_suppliers()[0]["id"]
    ok, invoice_id = db.add_purchase_invoice("INV-10", supplier_id, "2024-07-15", [("A", 5, "1.80")])
    assert ok

    connect = db._connect
    monkeypatch.setattr(db, "_connect", lambda: _FailingInvoiceDelete(connect()))
    with pytest.raises(sqlite3.OperationalError):
        db.delete_purchase_invoice(invoice_id)
    monkeypatch.setattr(db, "_connect", connect)

    conn = db._connect()
    try:
        items = conn.execute("SELECT COUNT(*) FROM purchase_items WHERE invoice_id=?", (invoice_id,)).fetchone()[0]
    finally:
        conn.close()
    assert items == 1
    assert [i["id"] for i in db.list_purchase_invoices()] == [invoice_id]
