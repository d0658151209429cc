from __future__ import annotations

import logging
import os
import sqlite3
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Tuple

from cashdesk import config
from cashdesk.constants import DEFAULT_CATEGORY, PURCHASE_STATUSES
from cashdesk.core.catalog import Catalog
from cashdesk.core.models import CatalogItem, Sale
from cashdesk.services.pricing import round_money, to_decimal

log = logging.getLogger(__name__)

TS_FORMAT = "%Y-%m-%d %H:%M:%S"


def _connect() -> sqlite3.Connection:
    db_path = config.settings.db_path
    db_dir = os.path.dirname(db_path)
    if db_dir:
        os.makedirs(db_dir, exist_ok=True)
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def _now() -> str:
    return datetime.now().strftime(TS_FORMAT)


def init_db() -> None:
    conn = _connect()
    try:
        with open(os.path.join(os.path.dirname(__file__), "schema.sql"), "r", encoding="utf-8") as f:
            conn.executescript(f.read())
        conn.commit()
    finally:
        conn.close()


# ---------------- products ----------------

def _row_to_item(row: sqlite3.Row) -> CatalogItem:
    return CatalogItem(
        id=row["sku"],
        name=row["name"],
        category=row["category"],
        unit=row["unit"],
        unit_price=to_decimal(row["unit_price"]),
        cost_price=to_decimal(row["cost_price"]),
        stock_quantity=max(to_decimal(row["stock_qty"]), Decimal("0")),
        is_weighed=bool(row["is_weighed"]),
    )


def add_product(
    sku: str,
    name: str,
    unit_price: Any,
    stock_qty: Any = 0,
    is_weighed: bool = False,
    category: str = DEFAULT_CATEGORY,
    unit: str = "pcs",
    cost_price: Any = 0,
) -> Tuple[bool, str]:
    sku = sku.strip()
    if not sku or not name.strip():
        return False, "sku and name are required"
    try:
        price = round_money(unit_price)
        cost = round_money(cost_price)
        qty = to_decimal(stock_qty)
    except ValueError as e:
        return False, str(e)
    if price < 0 or cost < 0 or qty < 0:
        return False, "price, cost and stock must be >= 0"

    conn = _connect()
    try:
        conn.execute(
            """
            INSERT INTO products(sku, name, category, unit, unit_price, cost_price, stock_qty, is_weighed)
            VALUES(?,?,?,?,?,?,?,?)
            """,
            (sku, name.strip(), category or DEFAULT_CATEGORY, unit or "pcs",
             float(price), float(cost), float(qty), int(bool(is_weighed))),
        )
        conn.commit()
        return True, "ok"
    except sqlite3.IntegrityError:
        return False, f"product {sku} already exists"
    finally:
        conn.close()


def update_product(sku: str, **fields: Any) -> Tuple[bool, str]:
    allowed = {"name", "category", "unit", "unit_price", "cost_price", "stock_qty", "is_weighed"}
    unknown = set(fields) - allowed
    if unknown:
        return False, f"unknown fields: {', '.join(sorted(unknown))}"
    if not fields:
        return False, "nothing to update"

    values: Dict[str, Any] = {}
    for key, value in fields.items():
        if key in ("unit_price", "cost_price", "stock_qty"):
            try:
                num = to_decimal(value)
            except ValueError as e:
                return False, str(e)
            if num < 0:
                return False, f"{key} must be >= 0"
            values[key] = float(num)
        elif key == "is_weighed":
            values[key] = int(bool(value))
        else:
            values[key] = value

    assignments = ", ".join(f"{k}=?" for k in values)
    conn = _connect()
    try:
        cur = conn.execute(f"UPDATE products SET {assignments} WHERE sku=?", (*values.values(), sku))
        conn.commit()
        if cur.rowcount == 0:
            return False, "product not found"
        return True, "ok"
    finally:
        conn.close()


def delete_product(sku: str) -> Tuple[bool, str]:
    conn = _connect()
    try:
        used = conn.execute("SELECT 1 FROM purchase_items WHERE sku=? LIMIT 1", (sku,)).fetchone()
        if used:
            return False, "product is on purchase invoices and cannot be deleted"
        cur = conn.execute("DELETE FROM products WHERE sku=?", (sku,))
        conn.commit()
        if cur.rowcount == 0:
            return False, "product not found"
        return True, "ok"
    finally:
        conn.close()


def find_product(sku: str) -> Optional[Dict[str, Any]]:
    conn = _connect()
    try:
        row = conn.execute("SELECT * FROM products WHERE sku=?", (sku,)).fetchone()
        return dict(row) if row else None
    finally:
        conn.close()


def list_products() -> List[Dict[str, Any]]:
    conn = _connect()
    try:
        rows = conn.execute("SELECT * FROM products ORDER BY category, name").fetchall()
        return [dict(r) for r in rows]
    finally:
        conn.close()


def load_catalog() -> Catalog:
    conn = _connect()
    try:
        rows = conn.execute("SELECT * FROM products ORDER BY category, name").fetchall()
        return Catalog(_row_to_item(r) for r in rows)
    finally:
        conn.close()


def low_stock(threshold: Any) -> List[Dict[str, Any]]:
    conn = _connect()
    try:
        rows = conn.execute(
            "SELECT sku, name, unit, stock_qty FROM products WHERE stock_qty <= ? ORDER BY stock_qty, name",
            (float(to_decimal(threshold)),),
        ).fetchall()
        return [dict(r) for r in rows]
    finally:
        conn.close()


def _get_stock_qty(conn: sqlite3.Connection, sku: str) -> Optional[Decimal]:
    row = conn.execute("SELECT stock_qty FROM products WHERE sku=?", (sku,)).fetchone()
    return to_decimal(row["stock_qty"]) if row else None


def receive_stock(sku: str, qty: Any) -> Tuple[bool, str]:
    try:
        amount = to_decimal(qty)
    except ValueError as e:
        return False, str(e)
    if amount <= 0:
        return False, "qty must be > 0"

    conn = _connect()
    try:
        cur = conn.execute("UPDATE products SET stock_qty = stock_qty + ? WHERE sku=?", (float(amount), sku))
        conn.commit()
        if cur.rowcount == 0:
            return False, f"product not found: {sku}"
        return True, "ok"
    finally:
        conn.close()


class SqliteInventory:
    """Stock collaborator for checkout, backed by products.stock_qty."""

    def get_stock(self, item_id: str) -> Decimal:
        conn = _connect()
        try:
            qty = _get_stock_qty(conn, item_id)
        finally:
            conn.close()
        if qty is None:
            return Decimal("0")
        return max(qty, Decimal("0"))

    def decrement_stock(self, item_id: str, amount: Decimal) -> bool:
        # refuses to drive stock negative
        conn = _connect()
        try:
            cur = conn.execute(
                "UPDATE products SET stock_qty = stock_qty - ? WHERE sku=? AND stock_qty - ? >= -1e-9",
                (float(amount), item_id, float(amount)),
            )
            conn.commit()
            return cur.rowcount > 0
        finally:
            conn.close()


# ---------------- sales ----------------

class SqliteSaleStore:
    """Sale persistence collaborator for checkout."""

    def save_sale(self, sale: Sale) -> None:
        conn = _connect()
        try:
            conn.execute("BEGIN")
            conn.execute(
                "INSERT INTO sales(id, created_at, total, client_id, partner_id) VALUES(?,?,?,?,?)",
                (sale.id, sale.created_at.strftime(TS_FORMAT), float(sale.total), sale.client_id, sale.partner_id),
            )
            for pos, line in enumerate(sale.lines, start=1):
                conn.execute(
                    """
                    INSERT INTO sale_items(sale_id, position, sku, name, mode, qty, unit_price, cost_price,
                                           entered_total_price, derived_weight, line_total)
                    VALUES(?,?,?,?,?,?,?,?,?,?,?)
                    """,
                    (
                        sale.id,
                        pos,
                        line.item_id,
                        line.item.name,
                        line.mode.value,
                        line.quantity,
                        float(line.item.unit_price),
                        float(line.item.cost_price),
                        float(line.entered_total_price) if line.entered_total_price is not None else None,
                        float(line.derived_weight) if line.derived_weight is not None else None,
                        float(line.line_total),
                    ),
                )
            conn.commit()
        except Exception:
            conn.execute("ROLLBACK")
            raise
        finally:
            conn.close()


def _date_filter(date_from: Optional[str], date_to: Optional[str], column: str) -> Tuple[str, List[str]]:
    clauses = []
    params: List[str] = []
    if date_from:
        clauses.append(f"date({column}) >= date(?)")
        params.append(date_from)
    if date_to:
        clauses.append(f"date({column}) <= date(?)")
        params.append(date_to)
    return (" AND ".join(clauses), params)


def list_sales(date_from: Optional[str] = None, date_to: Optional[str] = None) -> List[Dict[str, Any]]:
    where, params = _date_filter(date_from, date_to, "s.created_at")
    q = """
        SELECT s.id, s.created_at, s.total, s.client_id, s.partner_id,
               c.name AS client_name, p.name AS partner_name
        FROM sales s
        LEFT JOIN clients c ON c.id = s.client_id
        LEFT JOIN partners p ON p.id = s.partner_id
    """
    if where:
        q += " WHERE " + where
    q += " ORDER BY s.created_at DESC"
    conn = _connect()
    try:
        return [dict(r) for r in conn.execute(q, params).fetchall()]
    finally:
        conn.close()


def get_sale(sale_id: str) -> Optional[Dict[str, Any]]:
    conn = _connect()
    try:
        row = conn.execute("SELECT * FROM sales WHERE id=?", (sale_id,)).fetchone()
        if not row:
            return None
        sale = dict(row)
        items = conn.execute(
            "SELECT * FROM sale_items WHERE sale_id=? ORDER BY position", (sale_id,)
        ).fetchall()
        sale["items"] = [dict(r) for r in items]
        return sale
    finally:
        conn.close()


def partner_sale_items(date_from: Optional[str] = None, date_to: Optional[str] = None) -> List[Dict[str, Any]]:
    where, params = _date_filter(date_from, date_to, "s.created_at")
    q = """
        SELECT s.id AS sale_id, s.partner_id, i.mode, i.qty, i.derived_weight, i.cost_price, i.line_total
        FROM sale_items i
        JOIN sales s ON s.id = i.sale_id
        WHERE s.partner_id IS NOT NULL
    """
    if where:
        q += " AND " + where
    conn = _connect()
    try:
        return [dict(r) for r in conn.execute(q, params).fetchall()]
    finally:
        conn.close()


# ---------------- clients ----------------

def add_client(name: str, phone: str = "", email: str = "") -> Tuple[bool, str]:
    name = name.strip()
    if not name:
        return False, "client name is required"
    conn = _connect()
    try:
        conn.execute("INSERT INTO clients(name, phone, email) VALUES(?,?,?)", (name, phone.strip(), email.strip()))
        conn.commit()
        return True, "ok"
    except sqlite3.IntegrityError:
        return False, f"client {name} already exists"
    finally:
        conn.close()


def list_clients() -> List[Dict[str, Any]]:
    conn = _connect()
    try:
        rows = conn.execute("SELECT id, name, phone, email FROM clients ORDER BY name").fetchall()
        return [dict(r) for r in rows]
    finally:
        conn.close()


def get_client_by_name(name: str) -> Optional[Dict[str, Any]]:
    conn = _connect()
    try:
        row = conn.execute("SELECT id, name, phone, email FROM clients WHERE name = ?", (name,)).fetchone()
        return dict(row) if row else None
    finally:
        conn.close()


def delete_client(client_id: int) -> Tuple[bool, str]:
    conn = _connect()
    try:
        used = conn.execute("SELECT 1 FROM sales WHERE client_id=? LIMIT 1", (client_id,)).fetchone()
        if used:
            return False, "client is linked to existing sales and cannot be deleted"
        cur = conn.execute("DELETE FROM clients WHERE id=?", (client_id,))
        conn.commit()
        if cur.rowcount == 0:
            return False, "client not found"
        return True, "ok"
    finally:
        conn.close()


# ---------------- suppliers & purchase invoices ----------------

def add_supplier(name: str, contact_person: str = "", email: str = "", phone: str = "") -> Tuple[bool, str]:
    name = name.strip()
    if not name:
        return False, "supplier name is required"
    conn = _connect()
    try:
        conn.execute(
            "INSERT INTO suppliers(name, contact_person, email, phone) VALUES(?,?,?,?)",
            (name, contact_person.strip(), email.strip(), phone.strip()),
        )
        conn.commit()
        return True, "ok"
    except sqlite3.IntegrityError:
        return False, f"supplier {name} already exists"
    finally:
        conn.close()


def list_suppliers() -> List[Dict[str, Any]]:
    conn = _connect()
    try:
        rows = conn.execute("SELECT * FROM suppliers ORDER BY name").fetchall()
        return [dict(r) for r in rows]
    finally:
        conn.close()


def delete_supplier(supplier_id: int) -> Tuple[bool, str]:
    conn = _connect()
    try:
        used = conn.execute(
            "SELECT 1 FROM purchase_invoices WHERE supplier_id=? LIMIT 1", (supplier_id,)
        ).fetchone()
        if used:
            return False, "supplier has purchase invoices and cannot be deleted"
        cur = conn.execute("DELETE FROM suppliers WHERE id=?", (supplier_id,))
        conn.commit()
        if cur.rowcount == 0:
            return False, "supplier not found"
        return True, "ok"
    finally:
        conn.close()


def add_purchase_invoice(
    number: str,
    supplier_id: int,
    date: str,
    items: Iterable[Tuple[str, Any, Any]] = (),
    status: str = "pending",
) -> Tuple[bool, Any]:
    """
    Records a supplier invoice and receives its items into stock in one transaction.
    items: (sku, qty, unit_cost). Returns (True, invoice_id) or (False, error).
    """
    if status not in PURCHASE_STATUSES:
        return False, f"unknown status: {status}"
    number = number.strip()
    if not number:
        return False, "invoice number is required"

    conn = _connect()
    try:
        conn.execute("BEGIN")
        if not conn.execute("SELECT 1 FROM suppliers WHERE id=?", (supplier_id,)).fetchone():
            conn.execute("ROLLBACK")
            return False, "supplier not found"

        cur = conn.execute(
            "INSERT INTO purchase_invoices(number, supplier_id, date, total, status) VALUES(?,?,?,?,?)",
            (number, supplier_id, date, 0.0, status),
        )
        invoice_id = int(cur.lastrowid)

        total = Decimal("0")
        for sku, qty, unit_cost in items:
            amount = to_decimal(qty)
            cost = round_money(unit_cost)
            if amount <= 0 or cost < 0:
                conn.execute("ROLLBACK")
                return False, f"invalid line for {sku}: qty must be > 0 and cost >= 0"
            if _get_stock_qty(conn, sku) is None:
                conn.execute("ROLLBACK")
                return False, f"product not found: {sku}"

            line_total = round_money(amount * cost)
            total += line_total
            conn.execute(
                "INSERT INTO purchase_items(invoice_id, sku, qty, unit_cost, line_total) VALUES(?,?,?,?,?)",
                (invoice_id, sku, float(amount), float(cost), float(line_total)),
            )
            conn.execute(
                "UPDATE products SET stock_qty = stock_qty + ?, cost_price = ? WHERE sku=?",
                (float(amount), float(cost), sku),
            )

        conn.execute("UPDATE purchase_invoices SET total=? WHERE id=?", (float(total), invoice_id))
        conn.commit()
        log.info("purchase invoice %s received: %s", number, total)
        return True, invoice_id
    except sqlite3.IntegrityError:
        conn.execute("ROLLBACK")
        return False, f"invoice {number} already exists"
    except ValueError as e:
        conn.execute("ROLLBACK")
        return False, str(e)
    finally:
        conn.close()


def set_purchase_status(invoice_id: int, status: str) -> Tuple[bool, str]:
    if status not in PURCHASE_STATUSES:
        return False, f"unknown status: {status}"
    conn = _connect()
    try:
        cur = conn.execute("UPDATE purchase_invoices SET status=? WHERE id=?", (status, invoice_id))
        conn.commit()
        if cur.rowcount == 0:
            return False, "invoice not found"
        return True, "ok"
    finally:
        conn.close()


def list_purchase_invoices() -> List[Dict[str, Any]]:
    conn = _connect()
    try:
        rows = conn.execute(
            """
            SELECT i.id, i.number, i.date, i.total, i.status, i.supplier_id, s.name AS supplier_name
            FROM purchase_invoices i
            JOIN suppliers s ON s.id = i.supplier_id
            ORDER BY i.date DESC, i.id DESC
            """
        ).fetchall()
        return [dict(r) for r in rows]
    finally:
        conn.close()


def delete_purchase_invoice(invoice_id: int) -> bool:
    # received stock stays in place; only the paperwork goes
    conn = _connect()
    try:
        conn.execute("BEGIN")
        conn.execute("DELETE FROM purchase_items WHERE invoice_id=?", (invoice_id,))
        cur = conn.execute("DELETE FROM purchase_invoices WHERE id=?", (invoice_id,))
        conn.commit()
        return cur.rowcount > 0
    except Exception:
        conn.execute("ROLLBACK")
        raise
    finally:
        conn.close()


# ---------------- partners ----------------

def _check_pct(pct: Any) -> Decimal:
    value = to_decimal(pct)
    if value < 0 or value > 100:
        raise ValueError("profit share must be between 0 and 100")
    return value


def add_partner(name: str, profit_share_pct: Any) -> Tuple[bool, str]:
    name = name.strip()
    if not name:
        return False, "partner name is required"
    try:
        pct = _check_pct(profit_share_pct)
    except ValueError as e:
        return False, str(e)
    conn = _connect()
    try:
        conn.execute(
            "INSERT INTO partners(name, profit_share_pct, created_at) VALUES(?,?,?)",
            (name, float(pct), _now()),
        )
        conn.commit()
        return True, "ok"
    except sqlite3.IntegrityError:
        return False, f"partner {name} already exists"
    finally:
        conn.close()


def update_partner(partner_id: int, name: str, profit_share_pct: Any) -> Tuple[bool, str]:
    try:
        pct = _check_pct(profit_share_pct)
    except ValueError as e:
        return False, str(e)
    conn = _connect()
    try:
        cur = conn.execute(
            "UPDATE partners SET name=?, profit_share_pct=? WHERE id=?",
            (name.strip(), float(pct), partner_id),
        )
        conn.commit()
        if cur.rowcount == 0:
            return False, "partner not found"
        return True, "ok"
    except sqlite3.IntegrityError:
        return False, f"partner {name} already exists"
    finally:
        conn.close()


def list_partners() -> List[Dict[str, Any]]:
    conn = _connect()
    try:
        rows = conn.execute("SELECT id, name, profit_share_pct, created_at FROM partners ORDER BY name").fetchall()
        return [dict(r) for r in rows]
    finally:
        conn.close()


def delete_partner(partner_id: int) -> Tuple[bool, str]:
    conn = _connect()
    try:
        used = conn.execute("SELECT 1 FROM sales WHERE partner_id=? LIMIT 1", (partner_id,)).fetchone()
        if used:
            return False, "partner is linked to existing sales and cannot be deleted"
        cur = conn.execute("DELETE FROM partners WHERE id=?", (partner_id,))
        conn.commit()
        if cur.rowcount == 0:
            return False, "partner not found"
        return True, "ok"
    finally:
        conn.close()
