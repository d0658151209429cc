from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Optional
from urllib.parse import quote_plus

from fastapi import FastAPI, Form, HTTPException, Request
from fastapi.responses import FileResponse, HTMLResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates

from cashdesk import config
from cashdesk.constants import PURCHASE_STATUSES
from cashdesk.core.errors import CartError
from cashdesk.db import sqlite as db
from cashdesk.logger import setup_logging
from cashdesk.services.backup import make_backup
from cashdesk.services.receipt_pdf import generate_receipt_pdf, receipt_path
from cashdesk.services.register import Register, open_register
from cashdesk.services.reports import dashboard_summary, partner_profit_report
from cashdesk.utils.formatters import money, weight
from cashdesk.utils.validators import parse_decimal, parse_int

log = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parent
TEMPLATES_DIR = BASE_DIR / "templates"
STATIC_DIR = BASE_DIR / "static"

app = FastAPI(title="cashdesk")

templates = Jinja2Templates(directory=str(TEMPLATES_DIR))
templates.env.filters["money"] = money
templates.env.filters["weight"] = weight

if STATIC_DIR.exists():
    app.mount("/static", StaticFiles(directory=str(STATIC_DIR)), name="static")

# single register: the web UI is one till
_REGISTER: Optional[Register] = None


def get_register() -> Register:
    global _REGISTER
    if _REGISTER is None:
        _REGISTER = open_register()
    return _REGISTER


def reset_register() -> None:
    global _REGISTER
    _REGISTER = None


@app.on_event("startup")
def _startup() -> None:
    setup_logging()
    db.init_db()


def _render(request: Request, name: str, ctx: dict[str, Any]) -> HTMLResponse:
    base = {
        "request": request,
        "currency": config.settings.currency,
        "message": request.query_params.get("msg", ""),
    }
    base.update(ctx)
    return templates.TemplateResponse(request, name, base)


def _back(url: str, msg: str) -> RedirectResponse:
    sep = "&" if "?" in url else "?"
    return RedirectResponse(url=f"{url}{sep}msg={quote_plus(msg)}", status_code=303)


def _ok_or_err(ok: bool, err: Any, done: str) -> str:
    return done if ok else f"❌ {err}"


@app.get("/", response_class=HTMLResponse)
def index(request: Request):
    summary = dashboard_summary(config.settings.low_stock_threshold)
    return _render(request, "index.html", {"summary": summary})


# ---------------- products ----------------

@app.get("/products", response_class=HTMLResponse)
def products(request: Request):
    return _render(request, "products.html", {"products": db.list_products()})


@app.post("/products/add")
def products_add(
    sku: str = Form(...),
    name: str = Form(...),
    unit_price: str = Form(...),
    stock_qty: str = Form("0"),
    category: str = Form("General"),
    cost_price: str = Form("0"),
    is_weighed: bool = Form(False),
):
    ok, err = db.add_product(
        sku, name, unit_price, stock_qty,
        is_weighed=is_weighed, category=category, unit="kg" if is_weighed else "pcs", cost_price=cost_price,
    )
    return _back("/products", _ok_or_err(ok, err, f"✅ added {sku}"))


@app.post("/products/update")
def products_update(sku: str = Form(...), unit_price: str = Form(...), stock_qty: str = Form(...)):
    ok, err = db.update_product(sku, unit_price=unit_price, stock_qty=stock_qty)
    return _back("/products", _ok_or_err(ok, err, f"✅ updated {sku}"))


@app.post("/products/delete")
def products_delete(sku: str = Form(...)):
    ok, err = db.delete_product(sku)
    return _back("/products", _ok_or_err(ok, err, f"✅ deleted {sku}"))


# ---------------- pos (cart) ----------------

@app.get("/pos", response_class=HTMLResponse)
def pos(request: Request, q: str = ""):
    reg = get_register()
    ctx = {
        "q": q,
        "results": reg.search(q),
        "weighable": reg.catalog_loader().weighable(),
        "lines": reg.cart.lines,
        "total": reg.total(),
        "clients": db.list_clients(),
        "partners": db.list_partners(),
    }
    return _render(request, "pos.html", ctx)


@app.post("/pos/add")
def pos_add(sku: str = Form(...), qty: str = Form("1")):
    try:
        line = get_register().add(sku, parse_int(qty, "qty"))
    except (CartError, ValueError) as e:
        return _back("/pos", f"❌ {e}")
    return _back("/pos", f"✅ {line.item.name} × {line.quantity}")


@app.post("/pos/weigh")
def pos_weigh(sku: str = Form(...), total_price: str = Form(...)):
    try:
        line = get_register().add_weighed(sku, parse_decimal(total_price, "total price"))
    except (CartError, ValueError) as e:
        return _back("/pos", f"❌ {e}")
    return _back("/pos", f"✅ {line.item.name}: {weight(line.derived_weight)}")


@app.post("/pos/update")
def pos_update(sku: str = Form(...), qty: str = Form(...)):
    try:
        get_register().set_quantity(sku, parse_int(qty, "qty"))
    except (CartError, ValueError) as e:
        return _back("/pos", f"❌ {e}")
    return RedirectResponse(url="/pos", status_code=303)


@app.post("/pos/remove")
def pos_remove(sku: str = Form(...)):
    get_register().remove(sku)
    return RedirectResponse(url="/pos", status_code=303)


@app.post("/pos/clear")
def pos_clear():
    get_register().clear()
    return _back("/pos", "🧺 cart cleared")


@app.post("/pos/checkout")
def pos_checkout(client_id: str = Form(""), partner_id: str = Form("")):
    reg = get_register()
    try:
        sale = reg.checkout(
            client_id=int(client_id) if client_id.strip() else None,
            partner_id=int(partner_id) if partner_id.strip() else None,
        )
    except (CartError, ValueError) as e:
        return _back("/pos", f"❌ {e}")
    except Exception as e:
        log.exception("checkout failed")
        return _back("/pos", f"❌ sale was not recorded: {e}")

    warnings = [f"stock not updated for {sku}" for sku, _ in reg.failed_decrements]
    try:
        generate_receipt_pdf(sale)
    except Exception as e:
        log.exception("receipt PDF failed for sale %s", sale.id)
        warnings.append(f"receipt PDF failed: {e}")

    url = f"/pos/done?sale_id={sale.id}"
    if warnings:
        return _back(url, "⚠️ " + "; ".join(warnings))
    return RedirectResponse(url=url, status_code=303)


@app.get("/pos/done", response_class=HTMLResponse)
def pos_done(request: Request, sale_id: str):
    sale = db.get_sale(sale_id)
    if sale is None:
        raise HTTPException(status_code=404, detail="sale not found")
    pdf = receipt_path(sale_id)
    return _render(request, "sale_done.html", {"sale": sale, "pdf": pdf if Path(pdf).exists() else None})


# ---------------- clients ----------------

@app.get("/clients", response_class=HTMLResponse)
def clients(request: Request):
    return _render(request, "clients.html", {"clients": db.list_clients()})


@app.post("/clients/add")
def clients_add(name: str = Form(...), phone: str = Form(""), email: str = Form("")):
    ok, err = db.add_client(name, phone, email)
    return _back("/clients", _ok_or_err(ok, err, f"✅ added {name}"))


@app.post("/clients/delete")
def clients_delete(client_id: int = Form(...)):
    ok, err = db.delete_client(client_id)
    return _back("/clients", _ok_or_err(ok, err, "✅ deleted"))


# ---------------- purchasing ----------------

@app.get("/purchasing", response_class=HTMLResponse)
def purchasing(request: Request):
    return _render(
        request,
        "purchasing.html",
        {
            "suppliers": db.list_suppliers(),
            "invoices": db.list_purchase_invoices(),
            "products": db.list_products(),
            "statuses": PURCHASE_STATUSES,
        },
    )


@app.post("/suppliers/add")
def suppliers_add(
    name: str = Form(...),
    contact_person: str = Form(""),
    email: str = Form(""),
    phone: str = Form(""),
):
    ok, err = db.add_supplier(name, contact_person, email, phone)
    return _back("/purchasing", _ok_or_err(ok, err, f"✅ added {name}"))


@app.post("/suppliers/delete")
def suppliers_delete(supplier_id: int = Form(...)):
    ok, err = db.delete_supplier(supplier_id)
    return _back("/purchasing", _ok_or_err(ok, err, "✅ supplier deleted"))


@app.post("/purchasing/add")
def purchasing_add(
    number: str = Form(...),
    supplier_id: int = Form(...),
    date: str = Form(...),
    sku: str = Form(...),
    qty: str = Form(...),
    unit_cost: str = Form(...),
    status: str = Form("pending"),
):
    ok, res = db.add_purchase_invoice(number, supplier_id, date, [(sku, qty, unit_cost)], status=status)
    return _back("/purchasing", _ok_or_err(ok, res, f"✅ invoice {number} received"))


@app.post("/purchasing/status")
def purchasing_status(invoice_id: int = Form(...), status: str = Form(...)):
    ok, err = db.set_purchase_status(invoice_id, status)
    return _back("/purchasing", _ok_or_err(ok, err, "✅ status updated"))


@app.post("/purchasing/delete")
def purchasing_delete(invoice_id: int = Form(...)):
    ok = db.delete_purchase_invoice(invoice_id)
    return _back("/purchasing", "✅ invoice deleted" if ok else "❌ invoice not found")


# ---------------- partners ----------------

@app.get("/partners", response_class=HTMLResponse)
def partners(request: Request):
    return _render(request, "partners.html", {"partners": db.list_partners()})


@app.post("/partners/add")
def partners_add(name: str = Form(...), profit_share_pct: str = Form("0")):
    ok, err = db.add_partner(name, profit_share_pct)
    return _back("/partners", _ok_or_err(ok, err, f"✅ added {name}"))


@app.post("/partners/update")
def partners_update(partner_id: int = Form(...), name: str = Form(...), profit_share_pct: str = Form(...)):
    ok, err = db.update_partner(partner_id, name, profit_share_pct)
    return _back("/partners", _ok_or_err(ok, err, f"✅ updated {name}"))


@app.post("/partners/delete")
def partners_delete(partner_id: int = Form(...)):
    ok, err = db.delete_partner(partner_id)
    return _back("/partners", _ok_or_err(ok, err, "✅ partner deleted"))


# ---------------- reports ----------------

@app.get("/reports", response_class=HTMLResponse)
def reports(request: Request, date_from: str = "", date_to: str = ""):
    return _render(
        request,
        "reports.html",
        {
            "date_from": date_from,
            "date_to": date_to,
            "partner_report": partner_profit_report(date_from or None, date_to or None),
            "sales": db.list_sales(date_from or None, date_to or None),
        },
    )


# ---------------- files ----------------

@app.post("/backup")
def backup():
    path = make_backup()
    return RedirectResponse(url=f"/download?path={quote_plus(path)}", status_code=303)


@app.get("/download", response_class=FileResponse)
def download(path: str):
    p = Path(path).resolve()
    allowed = [Path(config.settings.export_dir).resolve(), Path(config.settings.backup_dir).resolve()]
    if not any(p.is_relative_to(root) for root in allowed) or not p.is_file():
        raise HTTPException(status_code=404, detail="file not found")
    return FileResponse(str(p), filename=p.name)
