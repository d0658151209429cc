from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, List, Optional

from cashdesk.db import sqlite as db
from cashdesk.services.pricing import round_money, to_decimal


def _sold_amount(row: Dict[str, Any]) -> Decimal:
    if row["mode"] == "weighed" and row["derived_weight"] is not None:
        return to_decimal(row["derived_weight"])
    return to_decimal(row["qty"])


def partner_profit_report(date_from: Optional[str] = None, date_to: Optional[str] = None) -> List[Dict[str, Any]]:
    """
    Profit share per partner over the sales attributed to them.

    profit = sum(line_total - cost_price * sold amount); share = profit * pct / 100.
    Partners without sales are listed with zeros.
    """
    totals: Dict[int, Dict[str, Any]] = {}
    for p in db.list_partners():
        totals[p["id"]] = {
            "partner_id": p["id"],
            "partner_name": p["name"],
            "profit_share_pct": to_decimal(p["profit_share_pct"]),
            "sales_count": 0,
            "revenue": Decimal("0"),
            "profit": Decimal("0"),
            "_sales": set(),
        }

    for row in db.partner_sale_items(date_from, date_to):
        entry = totals.get(row["partner_id"])
        if entry is None:
            continue
        line_total = to_decimal(row["line_total"])
        cost = to_decimal(row["cost_price"]) * _sold_amount(row)
        entry["revenue"] += line_total
        entry["profit"] += line_total - cost
        entry["_sales"].add(row["sale_id"])

    report = []
    for entry in totals.values():
        sales = entry.pop("_sales")
        entry["sales_count"] = len(sales)
        entry["revenue"] = round_money(entry["revenue"])
        entry["profit"] = round_money(entry["profit"])
        entry["share_amount"] = round_money(entry["profit"] * entry["profit_share_pct"] / 100)
        report.append(entry)
    report.sort(key=lambda e: e["partner_name"].casefold())
    return report


def dashboard_summary(low_stock_threshold: Any = 10) -> Dict[str, Any]:
    sales = db.list_sales()
    revenue = sum((to_decimal(s["total"]) for s in sales), Decimal("0"))
    count = len(sales)
    return {
        "sales_count": count,
        "revenue": round_money(revenue),
        "average_sale": round_money(revenue / count) if count else Decimal("0.00"),
        "product_count": len(db.list_products()),
        "low_stock": db.low_stock(low_stock_threshold),
    }
