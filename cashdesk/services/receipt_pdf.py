from __future__ import annotations

import os

from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas

from cashdesk import config
from cashdesk.core.models import Sale
from cashdesk.services.pricing import quantize


def receipt_path(sale_id: str) -> str:
    return os.path.join(config.settings.export_dir, f"receipt_{sale_id}.pdf")


def generate_receipt_pdf(sale: Sale, client_name: str | None = None) -> str:
    settings = config.settings
    os.makedirs(settings.export_dir, exist_ok=True)
    path = receipt_path(sale.id)

    c = canvas.Canvas(path, pagesize=A4)
    w, h = A4

    y = h - 50
    c.setFont("Helvetica-Bold", 14)
    c.drawString(40, y, f"RECEIPT #{sale.id[:8].upper()}")
    y -= 20

    c.setFont("Helvetica", 11)
    if client_name:
        c.drawString(40, y, f"Client: {client_name}")
        y -= 16
    c.drawString(40, y, f"Date: {sale.created_at.strftime('%Y-%m-%d %H:%M:%S')}")
    y -= 16
    c.drawString(40, y, f"Currency: {settings.currency}")
    y -= 24

    # header
    c.setFont("Helvetica-Bold", 10)
    c.drawString(40, y, "Item")
    c.drawString(310, y, "Qty")
    c.drawString(360, y, "Price")
    c.drawString(440, y, "Total")
    y -= 10
    c.line(40, y, 550, y)
    y -= 16

    c.setFont("Helvetica", 10)
    for line in sale.lines:
        if line.is_weighed:
            qty = f"{quantize(line.derived_weight, settings.weight_decimals)} kg"
        else:
            qty = str(line.quantity)
        c.drawString(40, y, line.item.name[:45])
        c.drawRightString(340, y, qty)
        c.drawRightString(420, y, f"{quantize(line.item.unit_price, settings.decimals)}")
        c.drawRightString(550, y, f"{quantize(line.line_total, settings.decimals)}")
        y -= 14
        if y < 80:
            c.showPage()
            y = h - 50
            c.setFont("Helvetica", 10)

    y -= 10
    c.line(40, y, 550, y)
    y -= 18
    c.setFont("Helvetica-Bold", 12)
    c.drawRightString(550, y, f"TOTAL: {quantize(sale.total, settings.decimals)} {settings.currency}")

    c.save()
    return path
