import logging
import shlex

from aiogram import Router
from aiogram.filters import Command
from aiogram.fsm.context import FSMContext
from aiogram.types import FSInputFile, Message, ReplyKeyboardRemove

from cashdesk import config
from cashdesk.bot.keyboards import main_kb, yes_no_kb
from cashdesk.bot.states import REGISTERS, ClientAdd, ProductAdd
from cashdesk.core.errors import CartError
from cashdesk.db.sqlite import (
    add_client,
    add_product,
    get_client_by_name,
    init_db,
    list_clients,
    list_partners,
    list_products,
    receive_stock,
)
from cashdesk.services.backup import make_backup
from cashdesk.services.receipt_pdf import generate_receipt_pdf
from cashdesk.services.register import Register, open_register
from cashdesk.services.reports import dashboard_summary, partner_profit_report
from cashdesk.utils.formatters import cart_text, line_text, money, weight
from cashdesk.utils.validators import parse_decimal, parse_int

log = logging.getLogger(__name__)

router = Router()


def _is_admin(message: Message) -> bool:
    if message.from_user is None:
        return False
    return int(message.from_user.id) == int(config.settings.admin_id)


def _register(message: Message) -> Register:
    user_id = int(message.from_user.id)
    reg = REGISTERS.get(user_id)
    if reg is None:
        reg = open_register()
        REGISTERS[user_id] = reg
    return reg


def _args(message: Message) -> list[str]:
    return (message.text or "").split()[1:]


@router.message(Command("start"))
async def cmd_start(message: Message):
    if not _is_admin(message):
        return
    init_db()
    await message.answer("✅ cashdesk is running", reply_markup=main_kb())


@router.message(Command("cancel"))
async def cmd_cancel(message: Message, state: FSMContext):
    if not _is_admin(message):
        return
    await state.clear()
    await message.answer("❎ Cancelled. You can type commands again.", reply_markup=ReplyKeyboardRemove())


@router.message(Command("help"))
async def cmd_help(message: Message):
    if not _is_admin(message):
        return

    text = (
        "<b>cashdesk — commands</b>\n\n"
        "<b>General</b>\n"
        "/start — start\n"
        "/cancel — cancel input\n"
        "/help — this help\n"
        "/ping — check\n"
        "/backup — database + receipts zip\n\n"
        "<b>Catalog</b>\n"
        "/products — list\n"
        "/product_add — add wizard (or: /product_add SKU NAME PRICE STOCK [weighed])\n"
        "/find TEXT — search by name\n"
        "/stock — low stock\n"
        "/receive SKU QTY — stock arrival\n\n"
        "<b>Sale</b>\n"
        "/add SKU [QTY] — add by count\n"
        "/weigh SKU PRICE — add weighed item by total price\n"
        "/qty SKU N — set quantity (0 removes)\n"
        "/remove SKU — remove line\n"
        "/cart — show cart\n"
        "/clear — empty cart\n"
        "/checkout [CLIENT] — finish sale + PDF receipt\n\n"
        "<b>People</b>\n"
        "/clients — list\n"
        "/client_add NAME — add\n"
        "/partners — partners and profit shares\n"
        "/report — dashboard + partner report\n"
    )
    await message.answer(text)


@router.message(Command("ping"))
async def cmd_ping(message: Message):
    if not _is_admin(message):
        return
    await message.answer("pong ✅")


@router.message(Command("backup"))
async def cmd_backup(message: Message):
    if not _is_admin(message):
        return
    try:
        file_path = make_backup()
        await message.answer_document(FSInputFile(file_path))
    except Exception as e:
        log.exception("backup failed")
        await message.answer(f"❌ Backup failed: {e}")


# ---------------- clients ----------------

@router.message(Command("clients"))
async def cmd_clients(message: Message):
    if not _is_admin(message):
        return
    init_db()
    rows = list_clients()
    if not rows:
        await message.answer("No clients yet. Add one: /client_add Name")
        return
    lines = ["<b>Clients:</b>"]
    for r in rows:
        lines.append(f"• {r['name']}" + (f" ({r['phone']})" if r["phone"] else ""))
    await message.answer("\n".join(lines))


@router.message(Command("client_add"))
async def cmd_client_add(message: Message, state: FSMContext):
    if not _is_admin(message):
        return

    parts = (message.text or "").split(maxsplit=1)
    if len(parts) >= 2 and parts[1].strip():
        name = parts[1].strip()
        ok, err = add_client(name)
        await message.answer(f"✅ Client added: {name}" if ok else f"❌ {err}")
        return

    await state.set_state(ClientAdd.waiting_name)
    await message.answer(
        "Send the client name in one message.\nCancel: /cancel",
        reply_markup=ReplyKeyboardRemove(),
    )


@router.message(ClientAdd.waiting_name)
async def client_add_wait_name(message: Message, state: FSMContext):
    if not _is_admin(message):
        return

    name = (message.text or "").strip()
    if not name or name.startswith("/"):
        await message.answer("Send the name as text. Cancel: /cancel")
        return

    ok, err = add_client(name)
    await state.clear()
    await message.answer(f"✅ Client added: {name}" if ok else f"❌ {err}")


# ---------------- catalog ----------------

@router.message(Command("products"))
async def cmd_products(message: Message):
    if not _is_admin(message):
        return
    init_db()
    rows = list_products()
    if not rows:
        await message.answer("No products yet. Add one: /product_add")
        return
    lines = ["<b>Products:</b>"]
    for r in rows:
        per = "/kg" if r["is_weighed"] else ""
        lines.append(f"• <code>{r['sku']}</code> {r['name']} — {money(r['unit_price'])}{per} | stock {r['stock_qty']:g}")
    await message.answer("\n".join(lines))


@router.message(Command("product_add"))
async def cmd_product_add(message: Message, state: FSMContext):
    if not _is_admin(message):
        return

    init_db()

    try:
        args = shlex.split(message.text or "")
    except ValueError:
        args = []
    if len(args) >= 5:
        _, sku, name, price_s, stock_s = args[:5]
        weighed = len(args) >= 6 and args[5].lower() in ("weighed", "kg", "yes")
        try:
            price = parse_decimal(price_s, "price")
            stock = parse_decimal(stock_s, "stock")
        except ValueError as e:
            await message.answer(f"❌ {e}")
            return
        ok, err = add_product(sku, name, price, stock, is_weighed=weighed, unit="kg" if weighed else "pcs")
        await message.answer(f"✅ Product added: {sku}" if ok else f"❌ {err}")
        return

    await state.clear()
    await state.set_state(ProductAdd.waiting_sku)
    await message.answer(
        "Adding a product.\n\n1/5) Send the SKU (short code, e.g. apple)\nCancel: /cancel",
        reply_markup=ReplyKeyboardRemove(),
    )


@router.message(ProductAdd.waiting_sku)
async def product_add_sku(message: Message, state: FSMContext):
    if not _is_admin(message):
        return
    sku = (message.text or "").strip()
    if not sku or sku.startswith("/") or " " in sku:
        await message.answer("SKU is one word without spaces. Cancel: /cancel")
        return
    await state.update_data(sku=sku)
    await state.set_state(ProductAdd.waiting_name)
    await message.answer("2/5) Send the NAME\nCancel: /cancel")


@router.message(ProductAdd.waiting_name)
async def product_add_name(message: Message, state: FSMContext):
    if not _is_admin(message):
        return
    name = (message.text or "").strip()
    if not name or name.startswith("/"):
        await message.answer("Send the name as text. Cancel: /cancel")
        return
    await state.update_data(name=name)
    await state.set_state(ProductAdd.waiting_weighed)
    await message.answer("3/5) Is it sold by weight (price per kg)?", reply_markup=yes_no_kb())


@router.message(ProductAdd.waiting_weighed)
async def product_add_weighed(message: Message, state: FSMContext):
    if not _is_admin(message):
        return
    answer = (message.text or "").strip().lower()
    if answer not in ("yes", "no"):
        await message.answer("Answer yes or no. Cancel: /cancel", reply_markup=yes_no_kb())
        return
    await state.update_data(weighed=answer == "yes")
    await state.set_state(ProductAdd.waiting_price)
    per = " per kg" if answer == "yes" else ""
    await message.answer(f"4/5) Send the PRICE{per}, e.g. 12.50\nCancel: /cancel", reply_markup=ReplyKeyboardRemove())


@router.message(ProductAdd.waiting_price)
async def product_add_price(message: Message, state: FSMContext):
    if not _is_admin(message):
        return
    try:
        price = parse_decimal(message.text or "", "price")
        if price < 0:
            raise ValueError("price must be >= 0")
    except ValueError as e:
        await message.answer(f"{e}\nCancel: /cancel")
        return
    await state.update_data(price=str(price))
    await state.set_state(ProductAdd.waiting_stock)
    await message.answer("5/5) Send the STOCK on hand, e.g. 40 or 12.5\nCancel: /cancel")


@router.message(ProductAdd.waiting_stock)
async def product_add_stock(message: Message, state: FSMContext):
    if not _is_admin(message):
        return
    try:
        stock = parse_decimal(message.text or "", "stock")
    except ValueError as e:
        await message.answer(f"{e}\nCancel: /cancel")
        return

    data = await state.get_data()
    weighed = bool(data.get("weighed"))
    try:
        ok, err = add_product(
            str(data.get("sku", "")),
            str(data.get("name", "")),
            data.get("price", "0"),
            stock,
            is_weighed=weighed,
            unit="kg" if weighed else "pcs",
        )
    finally:
        await state.clear()
    await message.answer(f"✅ Product added: {data.get('sku')}" if ok else f"❌ {err}")


@router.message(Command("find"))
async def cmd_find(message: Message):
    if not _is_admin(message):
        return
    parts = (message.text or "").split(maxsplit=1)
    term = parts[1] if len(parts) > 1 else ""
    items = _register(message).search(term)
    if not items:
        await message.answer("Nothing found")
        return
    lines = []
    for it in items[:30]:
        per = "/kg" if it.is_weighed else ""
        lines.append(f"• <code>{it.id}</code> {it.name} — {money(it.unit_price)}{per} (stock {it.stock_quantity:g})")
    await message.answer("\n".join(lines))


@router.message(Command("stock"))
async def cmd_stock(message: Message):
    if not _is_admin(message):
        return
    init_db()
    summary = dashboard_summary(config.settings.low_stock_threshold)
    rows = summary["low_stock"]
    if not rows:
        await message.answer("✅ No low stock items")
        return
    lines = [f"<b>Low stock (≤ {config.settings.low_stock_threshold}):</b>"]
    for r in rows:
        lines.append(f"• {r['sku']} {r['name']} | {float(r['stock_qty']):.2f} {r['unit']}")
    await message.answer("\n".join(lines))


@router.message(Command("receive"))
async def cmd_receive(message: Message):
    if not _is_admin(message):
        return
    init_db()
    parts = _args(message)
    if len(parts) != 2:
        await message.answer("Format: /receive SKU QTY")
        return
    sku, qty_s = parts
    ok, err = receive_stock(sku, qty_s)
    if not ok:
        await message.answer(f"❌ {err}")
        return
    await message.answer(f"✅ Received: {sku} +{qty_s}")


# ---------------- sale ----------------

@router.message(Command("add"))
async def cmd_add(message: Message):
    if not _is_admin(message):
        return
    parts = _args(message)
    if len(parts) not in (1, 2):
        await message.answer("Format: /add SKU [QTY]")
        return
    try:
        qty = parse_int(parts[1], "QTY") if len(parts) == 2 else 1
        line = _register(message).add(parts[0], qty)
    except (CartError, ValueError) as e:
        await message.answer(f"❌ {e}")
        return
    await message.answer(f"✅ {line_text(line)}")


@router.message(Command("weigh"))
async def cmd_weigh(message: Message):
    if not _is_admin(message):
        return
    parts = _args(message)
    if len(parts) != 2:
        await message.answer("Format: /weigh SKU TOTAL_PRICE")
        return
    try:
        line = _register(message).add_weighed(parts[0], parse_decimal(parts[1], "price"))
    except (CartError, ValueError) as e:
        await message.answer(f"❌ {e}")
        return
    await message.answer(f"✅ {line.item.name}: {weight(line.derived_weight)} for {money(line.line_total)}")


@router.message(Command("qty"))
async def cmd_qty(message: Message):
    if not _is_admin(message):
        return
    parts = _args(message)
    if len(parts) != 2:
        await message.answer("Format: /qty SKU N")
        return
    try:
        line = _register(message).set_quantity(parts[0], parse_int(parts[1], "N"))
    except (CartError, ValueError) as e:
        await message.answer(f"❌ {e}")
        return
    await message.answer(f"✅ {line_text(line)}" if line else f"✅ Removed {parts[0]}")


@router.message(Command("remove"))
async def cmd_remove(message: Message):
    if not _is_admin(message):
        return
    parts = _args(message)
    if len(parts) != 1:
        await message.answer("Format: /remove SKU")
        return
    _register(message).remove(parts[0])
    await message.answer(f"✅ Removed {parts[0]}")


@router.message(Command("cart"))
async def cmd_cart(message: Message):
    if not _is_admin(message):
        return
    reg = _register(message)
    await message.answer(cart_text(reg.cart.lines, reg.total()))


@router.message(Command("clear"))
async def cmd_clear(message: Message):
    if not _is_admin(message):
        return
    _register(message).clear()
    await message.answer("🧺 Cart cleared")


@router.message(Command("checkout"))
async def cmd_checkout(message: Message):
    if not _is_admin(message):
        return

    reg = _register(message)
    parts = (message.text or "").split(maxsplit=1)
    client_name = parts[1].strip() if len(parts) > 1 else None
    client_id = None
    if client_name:
        client = get_client_by_name(client_name)
        if not client:
            await message.answer(f"❌ Unknown client: {client_name}. Add it: /client_add {client_name}")
            return
        client_id = int(client["id"])

    try:
        sale = reg.checkout(client_id=client_id)
    except CartError as e:
        await message.answer(f"❌ {e}")
        return
    except Exception as e:
        log.exception("checkout failed")
        await message.answer(f"❌ Sale was not recorded: {e}")
        return

    for sku, amount in reg.failed_decrements:
        await message.answer(f"⚠️ Stock not updated for {sku} (-{amount})")

    try:
        pdf_path = generate_receipt_pdf(sale, client_name)
        await message.answer_document(FSInputFile(pdf_path))
    except Exception as e:
        log.exception("receipt PDF failed for sale %s", sale.id)
        await message.answer(f"⚠️ Sale recorded, but the PDF was not generated: {e}")

    await message.answer(
        f"✅ Sale completed. Receipt #{sale.id[:8].upper()}\n"
        + (f"Client: {client_name}\n" if client_name else "")
        + f"Lines: {len(sale.lines)}\n"
        f"Total: {money(sale.total)}"
    )


# ---------------- partners & reports ----------------

@router.message(Command("partners"))
async def cmd_partners(message: Message):
    if not _is_admin(message):
        return
    init_db()
    rows = list_partners()
    if not rows:
        await message.answer("No partners yet (add them in the web UI)")
        return
    lines = ["<b>Partners:</b>"]
    for r in rows:
        lines.append(f"• {r['name']} — {float(r['profit_share_pct']):.2f}%")
    await message.answer("\n".join(lines))


@router.message(Command("report"))
async def cmd_report(message: Message):
    if not _is_admin(message):
        return
    init_db()
    summary = dashboard_summary(config.settings.low_stock_threshold)
    lines = [
        "<b>Dashboard</b>",
        f"Sales: {summary['sales_count']}",
        f"Revenue: {money(summary['revenue'])}",
        f"Average sale: {money(summary['average_sale'])}",
        f"Products: {summary['product_count']} (low stock: {len(summary['low_stock'])})",
    ]
    report = partner_profit_report()
    if report:
        lines.append("")
        lines.append("<b>Partner shares</b>")
        for r in report:
            lines.append(
                f"• {r['partner_name']}: profit {money(r['profit'])} × {r['profit_share_pct']}% = {money(r['share_amount'])}"
            )
    await message.answer("\n".join(lines))
