from typing import Dict

from aiogram.fsm.state import State, StatesGroup

from cashdesk.services.register import Register


class ClientAdd(StatesGroup):
    waiting_name = State()


class ProductAdd(StatesGroup):
    waiting_sku = State()
    waiting_name = State()
    waiting_price = State()
    waiting_stock = State()
    waiting_weighed = State()


REGISTERS: Dict[int, Register] = {}  # user_id -> register session
