from aiogram.types import KeyboardButton, ReplyKeyboardMarkup


def main_kb() -> ReplyKeyboardMarkup:
    return ReplyKeyboardMarkup(
        keyboard=[
            [KeyboardButton(text="/cart"), KeyboardButton(text="/checkout")],
            [KeyboardButton(text="/products"), KeyboardButton(text="/stock")],
            [KeyboardButton(text="/report"), KeyboardButton(text="/backup")],
        ],
        resize_keyboard=True,
    )


def yes_no_kb() -> ReplyKeyboardMarkup:
    return ReplyKeyboardMarkup(
        keyboard=[
            [KeyboardButton(text="yes"), KeyboardButton(text="no")],
            [KeyboardButton(text="/cancel")],
        ],
        resize_keyboard=True,
        one_time_keyboard=True,
    )
