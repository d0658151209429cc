import asyncio

from aiogram import Bot, Dispatcher
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode

from cashdesk.bot.handlers import router
from cashdesk.config import require_bot_settings, settings
from cashdesk.db.sqlite import init_db
from cashdesk.logger import setup_logging


async def main() -> None:
    log = setup_logging()
    require_bot_settings()

    init_db()

    bot = Bot(token=settings.bot_token, default=DefaultBotProperties(parse_mode=ParseMode.HTML))
    dp = Dispatcher()
    dp.include_router(router)

    log.info("bot polling started (stock policy: %s)", settings.stock_policy)
    await dp.start_polling(bot)


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
