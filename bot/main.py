import asyncio
import logging
from aiogram import Bot, Dispatcher
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode
from aiogram.types import BotCommand

from bot.config import get_settings
from bot.db.session import create_db_engine, create_session_factory, init_db

from bot.handlers import start

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


async def main():
    settings = get_settings()

    # Initialize database
    engine = create_db_engine(settings.database_url)
    await init_db(engine)
    logger.info("Database initialized")

    # Create bot
    bot = Bot(
        token=settings.bot_token,
        default=DefaultBotProperties(parse_mode=ParseMode.HTML),
    )

    # Handlers receive these by argument name
    dp = Dispatcher(session_factory=create_session_factory(engine), settings=settings)
    dp.include_router(start.router)

    await bot.set_my_commands([
        BotCommand(command="start", description="Открыть приложение"),
    ])

    logger.info("Bot starting...")

    try:
        await dp.start_polling(bot, allowed_updates=dp.resolve_used_update_types())
    finally:
        await bot.session.close()
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
