import logging
from aiogram import Router
from aiogram.filters import CommandStart
from aiogram.types import Message
from bot.config import Settings
from bot.services.order_service import upsert_user
from bot.utils.deep_links import webapp_keyboard
from bot.utils.formatters import welcome_message

logger = logging.getLogger(__name__)

router = Router()


@router.message(CommandStart())
async def cmd_start(message: Message, session_factory, settings: Settings):
    tg_user = message.from_user
    if tg_user:
        async with session_factory() as session:
            try:
                await upsert_user(
                    session, tg_user.id,
                    first_name=tg_user.first_name,
                    last_name=tg_user.last_name,
                    username=tg_user.username,
                )
                await session.commit()
            except Exception:
                logger.exception(f"Failed to register user {tg_user.id}")
                await session.rollback()

    await message.answer(
        welcome_message(
            tg_user.first_name if tg_user else None,
            tg_user.last_name if tg_user else None,
        ),
        reply_markup=webapp_keyboard("Открыть", settings.webapp_url),
    )
