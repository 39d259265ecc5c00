import logging
from collections.abc import Awaitable, Callable, Iterable
from aiogram import Bot
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode
from bot.services.records import NotificationIntent
from bot.utils.deep_links import webapp_keyboard

logger = logging.getLogger(__name__)

# (telegram_id, text, url_path, button_text) -> delivered?
NotificationSender = Callable[[int, str, str | None, str], Awaitable[bool]]


class TelegramSender:
    """Delivers messages through the Bot API; never raises."""

    def __init__(self, bot: Bot, webapp_url: str):
        self.bot = bot
        self.webapp_url = webapp_url

    @classmethod
    def from_token(cls, token: str, webapp_url: str) -> "TelegramSender":
        bot = Bot(token=token, default=DefaultBotProperties(parse_mode=ParseMode.HTML))
        return cls(bot, webapp_url)

    async def __call__(self, telegram_id: int, text: str, url_path: str | None = None,
                       button_text: str = "Перейти к задаче") -> bool:
        kb = webapp_keyboard(button_text, self.webapp_url, url_path) if url_path else None
        try:
            await self.bot.send_message(telegram_id, text, parse_mode="HTML", reply_markup=kb)
        except Exception as e:
            logger.warning(f"Failed to send to {telegram_id}: {e}")
            return False
        return True

    async def close(self):
        await self.bot.session.close()


async def deliver(sender: NotificationSender, intents: Iterable[NotificationIntent]) -> int:
    """Send every intent; a failed recipient does not stop the rest."""
    sent = 0
    for intent in intents:
        if await sender(intent.recipient_id, intent.text, intent.url_path, intent.button_text):
            sent += 1
        else:
            logger.warning(f"Notification to {intent.recipient_id} not delivered (order {intent.order_id})")
    return sent
