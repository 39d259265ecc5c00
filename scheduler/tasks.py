import asyncio
import logging
from datetime import timedelta
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from bot.config import Settings, get_settings
from bot.db.session import create_db_engine, create_session_factory, init_db
from bot.services.notification_service import TelegramSender
from bot.services.sweeps import check_overdue_orders, remind_upcoming_orders

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


async def reminder_job(session_factory, sender: TelegramSender, settings: Settings):
    """Напоминания о приближающемся сроке (по настройкам заказа)."""
    async with session_factory() as session:
        try:
            await remind_upcoming_orders(
                session, sender,
                late_tolerance=timedelta(minutes=settings.reminder_late_window_min),
                early_tolerance=timedelta(minutes=settings.reminder_early_window_min),
            )
        except Exception:
            logger.exception("Reminder sweep failed")


async def overdue_job(session_factory, sender: TelegramSender):
    """Уведомления исполнителям о просроченных заказах."""
    async with session_factory() as session:
        try:
            await check_overdue_orders(session, sender)
        except Exception:
            logger.exception("Overdue sweep failed")


async def main():
    settings = get_settings()
    engine = create_db_engine(settings.database_url)
    await init_db(engine)
    session_factory = create_session_factory(engine)
    sender = TelegramSender.from_token(settings.bot_token, settings.webapp_url)

    scheduler = AsyncIOScheduler()

    # Reminder windows are ±3 min, so poll more often than that
    scheduler.add_job(
        reminder_job, "interval", seconds=settings.reminder_check_interval,
        args=[session_factory, sender, settings], max_instances=1, coalesce=True,
    )
    scheduler.add_job(
        overdue_job, "interval", seconds=settings.overdue_check_interval,
        args=[session_factory, sender], max_instances=1, coalesce=True,
    )

    scheduler.start()
    logger.info("Scheduler started")

    try:
        while True:
            await asyncio.sleep(3600)
    except (KeyboardInterrupt, SystemExit):
        scheduler.shutdown()
    finally:
        await sender.close()
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
