"""
Sweeps — периодические проверки сроков.

Shared by the scheduler jobs and the cron HTTP routes: load a snapshot,
run the pure computation, deliver, persist the reminder log.
"""
import logging
from datetime import datetime, timedelta, timezone
from sqlalchemy.ext.asyncio import AsyncSession
from bot.services.notification_service import NotificationSender, deliver
from bot.services.order_service import get_time_zones, load_active_orders
from bot.services.overdue import build_overdue_notifications, compute_overdue
from bot.services.reminder_log_service import load_reminder_logs, write_reminder_log
from bot.services.reminder_scheduler import (
    REMINDER_EARLY_WINDOW, REMINDER_LATE_WINDOW, compute_due_reminders, reminder_window,
)
from bot.services.reminders import reminder_delta

logger = logging.getLogger(__name__)


async def remind_upcoming_orders(
    session: AsyncSession,
    sender: NotificationSender,
    now: datetime | None = None,
    late_tolerance: timedelta = REMINDER_LATE_WINDOW,
    early_tolerance: timedelta = REMINDER_EARLY_WINDOW,
) -> dict:
    now = now or datetime.now(timezone.utc)
    orders = await load_active_orders(session, with_reminders=True)

    # Only orders with a target inside the window need their log loaded
    earliest, latest = reminder_window(now, late_tolerance, early_tolerance)
    candidate_ids = set()
    min_target = None
    for order in orders:
        due = order.due_instant
        if due is None:
            continue
        for offset in order.offsets:
            target = due - reminder_delta(offset)
            if earliest <= target <= latest:
                candidate_ids.add(order.id)
                min_target = min(min_target, target) if min_target else target

    if not candidate_ids:
        return {"checked": len(orders), "remindersPlanned": 0, "remindersSent": 0}

    lookback = max(late_tolerance, early_tolerance)
    logs = await load_reminder_logs(session, candidate_ids, since=min_target - lookback)
    candidates = [order for order in orders if order.id in candidate_ids]
    recipients = {tid for order in candidates for tid in (order.assignee_telegram_id, order.user_telegram_id)}
    time_zones = await get_time_zones(session, recipients)

    plan = compute_due_reminders(
        candidates, logs, now,
        time_zones=time_zones, late_tolerance=late_tolerance, early_tolerance=early_tolerance,
    )

    sent_total = 0
    for reminder in plan.reminders:
        sent = await deliver(sender, reminder.notifications)
        sent_total += sent
        if not sent:
            # Left unlogged so the next sweep retries it
            continue
        try:
            if not await write_reminder_log(session, reminder.log_write, sent_at=now):
                logger.info(f"Reminder {reminder.offset.value} for order {reminder.order.id} already logged")
            await session.commit()
        except Exception:
            logger.exception(f"Failed to save reminder log for order {reminder.order.id}")
            await session.rollback()

    logger.info(f"Reminders: {len(plan.reminders)} planned, {sent_total} sent")
    return {"checked": len(orders), "remindersPlanned": len(plan.reminders), "remindersSent": sent_total}


async def check_overdue_orders(
    session: AsyncSession,
    sender: NotificationSender,
    now: datetime | None = None,
) -> dict:
    now = now or datetime.now(timezone.utc)
    orders = await load_active_orders(session)
    overdue = compute_overdue(orders, now)

    time_zones = await get_time_zones(session, (item.order.assignee_telegram_id for item in overdue))
    sent = await deliver(sender, build_overdue_notifications(overdue, time_zones))

    logger.info(f"Overdue check: {len(orders)} checked, {len(overdue)} overdue, {sent} notified")
    return {"checked": len(orders), "overdue": len(overdue), "notificationsSent": sent}
