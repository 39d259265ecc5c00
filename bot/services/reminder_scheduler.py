"""
Reminder scheduler — какие напоминания о сроке нужно отправить сейчас.

A reminder for (order, offset) targets ``due - offset``. It is due when the
target falls within ``[now - late_tolerance, now + early_tolerance]`` and the
(order id, offset, target) key is not in the reminder log yet. The caller
sends the intents and writes the log entry once at least one recipient was
notified.
"""
from collections.abc import Iterable, Mapping
from datetime import datetime, timedelta
from pydantic import BaseModel
from bot.services.due_dates import as_utc
from bot.services.records import NotificationIntent, OrderRecord, ReminderLogRecord, ReminderLogWrite
from bot.services.reminders import ReminderOffset, reminder_delta, reminder_label
from bot.utils.deep_links import order_path
from bot.utils.formatters import reminder_message

REMINDER_LATE_WINDOW = timedelta(minutes=3)
REMINDER_EARLY_WINDOW = timedelta(minutes=3)


class DueReminder(BaseModel):
    order: OrderRecord
    offset: ReminderOffset
    due_instant: datetime
    target_instant: datetime
    notifications: list[NotificationIntent]
    log_write: ReminderLogWrite


class ReminderPlan(BaseModel):
    reminders: list[DueReminder] = []

    @property
    def notifications(self) -> list[NotificationIntent]:
        return [intent for reminder in self.reminders for intent in reminder.notifications]

    @property
    def log_writes(self) -> list[ReminderLogWrite]:
        return [reminder.log_write for reminder in self.reminders]


def reminder_key(order_id: str, offset, target: datetime) -> tuple[str, str, datetime]:
    value = offset.value if isinstance(offset, ReminderOffset) else str(offset)
    return order_id, value, as_utc(target)


def reminder_recipients(order: OrderRecord) -> list[int]:
    """Assignee and creator, without duplicates."""
    recipients = []
    for telegram_id in (order.assignee_telegram_id, order.user_telegram_id):
        if telegram_id and telegram_id not in recipients:
            recipients.append(telegram_id)
    return recipients


def reminder_window(now: datetime, late_tolerance: timedelta = REMINDER_LATE_WINDOW,
                    early_tolerance: timedelta = REMINDER_EARLY_WINDOW) -> tuple[datetime, datetime]:
    now = as_utc(now)
    return now - late_tolerance, now + early_tolerance


def compute_due_reminders(
    orders: Iterable[OrderRecord],
    reminder_log: Iterable[ReminderLogRecord],
    now: datetime,
    *,
    time_zones: Mapping[int, str | None] | None = None,
    late_tolerance: timedelta = REMINDER_LATE_WINDOW,
    early_tolerance: timedelta = REMINDER_EARLY_WINDOW,
) -> ReminderPlan:
    earliest, latest = reminder_window(now, late_tolerance, early_tolerance)
    time_zones = time_zones or {}
    sent = {
        reminder_key(entry.order_id, entry.reminder_offset, entry.target_datetime)
        for entry in reminder_log
        if entry.target_datetime is not None
    }

    plan = ReminderPlan()
    for order in orders:
        if not order.is_active:
            continue
        due = order.due_instant
        if due is None:
            continue

        for offset in order.offsets:
            target = due - reminder_delta(offset)
            if target < earliest or target > latest:
                continue
            if reminder_key(order.id, offset, target) in sent:
                continue

            recipients = reminder_recipients(order)
            if not recipients:
                continue

            label = reminder_label(offset)
            intents = [
                NotificationIntent(
                    recipient_id=telegram_id,
                    text=reminder_message(
                        order.display_title, due, label,
                        order.assignee_telegram_name, time_zones.get(telegram_id),
                    ),
                    url_path=order_path(order.id),
                    order_id=order.id,
                )
                for telegram_id in recipients
            ]
            plan.reminders.append(DueReminder(
                order=order,
                offset=offset,
                due_instant=due,
                target_instant=target,
                notifications=intents,
                log_write=ReminderLogWrite(order_id=order.id, reminder_offset=offset, target_datetime=target),
            ))
    return plan
