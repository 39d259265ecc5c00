"""
Overdue sweep — просроченные активные заказы.

No dedup here: every run re-flags the same orders, repeat suppression is left
to the sweep cadence.
"""
from collections.abc import Iterable, Mapping
from datetime import datetime
from pydantic import BaseModel
from bot.services.due_dates import as_utc, has_explicit_time
from bot.services.records import NotificationIntent, OrderRecord
from bot.utils.deep_links import order_path
from bot.utils.formatters import overdue_message


class OverdueOrder(BaseModel):
    order: OrderRecord
    due_instant: datetime


def compute_overdue(orders: Iterable[OrderRecord], now: datetime) -> list[OverdueOrder]:
    now = as_utc(now)
    overdue = []
    for order in orders:
        if not order.is_active:
            continue
        due = order.due_instant
        if due is not None and due <= now:
            overdue.append(OverdueOrder(order=order, due_instant=due))
    return overdue


def build_overdue_notifications(
    overdue: Iterable[OverdueOrder],
    time_zones: Mapping[int, str | None] | None = None,
) -> list[NotificationIntent]:
    """One alert per overdue order, to the assignee only."""
    time_zones = time_zones or {}
    intents = []
    for item in overdue:
        order = item.order
        if not order.assignee_telegram_id:
            continue
        include_time = has_explicit_time(order.due_time, item.due_instant)
        intents.append(NotificationIntent(
            recipient_id=order.assignee_telegram_id,
            text=overdue_message(
                order.display_title, item.due_instant, include_time,
                order.assignee_telegram_name, time_zones.get(order.assignee_telegram_id),
            ),
            url_path=order_path(order.id),
            order_id=order.id,
        ))
    return intents
