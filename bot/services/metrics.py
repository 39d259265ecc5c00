"""
Project metrics — статистика проекта по заказам, истории и журналу напоминаний.
"""
import math
from collections import defaultdict
from collections.abc import Iterable
from datetime import datetime, timedelta, timezone
from pydantic import BaseModel
from bot.services.due_dates import as_utc
from bot.services.records import HistoryRecord, OrderRecord, ReminderLogRecord
from bot.services.statuses import OrderStatus

REMINDER_COMPLETION_WINDOW = timedelta(hours=24)
DUE_SOON_WINDOW = timedelta(hours=48)


def round_half_up(value: float, digits: int = 0) -> float:
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


def calculate_share(part: float, total: float) -> int:
    """Percentage rounded half up; 0 for an empty or non-finite denominator."""
    if not math.isfinite(part) or not math.isfinite(total) or total <= 0:
        return 0
    return int(round_half_up(part / total * 100))


class MetricsWindow(BaseModel):
    start: datetime | None = None
    end: datetime | None = None

    def contains(self, value: datetime | None) -> bool:
        if self.start is None and self.end is None:
            return True
        if value is None:
            return False
        value = as_utc(value)
        if self.start is not None and value < as_utc(self.start):
            return False
        if self.end is not None and value > as_utc(self.end):
            return False
        return True


class StatusCount(BaseModel):
    status: OrderStatus
    count: int


class SummaryMetrics(BaseModel):
    total_orders: int
    completed_orders: int
    active_orders: int
    completion_rate: int
    attention_orders: int
    orders_without_assignee: int
    orders_without_payment_type: int
    orders_with_reminder: int
    last_activity: datetime | None


class TimingMetrics(BaseModel):
    overdue_count: int
    overdue_share: int
    due_soon_count: int
    due_soon_share: int
    orders_with_due_date: int
    due_date_coverage: int
    on_time_completion_rate: int
    average_completion_time_hours: float | None


class FinanceMetrics(BaseModel):
    total_revenue: float
    total_prepayment: float
    outstanding_amount: float
    prepayment_share: int
    orders_without_payment_type: int


class QualityMetrics(BaseModel):
    reviews_count: int
    reviews_awaiting_response: int
    returned_to_review_count: int


class ReminderMetrics(BaseModel):
    reminder_logs_count: int
    orders_with_reminders: int
    completion_after_reminder_count: int
    completion_after_reminder_share: int
    reminders_share: int


class AssignmentLoad(BaseModel):
    assignee_telegram_id: int
    active_orders: int


class TeamMetrics(BaseModel):
    members_count: int
    assignments: list[AssignmentLoad]
    unassigned_active_count: int


class MetricsReport(BaseModel):
    summary: SummaryMetrics
    statuses: list[StatusCount]
    timing: TimingMetrics
    finance: FinanceMetrics
    quality: QualityMetrics
    reminders: ReminderMetrics
    team: TeamMetrics
    total_history_events: int
    generated_at: datetime


def _sorted_history(entries: list[HistoryRecord]) -> list[HistoryRecord]:
    # Stable: equal timestamps keep insertion order
    return sorted(entries, key=lambda e: as_utc(e.created_at) or datetime.min.replace(tzinfo=timezone.utc))


def done_instant(order: OrderRecord, history: list[HistoryRecord]) -> datetime | None:
    """First status.done event, else updated_at for orders that are done."""
    for entry in history:
        if entry.event_type == "status.done" and entry.created_at is not None:
            return entry.created_at
    if order.effective_status == OrderStatus.DONE:
        return order.updated_at
    return None


def returned_to_review(history: list[HistoryRecord]) -> bool:
    """A status.review event after the order had already left review once."""
    in_review = False
    left_review = False
    for entry in history:
        if not entry.event_type.startswith("status."):
            continue
        came_from_review = bool(entry.meta) and entry.meta.get("from") == OrderStatus.REVIEW.value
        if entry.event_type == "status.review":
            if left_review:
                return True
            in_review = True
        elif in_review or came_from_review:
            left_review = True
    return False


def compute_project_metrics(
    orders: Iterable[OrderRecord],
    history: Iterable[HistoryRecord],
    reminder_log: Iterable[ReminderLogRecord],
    now: datetime | None = None,
    window: MetricsWindow | None = None,
    members_count: int = 0,
    due_soon_window: timedelta = DUE_SOON_WINDOW,
) -> MetricsReport:
    now = as_utc(now or datetime.now(timezone.utc))
    window = window or MetricsWindow()
    due_soon_limit = now + due_soon_window

    selected = [order for order in orders if window.contains(order.created_at)]
    selected_ids = {order.id for order in selected}

    history_by_order: dict[str, list[HistoryRecord]] = defaultdict(list)
    history_count = 0
    last_activity: datetime | None = None
    for entry in history:
        if entry.order_id not in selected_ids:
            continue
        history_by_order[entry.order_id].append(entry)
        history_count += 1
        if entry.created_at is not None:
            last_activity = max(last_activity, entry.created_at) if last_activity else entry.created_at

    reminder_entries = [
        entry for entry in reminder_log
        if entry.order_id in selected_ids and window.contains(entry.sent_at or entry.target_datetime)
    ]

    status_counts = {status: 0 for status in OrderStatus}
    total_revenue = 0.0
    total_prepayment = 0.0
    without_assignee = 0
    without_payment_type = 0
    with_reminder_field = 0
    with_due_date = 0
    overdue_count = 0
    due_soon_count = 0
    reviews_count = 0
    awaiting_response = 0
    returned_count = 0
    completion_hours: list[float] = []
    completed_with_due = 0
    on_time_count = 0
    done_instants: dict[str, datetime] = {}
    active_assignments: dict[int, int] = defaultdict(int)
    unassigned_active = 0

    for order in selected:
        status = order.effective_status
        status_counts[status] += 1
        is_done = status == OrderStatus.DONE

        if order.updated_at is not None:
            last_activity = max(last_activity, order.updated_at) if last_activity else order.updated_at

        if order.assignee_telegram_id is None:
            without_assignee += 1
        if not order.payment_type:
            without_payment_type += 1
        if order.offsets:
            with_reminder_field += 1

        total_revenue += order.total_amount or 0
        total_prepayment += order.prepayment_amount or 0

        if order.has_review_comment or order.has_review_images or order.has_review_answer:
            reviews_count += 1
        if order.has_review_comment and not order.has_review_answer:
            awaiting_response += 1

        due = order.due_instant
        if due is not None:
            with_due_date += 1
            if order.is_active and due < now:
                overdue_count += 1
            if order.is_active and now <= due <= due_soon_limit:
                due_soon_count += 1

        if not is_done:
            if order.assignee_telegram_id is None:
                unassigned_active += 1
            else:
                active_assignments[order.assignee_telegram_id] += 1

        order_history = _sorted_history(history_by_order.get(order.id, []))
        if returned_to_review(order_history):
            returned_count += 1

        finished = done_instant(order, order_history)
        if finished is None:
            continue
        done_instants[order.id] = finished
        if not is_done:
            continue

        if order.created_at is not None:
            duration = finished - order.created_at
            if duration > timedelta(0):
                completion_hours.append(duration.total_seconds() / 3600)
        if due is not None:
            completed_with_due += 1
            if finished <= due:
                on_time_count += 1

    total_orders = len(selected)
    completed = status_counts[OrderStatus.DONE]

    reminder_order_ids = {entry.order_id for entry in reminder_entries}
    orders_with_reminders = len(reminder_order_ids) or with_reminder_field

    completed_after_reminder = set()
    for entry in reminder_entries:
        target = entry.target_datetime or entry.sent_at
        finished = done_instants.get(entry.order_id)
        if target is None or finished is None:
            continue
        if target <= finished <= target + REMINDER_COMPLETION_WINDOW:
            completed_after_reminder.add(entry.order_id)

    average_hours = None
    if completion_hours:
        average_hours = round_half_up(sum(completion_hours) / len(completion_hours), 1)

    return MetricsReport(
        summary=SummaryMetrics(
            total_orders=total_orders,
            completed_orders=completed,
            active_orders=total_orders - completed,
            completion_rate=calculate_share(completed, total_orders),
            attention_orders=status_counts[OrderStatus.IN_PROGRESS] + status_counts[OrderStatus.REVIEW],
            orders_without_assignee=without_assignee,
            orders_without_payment_type=without_payment_type,
            orders_with_reminder=orders_with_reminders,
            last_activity=last_activity,
        ),
        statuses=[StatusCount(status=status, count=count) for status, count in status_counts.items()],
        timing=TimingMetrics(
            overdue_count=overdue_count,
            overdue_share=calculate_share(overdue_count, total_orders),
            due_soon_count=due_soon_count,
            due_soon_share=calculate_share(due_soon_count, total_orders),
            orders_with_due_date=with_due_date,
            due_date_coverage=calculate_share(with_due_date, total_orders),
            on_time_completion_rate=calculate_share(on_time_count, completed_with_due),
            average_completion_time_hours=average_hours,
        ),
        finance=FinanceMetrics(
            total_revenue=total_revenue,
            total_prepayment=total_prepayment,
            outstanding_amount=max(0.0, total_revenue - total_prepayment),
            prepayment_share=calculate_share(total_prepayment, total_revenue),
            orders_without_payment_type=without_payment_type,
        ),
        quality=QualityMetrics(
            reviews_count=reviews_count,
            reviews_awaiting_response=awaiting_response,
            returned_to_review_count=returned_count,
        ),
        reminders=ReminderMetrics(
            reminder_logs_count=len(reminder_entries),
            orders_with_reminders=orders_with_reminders,
            completion_after_reminder_count=len(completed_after_reminder),
            completion_after_reminder_share=calculate_share(
                len(completed_after_reminder),
                orders_with_reminders or len(reminder_entries),
            ),
            reminders_share=calculate_share(orders_with_reminders, total_orders),
        ),
        team=TeamMetrics(
            members_count=members_count,
            assignments=[
                AssignmentLoad(assignee_telegram_id=assignee, active_orders=count)
                for assignee, count in active_assignments.items()
            ],
            unassigned_active_count=unassigned_active,
        ),
        total_history_events=history_count,
        generated_at=now,
    )
