from datetime import datetime, timedelta, timezone
from bot.services.metrics import (
    MetricsWindow, calculate_share, compute_project_metrics, returned_to_review, round_half_up,
)
from bot.services.lifecycle import apply_order_update, build_review_patch
from bot.services.records import HistoryRecord, OrderRecord, ReminderLogRecord

UTC = timezone.utc
NOW = datetime(2024, 10, 10, 12, 0, tzinfo=UTC)


def make_order(order_id, **fields) -> OrderRecord:
    data = {
        "id": order_id,
        "status": "pending",
        "user_telegram_id": 100,
        "created_at": NOW - timedelta(days=5),
        "updated_at": NOW - timedelta(days=5),
    }
    data.update(fields)
    return OrderRecord(**data)


def status_event(order_id, old, new, at) -> HistoryRecord:
    return HistoryRecord(order_id=order_id, event_type=f"status.{new}", meta={"from": old, "to": new}, created_at=at)


def test_share_rounding():
    assert calculate_share(1, 3) == 33
    assert calculate_share(1, 8) == 13
    assert calculate_share(5, 0) == 0
    assert calculate_share(float("nan"), 10) == 0
    assert round_half_up(2.25, 1) == 2.3


def test_finance():
    report = compute_project_metrics([make_order("a", total_amount=1000, prepayment_amount=300)], [], [], now=NOW)
    assert report.finance.outstanding_amount == 700
    assert report.finance.prepayment_share == 30
    assert report.finance.total_revenue == 1000


def test_prepayment_above_total_does_not_go_negative():
    report = compute_project_metrics([make_order("a", total_amount="100", prepayment_amount="150")], [], [], now=NOW)
    assert report.finance.outstanding_amount == 0


def test_empty_project():
    report = compute_project_metrics([], [], [], now=NOW)
    assert report.summary.total_orders == 0
    assert report.summary.completion_rate == 0
    assert report.finance.prepayment_share == 0
    assert report.timing.on_time_completion_rate == 0
    assert report.timing.average_completion_time_hours is None
    assert report.summary.last_activity is None


def test_status_counts_and_summary():
    orders = [
        make_order("a", status="done"),
        make_order("b", status="in_progress", assignee_telegram_id=200),
        make_order("c", status="review", assignee_telegram_id=200, payment_type="card"),
        make_order("d", status="new"),
    ]
    report = compute_project_metrics(orders, [], [], now=NOW)
    counts = {item.status.value: item.count for item in report.statuses}

    assert counts == {"pending": 1, "in_progress": 1, "review": 1, "done": 1}
    assert report.summary.completed_orders == 1
    assert report.summary.active_orders == 3
    assert report.summary.completion_rate == 25
    assert report.summary.attention_orders == 2
    assert report.summary.orders_without_assignee == 2
    assert report.summary.orders_without_payment_type == 3
    assert report.team.unassigned_active_count == 1
    assert [(a.assignee_telegram_id, a.active_orders) for a in report.team.assignments] == [(200, 2)]


def test_overdue_and_due_soon():
    orders = [
        make_order("late", status="in_progress", due_date="2024-10-09"),
        make_order("soon", due_date="2024-10-11"),
        make_order("far", due_date="2024-12-01"),
        make_order("late-done", status="done", due_date="2024-10-01"),
        make_order("late-archived", archived=True, due_date="2024-10-01"),
    ]
    report = compute_project_metrics(orders, [], [], now=NOW)
    assert report.timing.overdue_count == 1
    assert report.timing.due_soon_count == 1
    assert report.timing.orders_with_due_date == 5
    assert report.timing.overdue_share == 20


def test_on_time_and_average_completion():
    created = NOW - timedelta(days=2)
    orders = [
        make_order("on-time", status="done", created_at=created, due_date="2024-10-10", due_time="12:00"),
        make_order("late", status="done", created_at=created, due_date="2024-10-08"),
    ]
    history = [
        status_event("on-time", "in_progress", "done", created + timedelta(hours=10)),
        status_event("late", "in_progress", "done", created + timedelta(hours=20)),
    ]
    report = compute_project_metrics(orders, history, [], now=NOW)
    assert report.timing.on_time_completion_rate == 50
    assert report.timing.average_completion_time_hours == 15.0


def test_done_without_history_uses_updated_at():
    order = make_order("a", status="done", created_at=NOW - timedelta(hours=6), updated_at=NOW)
    report = compute_project_metrics([order], [], [], now=NOW)
    assert report.timing.average_completion_time_hours == 6.0


def test_returned_to_review():
    t = NOW - timedelta(days=1)
    history = [
        status_event("a", "in_progress", "review", t),
        status_event("a", "review", "in_progress", t + timedelta(hours=1)),
        status_event("a", "in_progress", "review", t + timedelta(hours=2)),
    ]
    assert returned_to_review(history)
    assert not returned_to_review(history[:2])

    report = compute_project_metrics([make_order("a", status="review")], list(reversed(history)), [], now=NOW)
    assert report.quality.returned_to_review_count == 1
    assert report.total_history_events == 3


def test_review_quality():
    orders = [
        make_order("a", review_comment="готово"),
        make_order("b", review_comment="готово", review_answer="ок"),
        make_order("c", review_images=["1.png"]),
        make_order("d"),
    ]
    report = compute_project_metrics(orders, [], [], now=NOW)
    assert report.quality.reviews_count == 3
    assert report.quality.reviews_awaiting_response == 1


def test_completion_after_reminder():
    target = NOW - timedelta(days=1)
    orders = [
        make_order("quick", status="done", reminder_offset="1h"),
        make_order("slow", status="done", reminder_offset="1h"),
        make_order("open", reminder_offset="1h"),
    ]
    history = [
        status_event("quick", "in_progress", "done", target + timedelta(hours=2)),
        status_event("slow", "in_progress", "done", target + timedelta(hours=30)),
    ]
    logs = [
        ReminderLogRecord(order_id=order_id, reminder_offset="1h", target_datetime=target, sent_at=target)
        for order_id in ("quick", "slow", "open")
    ]
    report = compute_project_metrics(orders, history, logs, now=NOW)
    assert report.reminders.reminder_logs_count == 3
    assert report.reminders.orders_with_reminders == 3
    assert report.reminders.completion_after_reminder_count == 1
    assert report.reminders.completion_after_reminder_share == 33
    assert report.reminders.reminders_share == 100


def test_window_filters_by_creation():
    orders = [
        make_order("old", created_at=datetime(2024, 1, 1, tzinfo=UTC)),
        make_order("new", created_at=datetime(2024, 10, 1, tzinfo=UTC)),
    ]
    history = [HistoryRecord(order_id="old", event_type="archived", created_at=NOW)]
    window = MetricsWindow(start=datetime(2024, 9, 1, tzinfo=UTC), end=NOW)
    report = compute_project_metrics(orders, history, [], now=NOW, window=window, members_count=4)

    assert report.summary.total_orders == 1
    assert report.total_history_events == 0
    assert report.team.members_count == 4


def test_resubmitted_review_awaits_response_again():
    order = make_order("a", status="in_progress", review_comment="первый отчёт", review_answer="fix colors")
    assert compute_project_metrics([order], [], [], now=NOW).quality.reviews_awaiting_response == 0

    resubmitted = apply_order_update(order, build_review_patch("второй отчёт готов", ["b.png"]), 200, now=NOW)
    report = compute_project_metrics([resubmitted.order], [], [], now=NOW)
    assert report.quality.reviews_awaiting_response == 1
