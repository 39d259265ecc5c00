from datetime import datetime, timezone
import pytest
from bot.services.errors import NothingToUpdateError, OrderPermissionError, OrderValidationError
from bot.services.lifecycle import OrderPatch, apply_order_update, build_review_patch, describe_status_change
from bot.services.records import OrderRecord
from bot.services.statuses import OrderStatus

CREATOR = 100
ASSIGNEE = 200
NOW = datetime(2024, 10, 1, 12, 0, tzinfo=timezone.utc)


def make_order(**fields) -> OrderRecord:
    data = {
        "id": "order-1",
        "code": "ORD-1",
        "title": "Букет",
        "status": "pending",
        "user_telegram_id": CREATOR,
        "client_name": "Анна",
        "client_phone": "+7000",
    }
    data.update(fields)
    return OrderRecord(**data)


def update(order, payload, actor=ASSIGNEE, actor_name="Иван"):
    return apply_order_update(order, OrderPatch.parse(payload), actor, actor_name, now=NOW)


def test_returned_for_rework_mentions_answer():
    order = make_order(status="review", assignee_telegram_id=ASSIGNEE, review_answer="fix colors")
    result = update(order, {"status": "in_progress"}, actor=CREATOR)

    assert len(result.history) == 1
    entry = result.history[0]
    assert entry.event_type == "status.in_progress"
    assert "fix colors" in entry.description
    assert entry.meta == {"from": "review", "to": "in_progress"}
    assert result.order.status == "in_progress"
    assert result.order.updated_at == NOW


def test_answer_from_same_patch_is_used():
    order = make_order(status="review", assignee_telegram_id=ASSIGNEE)
    result = update(order, {"status": "in_progress", "review_answer": "другой фон"}, actor=CREATOR)
    assert result.history[0].description == "Задача возвращена на доработку: другой фон"


def test_second_take_into_work_does_not_notify():
    order = make_order(status="review", assignee_telegram_id=ASSIGNEE)
    result = update(order, {"status": "in_progress"})
    assert result.notifications == []


def test_take_into_work_from_pending_notifies_creator():
    order = make_order(status="pending", assignee_telegram_id=ASSIGNEE, assignee_telegram_name="Иван")
    result = update(order, {"status": "in_progress"})

    assert len(result.notifications) == 1
    intent = result.notifications[0]
    assert intent.recipient_id == CREATOR
    assert intent.url_path == "/orders/order-1"
    assert "Букет" in intent.text
    assert "ORD-1" in intent.text


def test_take_into_work_without_previous_assignee_notifies():
    order = make_order(status="review")
    result = update(order, {"status": "in_progress"})
    assert [n.recipient_id for n in result.notifications] == [CREATOR]


def test_same_status_writes_no_history():
    order = make_order(status="in_progress", assignee_telegram_id=ASSIGNEE)
    result = update(order, {"status": "in_progress", "title": "Новый букет"})
    assert result.history == []
    assert result.order.title == "Новый букет"


def test_legacy_status_is_normalized():
    order = make_order(status="new")
    result = update(order, {"status": "new", "summary": "x"})
    assert result.history == []
    assert result.order.status == OrderStatus.PENDING.value


def test_assignee_change_history():
    order = make_order()
    result = update(order, {"assignee_telegram_id": ASSIGNEE, "assignee_telegram_name": "Иван"})
    assert [e.event_type for e in result.history] == ["assignee.assigned"]
    assert result.history[0].description == "Назначен исполнитель: Иван"
    assert result.history[0].meta == {"from": None, "to": ASSIGNEE}

    removed = update(result.order, {"assignee_telegram_id": None})
    assert [e.event_type for e in removed.history] == ["assignee.removed"]


def test_non_owner_cannot_archive():
    order = make_order()
    with pytest.raises(OrderPermissionError):
        update(order, {"archived": True, "title": "Другое"}, actor=ASSIGNEE)
    assert order.archived is False
    assert order.title == "Букет"


def test_non_owner_cannot_restore():
    order = make_order(archived=True)
    with pytest.raises(OrderPermissionError):
        update(order, {"archived": False}, actor=ASSIGNEE)


def test_owner_archives_and_restores():
    order = make_order()
    archived = update(order, {"archived": True}, actor=CREATOR)
    assert archived.order.archived is True
    assert [e.event_type for e in archived.history] == ["archived"]

    restored = update(archived.order, {"archived": False}, actor=CREATOR)
    assert restored.order.archived is False
    assert [e.event_type for e in restored.history] == ["restored"]


def test_history_carries_actor():
    order = make_order()
    result = update(order, {"status": "review"}, actor=ASSIGNEE, actor_name="Иван")
    entry = result.history[0]
    assert entry.created_by == ASSIGNEE
    assert entry.created_by_name == "Иван"
    assert entry.icon == "rate_review"


def test_empty_patch():
    with pytest.raises(NothingToUpdateError):
        update(make_order(), {})
    with pytest.raises(NothingToUpdateError):
        update(make_order(), {"archived": None}, actor=CREATOR)


def test_patch_validation():
    with pytest.raises(OrderValidationError):
        OrderPatch.parse({"title": "   "})
    with pytest.raises(OrderValidationError):
        OrderPatch.parse({"total_amount": -1})
    with pytest.raises(OrderValidationError):
        OrderPatch.parse({"review_images": "a.png"})
    with pytest.raises(OrderValidationError):
        OrderPatch.parse(["status"])


def test_patch_normalizes_values():
    patch = OrderPatch.parse({
        "reminder_offset": ["1d", "1h", "bogus"],
        "assignee_telegram_id": 0,
        "due_time": " ",
        "review_images": [" a.png ", "", 5],
    })
    assert patch.changes == {
        "reminder_offset": "1h,1d",
        "assignee_telegram_id": None,
        "due_time": None,
        "review_images": ["a.png"],
    }


def test_review_patch():
    patch = build_review_patch("  Готово, проверьте  ", ["a.png", "b.png"])
    assert patch.changes == {
        "status": "review",
        "review_comment": "Готово, проверьте",
        "review_images": ["a.png", "b.png"],
        "review_answer": None,
    }


def test_review_patch_limits():
    with pytest.raises(OrderValidationError):
        build_review_patch("коротко", ["a.png"])
    with pytest.raises(OrderValidationError):
        build_review_patch("x" * 1001, ["a.png"])
    with pytest.raises(OrderValidationError):
        build_review_patch("Всё сделано как просили", [])
    with pytest.raises(OrderValidationError):
        build_review_patch("Всё сделано как просили", [f"{i}.png" for i in range(7)])


def test_status_descriptions():
    assert describe_status_change(OrderStatus.PENDING, OrderStatus.IN_PROGRESS) == "Задача взята в работу"
    assert describe_status_change(OrderStatus.IN_PROGRESS, OrderStatus.DONE) == "Задача выполнена"
    assert describe_status_change(OrderStatus.REVIEW, OrderStatus.IN_PROGRESS) == "Задача возвращена на доработку"


def test_resubmission_clears_previous_answer():
    order = make_order(status="in_progress", assignee_telegram_id=ASSIGNEE,
                       review_comment="первый отчёт", review_answer="fix colors")
    resubmitted = apply_order_update(order, build_review_patch("второй отчёт готов", ["b.png"]), ASSIGNEE, now=NOW)
    assert resubmitted.order.review_answer is None
    assert resubmitted.order.review_comment == "второй отчёт готов"

    returned = apply_order_update(resubmitted.order, OrderPatch.parse({"status": "in_progress"}), CREATOR, now=NOW)
    assert returned.history[0].description == "Задача возвращена на доработку"


def test_taken_into_work_lists_reminders():
    order = make_order(status="pending", assignee_telegram_id=ASSIGNEE, reminder_offset="1d,1h,3h")
    result = update(order, {"status": "in_progress"})
    assert "Напоминания: <b>1 час, 3 часа и 1 день</b> до срока" in result.notifications[0].text

    plain = update(make_order(status="pending", assignee_telegram_id=ASSIGNEE), {"status": "in_progress"})
    assert "Напоминания" not in plain.notifications[0].text
