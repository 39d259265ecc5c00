"""
Order lifecycle — применение изменений заказа.

Given a stored order snapshot and a validated patch, compute the new state,
the history entries to append and the notifications to deliver. No I/O.
"""
import logging
from datetime import datetime, timezone
from pydantic import BaseModel, ValidationError, field_validator
from bot.services.errors import NothingToUpdateError, OrderPermissionError, OrderValidationError
from bot.services.records import HistoryRecord, NotificationIntent, OrderRecord
from bot.services.reminders import (
    format_reminder_list, parse_reminder_offsets, reminder_labels, serialize_reminder_offsets,
)
from bot.services.statuses import OrderStatus, normalize_status, status_label
from bot.utils.deep_links import order_path
from bot.utils.formatters import taken_into_work_message

logger = logging.getLogger(__name__)

HISTORY_ICONS = {
    "status.pending": "restart_alt",
    "status.in_progress": "play_arrow",
    "status.review": "rate_review",
    "status.done": "task_alt",
    "assignee.assigned": "person_add",
    "assignee.removed": "person_remove",
    "archived": "archive",
    "restored": "unarchive",
}
DEFAULT_HISTORY_ICON = "history"


def _blank_to_none(v):
    if isinstance(v, str):
        v = v.strip()
    return v or None


class OrderPatch(BaseModel):
    """Validated partial update. Only fields present in the payload are applied."""

    title: str | None = None
    summary: str | None = None
    description: str | None = None
    status: str | None = None
    assignee_telegram_id: int | None = None
    assignee_telegram_name: str | None = None
    assignee_telegram_avatar_url: str | None = None
    due_date: str | None = None
    due_time: str | None = None
    delivery_address: str | None = None
    reminder_offset: str | None = None
    client_name: str | None = None
    client_phone: str | None = None
    payment_type: str | None = None
    prepayment_amount: float | None = None
    total_amount: float | None = None
    review_comment: str | None = None
    review_images: list[str] | None = None
    review_answer: str | None = None
    archived: bool | None = None

    @field_validator("title", "client_name", "client_phone", mode="before")
    @classmethod
    def _required_text(cls, v, info):
        if not isinstance(v, str) or not v.strip():
            raise ValueError(f"{info.field_name} cannot be empty")
        return v.strip()

    @field_validator("summary", "description", mode="before")
    @classmethod
    def _text(cls, v):
        if v is None:
            return ""
        if not isinstance(v, str):
            raise ValueError("must be a string")
        return v.strip()

    @field_validator(
        "due_date", "due_time", "delivery_address", "payment_type",
        "assignee_telegram_name", "assignee_telegram_avatar_url",
        "review_comment", "review_answer", mode="before",
    )
    @classmethod
    def _optional_text(cls, v):
        if v is not None and not isinstance(v, str):
            raise ValueError("must be a string")
        return _blank_to_none(v)

    @field_validator("status", mode="before")
    @classmethod
    def _status(cls, v):
        return normalize_status(v or "new").value

    @field_validator("assignee_telegram_id", mode="before")
    @classmethod
    def _assignee(cls, v):
        return v or None

    @field_validator("reminder_offset", mode="before")
    @classmethod
    def _reminder_offset(cls, v):
        if v is None or isinstance(v, (str, list, tuple)):
            return serialize_reminder_offsets(parse_reminder_offsets(v))
        logger.warning(f"Invalid reminder_offset type: {type(v).__name__}")
        return None

    @field_validator("prepayment_amount", "total_amount")
    @classmethod
    def _non_negative(cls, v):
        if v is not None and v < 0:
            raise ValueError("amount cannot be negative")
        return v

    @field_validator("review_images", mode="before")
    @classmethod
    def _images(cls, v):
        if v is None:
            return None
        if not isinstance(v, list):
            raise ValueError("must be a list")
        return [url.strip() for url in v if isinstance(url, str) and url.strip()]

    @classmethod
    def parse(cls, payload) -> "OrderPatch":
        if not isinstance(payload, dict):
            raise OrderValidationError("Request body must be an object")
        try:
            return cls.model_validate(payload)
        except ValidationError as e:
            first = e.errors()[0]
            field = ".".join(str(part) for part in first.get("loc", ())) or "body"
            raise OrderValidationError(f"Invalid field {field}: {first.get('msg')}") from e

    @property
    def changes(self) -> dict:
        return {name: getattr(self, name) for name in self.model_fields_set}


REVIEW_COMMENT_MIN = 10
REVIEW_COMMENT_MAX = 1000
REVIEW_IMAGES_MAX = 6


def build_review_patch(comment, images) -> OrderPatch:
    """Patch that moves an order to review with the executor's report."""
    comment = comment.strip() if isinstance(comment, str) else ""
    if not REVIEW_COMMENT_MIN <= len(comment) <= REVIEW_COMMENT_MAX:
        raise OrderValidationError(
            f"Comment must be {REVIEW_COMMENT_MIN}-{REVIEW_COMMENT_MAX} characters long"
        )
    if not isinstance(images, list):
        raise OrderValidationError("Images must be a list")
    images = [url.strip() for url in images if isinstance(url, str) and url.strip()]
    if not 1 <= len(images) <= REVIEW_IMAGES_MAX:
        raise OrderValidationError(f"Attach from 1 to {REVIEW_IMAGES_MAX} images")
    return OrderPatch.parse({
        "status": OrderStatus.REVIEW.value,
        "review_comment": comment,
        "review_images": images,
        # Answer of the previous round no longer applies
        "review_answer": None,
    })


class OrderUpdateResult(BaseModel):
    order: OrderRecord
    history: list[HistoryRecord]
    notifications: list[NotificationIntent]


def describe_status_change(old: OrderStatus, new: OrderStatus, review_answer: str | None = None) -> str:
    if new == OrderStatus.IN_PROGRESS:
        if old == OrderStatus.REVIEW:
            answer = (review_answer or "").strip()
            if answer:
                return f"Задача возвращена на доработку: {answer}"
            return "Задача возвращена на доработку"
        return "Задача взята в работу"
    if new == OrderStatus.REVIEW:
        return "Задача отправлена на проверку"
    if new == OrderStatus.DONE:
        return "Задача выполнена"
    if new == OrderStatus.PENDING:
        return "Задача возвращена в новые"
    return f"Статус изменён: «{status_label(old)}» → «{status_label(new)}»"


def should_notify_taken_into_work(old: OrderStatus, new: OrderStatus, previous_assignee: int | None) -> bool:
    if new != OrderStatus.IN_PROGRESS or old == OrderStatus.IN_PROGRESS:
        return False
    return previous_assignee is None or old == OrderStatus.PENDING


def _entry(order_id: str, event_type: str, description: str, actor_id: int, actor_name: str | None,
           meta: dict | None = None) -> HistoryRecord:
    return HistoryRecord(
        order_id=order_id,
        event_type=event_type,
        description=description,
        icon=HISTORY_ICONS.get(event_type, DEFAULT_HISTORY_ICON),
        created_by=actor_id,
        created_by_name=actor_name,
        meta=meta,
    )


def apply_order_update(
    order: OrderRecord,
    patch: OrderPatch,
    actor_id: int,
    actor_name: str | None = None,
    now: datetime | None = None,
) -> OrderUpdateResult:
    """Apply ``patch`` to ``order`` on behalf of ``actor_id``.

    Raises NothingToUpdateError for an empty patch and OrderPermissionError
    when someone other than the creator toggles the archived flag.
    """
    changes = patch.changes
    if not changes:
        raise NothingToUpdateError()

    if "archived" in changes and actor_id != order.user_telegram_id:
        raise OrderPermissionError("Only the order creator can archive or restore it")

    if changes.get("archived") is None:
        changes.pop("archived", None)
        if not changes:
            raise NothingToUpdateError()

    now = now or datetime.now(timezone.utc)

    updated = order.model_copy(update={**changes, "updated_at": now})
    history: list[HistoryRecord] = []
    notifications: list[NotificationIntent] = []

    if "assignee_telegram_id" in changes and changes["assignee_telegram_id"] != order.assignee_telegram_id:
        new_assignee = changes["assignee_telegram_id"]
        meta = {"from": order.assignee_telegram_id, "to": new_assignee}
        if new_assignee is not None:
            name = updated.assignee_telegram_name or str(new_assignee)
            history.append(_entry(order.id, "assignee.assigned", f"Назначен исполнитель: {name}",
                                  actor_id, actor_name, meta))
        else:
            history.append(_entry(order.id, "assignee.removed", "Исполнитель снят",
                                  actor_id, actor_name, meta))

    old_status = order.effective_status
    new_status = updated.effective_status
    if "status" in changes and new_status != old_status:
        history.append(_entry(
            order.id, f"status.{new_status.value}",
            describe_status_change(old_status, new_status, updated.review_answer),
            actor_id, actor_name, {"from": old_status.value, "to": new_status.value},
        ))

        creator = order.user_telegram_id
        if creator and should_notify_taken_into_work(old_status, new_status, order.assignee_telegram_id):
            assignee_name = updated.assignee_telegram_name or actor_name
            notifications.append(NotificationIntent(
                recipient_id=creator,
                text=taken_into_work_message(
                    updated.display_title, updated.code, assignee_name,
                    format_reminder_list(reminder_labels(updated.reminder_offset)),
                ),
                url_path=order_path(order.id),
                order_id=order.id,
            ))

    if "archived" in changes and changes["archived"] != order.archived:
        if changes["archived"]:
            history.append(_entry(order.id, "archived", "Задача отправлена в архив", actor_id, actor_name))
        else:
            history.append(_entry(order.id, "restored", "Задача восстановлена из архива", actor_id, actor_name))

    return OrderUpdateResult(order=updated, history=history, notifications=notifications)
