"""
Typed snapshots of stored rows.

ORM rows are converted once at the storage boundary
(``OrderRecord.model_validate(row)``); the engine only sees these records.
"""
from datetime import datetime
from decimal import Decimal, InvalidOperation
from pydantic import BaseModel, field_validator
from bot.services.due_dates import parse_timestamp, resolve_due_instant
from bot.services.reminders import ReminderOffset, parse_reminder_offsets
from bot.services.statuses import OrderStatus, normalize_status


def _to_nullable_number(value) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if value == value else None
    if isinstance(value, Decimal):
        return float(value) if value.is_finite() else None
    if isinstance(value, str) and value.strip():
        try:
            number = Decimal(value.strip())
        except InvalidOperation:
            return None
        return float(number) if number.is_finite() else None
    return None


def _to_telegram_id(value) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip()) or None
    return None


def _clean_text(value) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


class OrderRecord(BaseModel):
    id: str
    code: str | None = None
    title: str | None = None
    status: str | None = None
    project_id: str | None = None
    user_telegram_id: int | None = None
    assignee_telegram_id: int | None = None
    assignee_telegram_name: str | None = None
    assignee_telegram_avatar_url: str | None = None
    due_date: str | None = None
    due_time: str | None = None
    reminder_offset: str | list[str] | None = None
    summary: str | None = None
    description: str | None = None
    delivery_address: str | None = None
    client_name: str | None = None
    client_phone: str | None = None
    payment_type: str | None = None
    total_amount: float | None = None
    prepayment_amount: float | None = None
    image_urls: list[str] | None = None
    review_comment: str | None = None
    review_images: list[str] | None = None
    review_answer: str | None = None
    archived: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None

    class Config:
        from_attributes = True

    @field_validator("user_telegram_id", "assignee_telegram_id", mode="before")
    @classmethod
    def _telegram_id(cls, v):
        return _to_telegram_id(v)

    @field_validator("total_amount", "prepayment_amount", mode="before")
    @classmethod
    def _amount(cls, v):
        return _to_nullable_number(v)

    @field_validator("created_at", "updated_at", mode="before")
    @classmethod
    def _timestamp(cls, v):
        return parse_timestamp(v)

    @field_validator("due_date", "due_time", mode="before")
    @classmethod
    def _date_text(cls, v):
        if v is None:
            return None
        if hasattr(v, "isoformat"):
            return v.isoformat()
        return v

    @field_validator("archived", mode="before")
    @classmethod
    def _archived(cls, v):
        return bool(v)

    @property
    def effective_status(self) -> OrderStatus:
        return normalize_status(self.status)

    @property
    def is_active(self) -> bool:
        return not self.archived and self.effective_status != OrderStatus.DONE

    @property
    def due_instant(self) -> datetime | None:
        return resolve_due_instant(self.due_date, self.due_time)

    @property
    def offsets(self) -> list[ReminderOffset]:
        return parse_reminder_offsets(self.reminder_offset)

    @property
    def has_review_comment(self) -> bool:
        return _clean_text(self.review_comment) is not None

    @property
    def has_review_answer(self) -> bool:
        return _clean_text(self.review_answer) is not None

    @property
    def has_review_images(self) -> bool:
        return bool(self.review_images)

    @property
    def display_title(self) -> str:
        return _clean_text(self.title) or "Задача"


class HistoryRecord(BaseModel):
    order_id: str
    event_type: str
    description: str = ""
    icon: str | None = None
    created_by: int | None = None
    created_by_name: str | None = None
    meta: dict | None = None
    created_at: datetime | None = None

    class Config:
        from_attributes = True

    @field_validator("created_at", mode="before")
    @classmethod
    def _timestamp(cls, v):
        return parse_timestamp(v)


class ReminderLogRecord(BaseModel):
    order_id: str
    reminder_offset: str
    target_datetime: datetime | None = None
    sent_at: datetime | None = None

    class Config:
        from_attributes = True

    @field_validator("target_datetime", "sent_at", mode="before")
    @classmethod
    def _timestamp(cls, v):
        return parse_timestamp(v)


class UserRecord(BaseModel):
    telegram_id: int
    first_name: str | None = None
    last_name: str | None = None
    username: str | None = None
    time_zone: str | None = None

    class Config:
        from_attributes = True

    @property
    def display_name(self) -> str | None:
        return format_user_name(self.first_name, self.last_name, self.username)


def format_user_name(first_name: str | None, last_name: str | None, username: str | None) -> str | None:
    """First + last name, falling back to username."""
    full_name = " ".join(part.strip() for part in (first_name, last_name) if _clean_text(part))
    if full_name:
        return full_name
    return _clean_text(username)


class NotificationIntent(BaseModel):
    recipient_id: int
    text: str
    url_path: str | None = None
    button_text: str = "Перейти к задаче"
    order_id: str | None = None


class ReminderLogWrite(BaseModel):
    order_id: str
    reminder_offset: ReminderOffset
    target_datetime: datetime

    @property
    def key(self) -> tuple[str, str, datetime]:
        return self.order_id, self.reminder_offset.value, self.target_datetime
