"""
Order statuses — единый источник канонических статусов заказа.
"""
import enum


class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    REVIEW = "review"
    DONE = "done"


STATUS_LABELS = {
    OrderStatus.PENDING: "Новый",
    OrderStatus.IN_PROGRESS: "В работе",
    OrderStatus.REVIEW: "Проверяется",
    OrderStatus.DONE: "Сделано",
}

# Raw values found in stored rows
_RAW_STATUS_MAP = {
    "new": OrderStatus.PENDING,
    "pending": OrderStatus.PENDING,
    "in_progress": OrderStatus.IN_PROGRESS,
    "review": OrderStatus.REVIEW,
    "done": OrderStatus.DONE,
    "cancelled": OrderStatus.PENDING,
}


def normalize_status(raw) -> OrderStatus:
    """Map any stored status value onto one of the four canonical statuses."""
    if isinstance(raw, OrderStatus):
        return raw
    if not isinstance(raw, str):
        return OrderStatus.PENDING
    return _RAW_STATUS_MAP.get(raw, OrderStatus.PENDING)


def status_label(status) -> str:
    return STATUS_LABELS[normalize_status(status)]
