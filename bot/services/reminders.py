"""
Reminder offsets — разбор сохранённых настроек напоминаний.

Stored rows may carry offsets as a comma-joined string, a JSON array string
or a list. Anything unparseable degrades to "no reminders".
"""
import enum
import json
import logging
from datetime import timedelta

logger = logging.getLogger(__name__)


class ReminderOffset(str, enum.Enum):
    MIN_15 = "15m"
    MIN_30 = "30m"
    HOUR_1 = "1h"
    HOUR_2 = "2h"
    HOUR_3 = "3h"
    HOUR_6 = "6h"
    HOUR_12 = "12h"
    DAY_1 = "1d"
    DAY_2 = "2d"


# Declaration order above is the canonical order
REMINDER_ORDER = list(ReminderOffset)

REMINDER_OPTIONS = {
    ReminderOffset.MIN_15: ("15 минут", timedelta(minutes=15)),
    ReminderOffset.MIN_30: ("30 минут", timedelta(minutes=30)),
    ReminderOffset.HOUR_1: ("1 час", timedelta(hours=1)),
    ReminderOffset.HOUR_2: ("2 часа", timedelta(hours=2)),
    ReminderOffset.HOUR_3: ("3 часа", timedelta(hours=3)),
    ReminderOffset.HOUR_6: ("6 часов", timedelta(hours=6)),
    ReminderOffset.HOUR_12: ("12 часов", timedelta(hours=12)),
    ReminderOffset.DAY_1: ("1 день", timedelta(days=1)),
    ReminderOffset.DAY_2: ("2 дня", timedelta(days=2)),
}


def _split_tokens(text: str) -> list[str]:
    return [item.strip() for item in text.split(",") if item.strip()]


def _raw_tokens(value) -> list:
    if isinstance(value, (list, tuple)):
        return list(value)
    if not isinstance(value, str):
        return []

    trimmed = value.strip()
    if not trimmed:
        return []

    if trimmed.startswith("["):
        try:
            parsed = json.loads(trimmed)
        except ValueError as e:
            logger.warning(f"Failed to parse reminder offsets as JSON, falling back to comma split: {e}")
        else:
            return parsed if isinstance(parsed, list) else []

    return _split_tokens(trimmed)


def parse_reminder_offsets(value) -> list[ReminderOffset]:
    """Return known offsets from a raw stored value, deduplicated, in canonical order."""
    tokens = {token for token in _raw_tokens(value) if isinstance(token, str)}
    return [offset for offset in REMINDER_ORDER if offset.value in tokens]


def serialize_reminder_offsets(offsets) -> str | None:
    normalized = parse_reminder_offsets([
        offset.value if isinstance(offset, ReminderOffset) else offset
        for offset in offsets
    ])
    if not normalized:
        return None
    return ",".join(offset.value for offset in normalized)


def reminder_delta(offset: ReminderOffset) -> timedelta:
    return REMINDER_OPTIONS[ReminderOffset(offset)][1]


def reminder_label(offset) -> str:
    try:
        return REMINDER_OPTIONS[ReminderOffset(offset)][0]
    except ValueError:
        return str(offset)


def reminder_labels(value) -> list[str]:
    return [reminder_label(offset) for offset in parse_reminder_offsets(value)]


def format_reminder_list(labels: list[str]) -> str:
    """«1 час, 3 часа и 1 день»"""
    if not labels:
        return ""
    if len(labels) == 1:
        return labels[0]
    return f"{', '.join(labels[:-1])} и {labels[-1]}"
