"""
Due dates — сведение даты и времени срока в один момент времени.

All callers (API, cron routes, scheduler, metrics) resolve due instants here.
Instants are timezone-aware UTC; naive values are taken as UTC.
"""
import re
from datetime import date, datetime, time, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

_BARE_DATE_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})\b")

MONTHS_GENITIVE = [
    "января", "февраля", "марта", "апреля", "мая", "июня",
    "июля", "августа", "сентября", "октября", "ноября", "декабря",
]


def as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_timestamp(value) -> datetime | None:
    """Lenient ISO timestamp parsing; None when the value is not a timestamp."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return as_utc(value)
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    if not isinstance(value, str) or not value.strip():
        return None

    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        return as_utc(datetime.fromisoformat(text))
    except ValueError:
        return None


def _parse_date(value) -> datetime | None:
    parsed = parse_timestamp(value)
    if parsed is not None or not isinstance(value, str):
        return parsed

    match = _BARE_DATE_RE.match(value.strip())
    if not match:
        return None
    year, month, day = (int(part) for part in match.groups())
    try:
        return datetime(year, month, day, tzinfo=timezone.utc)
    except ValueError:
        return None


def parse_time_of_day(value) -> tuple[int, int] | None:
    """"HH:MM" or "HH:MM:SS" -> (hour, minute)."""
    if isinstance(value, time):
        return value.hour, value.minute
    if not isinstance(value, str) or not value.strip():
        return None

    parts = value.strip().split(":")
    if len(parts) < 2:
        return None
    try:
        hours, minutes = int(parts[0]), int(parts[1])
    except ValueError:
        return None
    if not (0 <= hours <= 23 and 0 <= minutes <= 59):
        return None
    return hours, minutes


def resolve_due_instant(due_date, due_time=None) -> datetime | None:
    """Combine a stored due date and optional time of day into one UTC instant."""
    resolved = _parse_date(due_date)
    if resolved is None:
        return None

    hm = parse_time_of_day(due_time)
    if hm is not None:
        resolved = resolved.replace(hour=hm[0], minute=hm[1], second=0, microsecond=0)
    return resolved


def has_explicit_time(due_time, instant: datetime) -> bool:
    if parse_time_of_day(due_time) is not None:
        return True
    return not (instant.hour == 0 and instant.minute == 0)


def get_zone(name: str | None) -> ZoneInfo | None:
    if not name:
        return None
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return None


def format_due_label(instant: datetime, include_time: bool = True, time_zone: str | None = None) -> str:
    """«10 октября 2024 г. в 14:30» in the recipient's zone when it is valid."""
    zone = get_zone(time_zone)
    local = instant.astimezone(zone) if zone else instant

    label = f"{local.day} {MONTHS_GENITIVE[local.month - 1]} {local.year} г."
    if include_time:
        label += f" в {local:%H:%M}"
    return label
