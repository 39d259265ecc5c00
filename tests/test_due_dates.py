from datetime import date, datetime, timedelta, timezone
from bot.services.due_dates import (
    as_utc, format_due_label, has_explicit_time, parse_time_of_day,
    parse_timestamp, resolve_due_instant,
)

UTC = timezone.utc


def test_date_only_defaults_to_midnight_utc():
    assert resolve_due_instant("2024-10-10") == datetime(2024, 10, 10, tzinfo=UTC)


def test_date_with_time():
    assert resolve_due_instant("2024-10-10", "14:30") == datetime(2024, 10, 10, 14, 30, tzinfo=UTC)
    assert resolve_due_instant("2024-10-10", "09:05:59") == datetime(2024, 10, 10, 9, 5, tzinfo=UTC)


def test_time_overrides_timestamp_time_of_day():
    assert resolve_due_instant("2024-10-10T18:00:00Z", "08:15") == datetime(2024, 10, 10, 8, 15, tzinfo=UTC)


def test_full_timestamp_is_converted_to_utc():
    assert resolve_due_instant("2024-10-10T12:00:00+03:00") == datetime(2024, 10, 10, 9, 0, tzinfo=UTC)


def test_invalid_time_is_ignored():
    assert resolve_due_instant("2024-10-10", "25:00") == datetime(2024, 10, 10, tzinfo=UTC)
    assert resolve_due_instant("2024-10-10", "noon") == datetime(2024, 10, 10, tzinfo=UTC)


def test_unparseable_dates():
    assert resolve_due_instant(None) is None
    assert resolve_due_instant("") is None
    assert resolve_due_instant("tomorrow") is None
    assert resolve_due_instant("2024-13-45") is None


def test_bare_date_prefix_fallback():
    assert resolve_due_instant("2024-10-10 garbage") == datetime(2024, 10, 10, tzinfo=UTC)


def test_date_objects():
    assert resolve_due_instant(date(2024, 1, 2), "10:00") == datetime(2024, 1, 2, 10, 0, tzinfo=UTC)


def test_parse_time_of_day():
    assert parse_time_of_day("07:45") == (7, 45)
    assert parse_time_of_day("7") is None
    assert parse_time_of_day("23:60") is None
    assert parse_time_of_day(None) is None


def test_naive_values_are_utc():
    naive = datetime(2024, 5, 1, 12, 0)
    assert as_utc(naive) == datetime(2024, 5, 1, 12, 0, tzinfo=UTC)
    assert parse_timestamp("2024-05-01T12:00:00") == datetime(2024, 5, 1, 12, 0, tzinfo=UTC)
    assert parse_timestamp("not a date") is None


def test_explicit_time_detection():
    midnight = datetime(2024, 10, 10, tzinfo=UTC)
    assert has_explicit_time("00:00", midnight)
    assert not has_explicit_time(None, midnight)
    assert has_explicit_time(None, midnight + timedelta(hours=9))


def test_due_label_in_recipient_zone():
    due = datetime(2024, 10, 10, 11, 30, tzinfo=UTC)
    assert format_due_label(due) == "10 октября 2024 г. в 11:30"
    assert format_due_label(due, time_zone="Europe/Moscow") == "10 октября 2024 г. в 14:30"
    assert format_due_label(due, include_time=False) == "10 октября 2024 г."


def test_due_label_with_unknown_zone_uses_utc():
    due = datetime(2024, 1, 31, 23, 0, tzinfo=UTC)
    assert format_due_label(due, time_zone="Mars/Olympus") == "31 января 2024 г. в 23:00"
