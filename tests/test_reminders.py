from datetime import timedelta
from bot.services.reminders import (
    ReminderOffset, format_reminder_list, parse_reminder_offsets, reminder_delta,
    reminder_label, reminder_labels, serialize_reminder_offsets,
)


def test_comma_string_in_canonical_order():
    assert parse_reminder_offsets("1d,15m, 3h") == [
        ReminderOffset.MIN_15, ReminderOffset.HOUR_3, ReminderOffset.DAY_1,
    ]


def test_json_array_string():
    assert parse_reminder_offsets('["2d", "1h"]') == [ReminderOffset.HOUR_1, ReminderOffset.DAY_2]


def test_list_input_drops_unknown_and_non_strings():
    assert parse_reminder_offsets(["1h", "5m", 3, None, "1h"]) == [ReminderOffset.HOUR_1]


def test_malformed_json_falls_back_to_comma_split():
    assert parse_reminder_offsets('[1h,2h') == [ReminderOffset.HOUR_2]
    assert parse_reminder_offsets('[,1h') == [ReminderOffset.HOUR_1]


def test_empty_and_invalid_values():
    assert parse_reminder_offsets(None) == []
    assert parse_reminder_offsets("") == []
    assert parse_reminder_offsets("   ") == []
    assert parse_reminder_offsets(42) == []
    assert parse_reminder_offsets('{"a": "1h"}') == []


def test_serialize_is_canonical():
    assert serialize_reminder_offsets(["1d", "1h", "1d"]) == "1h,1d"
    assert serialize_reminder_offsets([ReminderOffset.HOUR_12]) == "12h"
    assert serialize_reminder_offsets(["nope"]) is None
    assert serialize_reminder_offsets([]) is None


def test_serialize_then_parse_dedupes_and_orders():
    value = ["2d", "15m", "2d", "6h", "30m"]
    assert parse_reminder_offsets(serialize_reminder_offsets(value)) == [
        ReminderOffset.MIN_15, ReminderOffset.MIN_30, ReminderOffset.HOUR_6, ReminderOffset.DAY_2,
    ]


def test_deltas():
    assert reminder_delta(ReminderOffset.MIN_15) == timedelta(minutes=15)
    assert reminder_delta("12h") == timedelta(hours=12)
    assert reminder_delta(ReminderOffset.DAY_2) == timedelta(days=2)


def test_labels():
    assert reminder_label("2h") == "2 часа"
    assert reminder_label("bogus") == "bogus"
    assert reminder_labels("1d,1h,3h") == ["1 час", "3 часа", "1 день"]


def test_format_list():
    assert format_reminder_list([]) == ""
    assert format_reminder_list(["1 час"]) == "1 час"
    assert format_reminder_list(["1 час", "3 часа", "1 день"]) == "1 час, 3 часа и 1 день"
