from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import pytest

from conftest import make_entry
from focus_tracker.errors import TimestampParseError
from focus_tracker.serialization import (
    entry_from_record,
    entry_to_record,
    format_timestamp,
    parse_timestamp,
)


def zone(name):
    try:
        return ZoneInfo(name)
    except ZoneInfoNotFoundError:
        pytest.skip(f"time zone data for {name} not installed")


def test_format_uses_wall_clock_and_zone_label():
    value = datetime(2024, 3, 1, 8, 35, 9, 250_000, tzinfo=timezone.utc)
    assert format_timestamp(value, timezone.utc) == "2024-03-01 08:35:09 UTC"
    assert format_timestamp(value, zone("Asia/Kolkata")) == "2024-03-01 14:05:09 IST"


def test_parse_strict_format_in_named_zone():
    parsed = parse_timestamp("2024-03-01 14:05:09 IST", zone("Asia/Kolkata"))
    assert parsed == datetime(2024, 3, 1, 8, 35, 9, tzinfo=timezone.utc)


def test_parse_utc_and_offset_labels():
    assert parse_timestamp("2024-03-01 08:35:09 UTC") == datetime(
        2024, 3, 1, 8, 35, 9, tzinfo=timezone.utc
    )
    parsed = parse_timestamp("2024-03-01 14:05:09 UTC+05:30")
    assert parsed.utcoffset() == timedelta(hours=5, minutes=30)
    assert parsed == datetime(2024, 3, 1, 8, 35, 9, tzinfo=timezone.utc)


def test_zone_label_resolves_ambiguous_wall_time():
    new_york = zone("America/New_York")
    first = parse_timestamp("2024-11-03 01:30:00 EDT", new_york)
    second = parse_timestamp("2024-11-03 01:30:00 EST", new_york)
    assert first.utcoffset() == timedelta(hours=-4)
    assert second.utcoffset() == timedelta(hours=-5)
    assert second.astimezone(timezone.utc) - first.astimezone(timezone.utc) == timedelta(hours=1)


def test_mismatched_label_is_read_as_configured_zone():
    parsed = parse_timestamp("2024-03-01 14:05:09 XYZ", timezone.utc)
    assert parsed == datetime(2024, 3, 1, 14, 5, 9, tzinfo=timezone.utc)


def test_generic_fallbacks():
    iso = parse_timestamp("2024-03-01T08:35:09+00:00")
    assert iso == datetime(2024, 3, 1, 8, 35, 9, tzinfo=timezone.utc)

    rfc = parse_timestamp("Fri, 01 Mar 2024 08:35:09 +0000")
    assert rfc == iso

    naive = parse_timestamp("2024-03-01T08:35:09", timezone.utc)
    assert naive == iso


def test_unparseable_timestamp_raises():
    with pytest.raises(TimestampParseError):
        parse_timestamp("not a timestamp")


def test_record_round_trip_to_the_second():
    entry = make_entry(start=datetime(2024, 3, 1, 9, 0, 0, 700_000, tzinfo=timezone.utc))
    record = entry_to_record(entry, timezone.utc)
    assert record == {
        "appTitle": "Editor",
        "appName": "code",
        "startTime": "2024-03-01 09:00:00 UTC",
        "endTime": "2024-03-01 09:00:10 UTC",
        "durationSeconds": 10,
    }
    restored = entry_from_record(record, timezone.utc)
    assert restored.start_time == entry.start_time.replace(microsecond=0)
    assert restored.end_time == entry.end_time.replace(microsecond=0)
    assert restored.duration_seconds == entry.duration_seconds


def test_record_without_duration_recomputes_it():
    restored = entry_from_record(
        {
            "appTitle": "Editor",
            "appName": "",
            "startTime": "2024-03-01 09:00:00 UTC",
            "endTime": "2024-03-01 09:01:30 UTC",
        }
    )
    assert restored.app_name == "Unknown"
    assert restored.duration_seconds == 90
