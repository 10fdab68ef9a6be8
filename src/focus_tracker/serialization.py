"""Timestamp and record formats shared by the durable store and uploads.

Timestamps are written as local wall-clock time with a timezone label, e.g.
``2024-03-01 14:05:09 IST``. Reading checks that strict pattern first and
falls back to generic ISO 8601 / RFC 2822 parsing for anything else.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta, timezone, tzinfo
from email.utils import parsedate_to_datetime
from typing import Any, Mapping, Optional
from zoneinfo import ZoneInfo

from .errors import TimestampParseError
from .models import UNKNOWN, TimeEntry

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

_TIMESTAMP_PATTERN = re.compile(
    r"^(\d{4})-(\d{2})-(\d{2}) (\d{2}):(\d{2}):(\d{2}) (\S.*)$"
)
_OFFSET_LABEL_PATTERN = re.compile(r"^(?:UTC|GMT)([+-])(\d{2}):?(\d{2})$")
_UTC_LABELS = frozenset({"UTC", "GMT", "Z"})


def resolve_timezone(name: Optional[str]) -> Optional[tzinfo]:
    """Return the zone for ``name``; ``None`` means the system local zone."""
    return ZoneInfo(name) if name else None


def now_in(tz: Optional[tzinfo] = None) -> datetime:
    return datetime.now(tz) if tz is not None else datetime.now().astimezone()


def format_timestamp(value: datetime, tz: Optional[tzinfo] = None) -> str:
    local = value.astimezone(tz)
    label = local.tzname() or "UTC"
    return f"{local.strftime(TIMESTAMP_FORMAT)} {label}"


def parse_timestamp(text: str, tz: Optional[tzinfo] = None) -> datetime:
    """Parse a stored timestamp back into an aware datetime."""
    value = text.strip()
    match = _TIMESTAMP_PATTERN.match(value)
    if match:
        try:
            naive = datetime(*(int(part) for part in match.groups()[:6]))
        except ValueError:
            logger.debug("Timestamp %r has out-of-range fields", value)
        else:
            return _localize(naive, match.group(7), tz)
    return _parse_generic(value, tz)


def _attach(naive: datetime, tz: Optional[tzinfo]) -> datetime:
    if tz is not None:
        return naive.replace(tzinfo=tz)
    return naive.astimezone()


def _localize(naive: datetime, label: str, tz: Optional[tzinfo]) -> datetime:
    if label.upper() in _UTC_LABELS:
        return naive.replace(tzinfo=timezone.utc)

    offset_match = _OFFSET_LABEL_PATTERN.match(label)
    if offset_match:
        sign, hours, minutes = offset_match.groups()
        offset = timedelta(hours=int(hours), minutes=int(minutes))
        return naive.replace(tzinfo=timezone(-offset if sign == "-" else offset))

    # The label tells the two readings of an ambiguous DST wall time apart.
    candidates = [_attach(naive.replace(fold=fold), tz) for fold in (0, 1)]
    for candidate in candidates:
        if candidate.tzname() == label:
            return candidate

    logger.warning(
        "Timestamp label %r does not match the configured zone; reading %s as local time",
        label,
        naive,
    )
    return candidates[0]


def _parse_generic(value: str, tz: Optional[tzinfo]) -> datetime:
    parsed: Optional[datetime] = None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        try:
            parsed = parsedate_to_datetime(value)
        except (TypeError, ValueError, IndexError):
            parsed = None
    if parsed is None:
        raise TimestampParseError(f"Unrecognized timestamp: {value!r}")
    logger.debug("Parsed non-standard timestamp %r generically", value)
    if parsed.tzinfo is None:
        parsed = _attach(parsed, tz)
    return parsed


def entry_to_record(entry: TimeEntry, tz: Optional[tzinfo] = None) -> dict[str, Any]:
    return {
        "appTitle": entry.app_title,
        "appName": entry.app_name,
        "startTime": format_timestamp(entry.start_time, tz),
        "endTime": format_timestamp(entry.end_time, tz),
        "durationSeconds": entry.duration_seconds,
    }


def entry_from_record(record: Mapping[str, Any], tz: Optional[tzinfo] = None) -> TimeEntry:
    entry = TimeEntry(
        app_title=record.get("appTitle") or UNKNOWN,
        app_name=record.get("appName") or UNKNOWN,
        start_time=parse_timestamp(record["startTime"], tz),
        end_time=parse_timestamp(record["endTime"], tz),
    )
    duration = record.get("durationSeconds")
    if isinstance(duration, int) and duration >= 0:
        entry.duration_seconds = duration
    else:
        entry.refresh_duration()
    return entry
