"""Domain models for recorded focus activity."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional

UNKNOWN = "Unknown"

_ONE_SECOND = timedelta(seconds=1)


def as_utc(value: datetime) -> datetime:
    """Return the same instant in UTC. Values sharing a zone subtract as wall time."""
    return value.astimezone(timezone.utc)


@dataclass(slots=True)
class FocusSample:
    """One observation of the window that currently holds input focus."""

    title: Optional[str]
    process_name: Optional[str]
    pid: Optional[int] = None


@dataclass(slots=True)
class TimeEntry:
    """A contiguous interval during which one window held focus."""

    app_title: str
    app_name: str
    start_time: datetime
    end_time: datetime
    duration_seconds: int = 0

    @classmethod
    def open_at(cls, timestamp: datetime, app_title: str, app_name: str) -> "TimeEntry":
        return cls(
            app_title=app_title,
            app_name=app_name,
            start_time=timestamp,
            end_time=timestamp,
        )

    @property
    def elapsed(self) -> timedelta:
        return as_utc(self.end_time) - as_utc(self.start_time)

    def extend(self, timestamp: datetime) -> None:
        self.end_time = timestamp
        self.refresh_duration()

    def refresh_duration(self) -> None:
        self.duration_seconds = max(self.elapsed // _ONE_SECOND, 0)


@dataclass(slots=True)
class TrackerStats:
    total_entries: int = 0
    total_duration_seconds: int = 0
    per_app_duration_seconds: dict[str, int] = field(default_factory=dict)
