"""Configuration models and helpers for the focus tracker."""

from __future__ import annotations

import socket
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Optional

DEFAULT_REACHABILITY_URL = "http://www.google.com/"


def _default_device_id() -> str:
    try:
        return socket.gethostname()
    except OSError:
        return "localhost"


@dataclass(slots=True)
class TrackerSettings:
    """Runtime configuration for sampling, debouncing and sync."""

    sample_interval: timedelta = timedelta(milliseconds=200)
    debounce_threshold: timedelta = timedelta(seconds=2)
    flush_interval: timedelta = timedelta(seconds=30)
    reachability_timeout: timedelta = timedelta(seconds=5)
    upload_timeout: timedelta = timedelta(seconds=30)
    probe_timeout: Optional[timedelta] = None
    collector_url: Optional[str] = None
    reachability_url: str = DEFAULT_REACHABILITY_URL
    device_id: str = field(default_factory=_default_device_id)
    timezone: Optional[str] = None

    def __post_init__(self) -> None:
        if self.sample_interval <= timedelta(0):
            raise ValueError("sample_interval must be positive")
        if self.flush_interval <= timedelta(0):
            raise ValueError("flush_interval must be positive")
        if self.debounce_threshold <= self.sample_interval:
            raise ValueError("debounce_threshold must be longer than sample_interval")
        if self.probe_timeout is None:
            self.probe_timeout = self.sample_interval

    @classmethod
    def from_options(
        cls,
        interval_ms: float = 200.0,
        debounce_ms: float = 2000.0,
        flush_seconds: float = 30.0,
        collector_url: Optional[str] = None,
        reachability_url: Optional[str] = None,
        device_id: Optional[str] = None,
        timezone: Optional[str] = None,
    ) -> "TrackerSettings":
        extra: dict[str, str] = {}
        if reachability_url:
            extra["reachability_url"] = reachability_url
        if device_id:
            extra["device_id"] = device_id
        return cls(
            sample_interval=timedelta(milliseconds=interval_ms),
            debounce_threshold=timedelta(milliseconds=debounce_ms),
            flush_interval=timedelta(seconds=flush_seconds),
            collector_url=collector_url or None,
            timezone=timezone or None,
            **extra,
        )
