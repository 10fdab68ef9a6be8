import threading
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

from focus_tracker.config import TrackerSettings
from focus_tracker.errors import SamplerUnavailable
from focus_tracker.models import FocusSample, TimeEntry
from focus_tracker.sampler import FocusSampler
from focus_tracker.store import DurableStore
from focus_tracker.tracker import FocusTracker

START = datetime(2024, 3, 1, 9, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, start: datetime = START):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += timedelta(milliseconds=ms)


class ScriptedSampler(FocusSampler):
    name = "scripted"

    def __init__(self, title: Optional[str] = "Editor", process_name: Optional[str] = "code"):
        super().__init__()
        self.title = title
        self.process_name = process_name
        self.fail = False
        self.calls = 0

    def show(self, title: Optional[str], process_name: Optional[str] = None) -> None:
        self.title = title
        self.process_name = process_name if process_name is not None else (title or "").lower()

    def probe(self) -> Optional[FocusSample]:
        self.calls += 1
        if self.fail:
            raise SamplerUnavailable("window manager went away")
        if self.title is None:
            return None
        return FocusSample(title=self.title, process_name=self.process_name)


class FakeTransport:
    def __init__(self, reachable: bool = True, accept: bool = True):
        self.reachable = reachable
        self.accept = accept
        self.probes = 0
        self.uploads: list[list[TimeEntry]] = []

    def is_reachable(self, timeout: timedelta) -> bool:
        self.probes += 1
        return self.reachable

    def upload(self, entries) -> bool:
        self.uploads.append(list(entries))
        return self.accept


class SlowTransport(FakeTransport):
    """Blocks inside upload until released, counting concurrent uploads."""

    def __init__(self):
        super().__init__()
        self.started = threading.Event()
        self.release = threading.Event()
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    def upload(self, entries) -> bool:
        with self._lock:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        self.started.set()
        self.release.wait(5)
        with self._lock:
            self.active -= 1
        return super().upload(entries)


def make_entry(title: str = "Editor", app: str = "code", start: datetime = START, seconds: int = 10) -> TimeEntry:
    entry = TimeEntry.open_at(start, title, app)
    entry.extend(start + timedelta(seconds=seconds))
    return entry


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sampler():
    return ScriptedSampler()


@pytest.fixture
def store(tmp_path):
    return DurableStore(tmp_path / "entries.sqlite3", tz=timezone.utc)


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def settings():
    return TrackerSettings(device_id="test-device")


@pytest.fixture
def tracker(settings, sampler, store, transport, clock):
    tracker = FocusTracker(settings, sampler=sampler, store=store, transport=transport, clock=clock)
    yield tracker
    tracker.stop()
