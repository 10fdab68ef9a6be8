"""The focus tracker: sampling, segmentation and sync wired together."""

from __future__ import annotations

import logging
import threading
from datetime import timedelta
from functools import partial
from pathlib import Path
from typing import Optional

from .config import TrackerSettings
from .engine import Clock, SegmentationEngine
from .errors import PersistenceFailure
from .models import TimeEntry, TrackerStats
from .reporting import summarize_entries
from .sampler import FocusSampler, select_sampler
from .scheduling import PeriodicTask
from .serialization import now_in, resolve_timezone
from .store import DurableStore
from .sync_queue import FlushResult, SyncQueue
from .transport import Transport, build_transport

logger = logging.getLogger(__name__)


class FocusTracker:
    """Samples focus on one timer and flushes entries on another."""

    def __init__(
        self,
        settings: TrackerSettings,
        *,
        sampler: FocusSampler,
        store: DurableStore,
        transport: Transport,
        clock: Optional[Clock] = None,
    ) -> None:
        self.settings = settings
        self.sampler = sampler
        self.queue = SyncQueue(
            store,
            transport,
            reachability_timeout=settings.reachability_timeout,
        )
        self.engine = SegmentationEngine(
            sampler,
            self.queue.append,
            debounce_threshold=settings.debounce_threshold,
            clock=clock,
        )
        self._lock = threading.Lock()
        self._sample_task: Optional[PeriodicTask] = None
        self._flush_task: Optional[PeriodicTask] = None

    @property
    def running(self) -> bool:
        with self._lock:
            return self._sample_task is not None

    def start(self, period_ms: Optional[float] = None) -> None:
        """Begin sampling every ``period_ms`` (defaults to the configured interval)."""
        with self._lock:
            if self._sample_task is not None:
                return
            interval = (
                timedelta(milliseconds=period_ms)
                if period_ms is not None
                else self.settings.sample_interval
            )
            if interval <= timedelta(0):
                raise ValueError("period_ms must be positive")
            if interval >= self.settings.debounce_threshold:
                raise ValueError("sampling period must be shorter than the debounce threshold")

            self._sample_task = PeriodicTask(
                "focus-sampler", interval, self.tick, run_immediately=True
            )
            self._flush_task = PeriodicTask(
                "entry-sync", self.settings.flush_interval, self.queue.flush
            )
            self._sample_task.start()
            self._flush_task.start()
        logger.info("Tracking started with interval %d ms", interval // timedelta(milliseconds=1))

    def tick(self) -> Optional[TimeEntry]:
        return self.engine.tick()

    def stop(self) -> Optional[FlushResult]:
        """Stop the timers, seal the open entry and flush synchronously."""
        with self._lock:
            sample_task, self._sample_task = self._sample_task, None
            flush_task, self._flush_task = self._flush_task, None

        if sample_task is not None:
            sample_task.stop()
        if flush_task is not None:
            flush_task.stop()

        sealed = self.engine.close()
        if sample_task is None and sealed is None and not self.queue.has_pending():
            return None

        # Waits for an in-flight timer flush to release the guard first.
        result = self.queue.flush(wait=True)
        logger.info("Tracking stopped (final flush: %s)", result.outcome.value)
        return result

    def get_current_entry(self) -> Optional[TimeEntry]:
        return self.engine.current_entry

    def get_entries(self) -> list[TimeEntry]:
        return self.queue.pending()

    def get_stats(self) -> TrackerStats:
        """Totals over every entry not yet uploaded (stored and pending)."""
        try:
            stored = self.queue.read_all()
        except PersistenceFailure:
            logger.exception("Could not read stored entries; stats cover memory only")
            stored = []
        return summarize_entries(stored + self.queue.pending())

    def save_now(self) -> FlushResult:
        return self.queue.persist_pending(wait=True)

    def sync_now(self) -> FlushResult:
        return self.queue.flush()

    def clear_all(self) -> None:
        self.engine.reset()
        self.queue.discard_all()


def build_tracker(
    settings: TrackerSettings,
    store_path: Path,
    *,
    sampler: Optional[FocusSampler] = None,
    transport: Optional[Transport] = None,
    clock: Optional[Clock] = None,
) -> FocusTracker:
    """Create a tracker with the platform sampler and configured transport."""
    tz = resolve_timezone(settings.timezone)
    store = DurableStore(store_path, tz=tz)
    if sampler is None:
        sampler = select_sampler(timeout=settings.probe_timeout or settings.sample_interval)
    if transport is None:
        transport = build_transport(
            settings.collector_url,
            device_id=settings.device_id,
            reachability_url=settings.reachability_url,
            upload_timeout=settings.upload_timeout,
            tz=tz,
        )
    if clock is None and tz is not None:
        clock = partial(now_in, tz)
    logger.info("Tracker using store at %s", store_path)
    return FocusTracker(settings, sampler=sampler, store=store, transport=transport, clock=clock)
