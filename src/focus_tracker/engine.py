"""Segmentation of focus samples into time entries."""

from __future__ import annotations

import dataclasses
import logging
import threading
from datetime import datetime, timedelta
from typing import Callable, Optional

from .models import UNKNOWN, TimeEntry, as_utc
from .sampler import FocusSampler
from .serialization import now_in

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]
EntryCallback = Callable[[TimeEntry], None]


class SegmentationEngine:
    """Turns a stream of focus samples into sealed time entries.

    One entry is open at a time and is extended while the focused title stays
    the same. When the title changes the open entry is sealed and handed to
    ``on_emit``, unless its span is not longer than ``debounce_threshold``,
    in which case it is dropped as a focus flicker (and reported to
    ``on_discard`` if given).
    """

    def __init__(
        self,
        sampler: FocusSampler,
        on_emit: EntryCallback,
        *,
        debounce_threshold: timedelta = timedelta(seconds=2),
        clock: Optional[Clock] = None,
        on_discard: Optional[EntryCallback] = None,
    ) -> None:
        self._sampler = sampler
        self._on_emit = on_emit
        self._on_discard = on_discard
        self.debounce_threshold = debounce_threshold
        self._clock = clock or now_in
        self._open: Optional[TimeEntry] = None
        self._lock = threading.Lock()
        self._sampler_failing = False

    @property
    def current_entry(self) -> Optional[TimeEntry]:
        with self._lock:
            return dataclasses.replace(self._open) if self._open else None

    def tick(self) -> Optional[TimeEntry]:
        """Take one sample; return the entry sealed by it, if any."""
        title, app_name = self._sample()
        now = self._clock()
        with self._lock:
            current = self._open
            if current is None:
                self._open = TimeEntry.open_at(now, title, app_name)
                logger.debug("Opened entry for %s - %s", app_name, title)
                return None

            if title == current.app_title:
                current.extend(now)
                return None

            sealed = self._seal(current)
            self._open = TimeEntry.open_at(now, title, app_name)
            return sealed

    def close(self) -> Optional[TimeEntry]:
        """Seal the open entry against the current time, e.g. on shutdown."""
        now = self._clock()
        with self._lock:
            current = self._open
            if current is None:
                return None
            self._open = None
            current.extend(max(now, current.end_time, key=as_utc))
            return self._seal(current)

    def reset(self) -> None:
        with self._lock:
            self._open = None

    def _seal(self, entry: TimeEntry) -> Optional[TimeEntry]:
        entry.refresh_duration()
        if entry.elapsed > self.debounce_threshold and entry.duration_seconds > 0:
            logger.info("Sealed entry: %s (%d seconds)", entry.app_name, entry.duration_seconds)
            self._on_emit(entry)
            return entry

        logger.debug("Discarded %.3fs flicker on %s", entry.elapsed.total_seconds(), entry.app_title)
        if self._on_discard is not None:
            self._on_discard(entry)
        return None

    def _sample(self) -> tuple[str, str]:
        try:
            sample = self._sampler.probe()
        except Exception as exc:
            if not self._sampler_failing:
                logger.warning("Focus sampler failed, recording Unknown: %s", exc)
            else:
                logger.debug("Focus sampler still failing: %s", exc)
            self._sampler_failing = True
            return UNKNOWN, UNKNOWN

        if self._sampler_failing:
            logger.info("Focus sampler recovered")
            self._sampler_failing = False
        if sample is None:
            return UNKNOWN, UNKNOWN
        return sample.title or UNKNOWN, sample.process_name or UNKNOWN
