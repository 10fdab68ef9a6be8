"""Cancellable periodic tasks running on background threads."""

from __future__ import annotations

import logging
import threading
from datetime import timedelta
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class PeriodicTask:
    """Call ``action`` every ``interval`` on a dedicated thread.

    Runs never overlap: the next run is scheduled only after the previous one
    returns, so a slow run delays the following one instead of piling up.
    Exceptions raised by ``action`` are logged and the task keeps running.
    """

    def __init__(
        self,
        name: str,
        interval: timedelta,
        action: Callable[[], object],
        *,
        run_immediately: bool = False,
    ) -> None:
        if interval <= timedelta(0):
            raise ValueError("interval must be positive")
        self.name = name
        self.interval = interval
        self._action = action
        self._run_immediately = run_immediately
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._stop_event: Optional[threading.Event] = None

    def start(self) -> None:
        with self._lock:
            if self._thread and self._thread.is_alive():
                return
            stop_event = threading.Event()
            thread = threading.Thread(
                target=self._run_loop,
                args=(stop_event,),
                name=self.name,
                daemon=True,
            )
            self._thread = thread
            self._stop_event = stop_event
            thread.start()
        logger.debug("Task %s started (every %.3fs)", self.name, self.interval.total_seconds())

    def stop(self, timeout: Optional[float] = 10.0) -> None:
        thread: Optional[threading.Thread] = None
        with self._lock:
            if not self._thread or not self._stop_event:
                return
            self._stop_event.set()
            thread = self._thread
            self._thread = None
            self._stop_event = None
        if thread is not threading.current_thread():
            thread.join(timeout=timeout)
            if thread.is_alive():
                logger.warning("Task %s did not finish within %ss", self.name, timeout)
        logger.debug("Task %s stopped", self.name)

    def is_running(self) -> bool:
        with self._lock:
            return bool(self._thread and self._thread.is_alive())

    def _run_loop(self, stop_event: threading.Event) -> None:
        interval = self.interval.total_seconds()
        if not self._run_immediately:
            stop_event.wait(interval)
        while not stop_event.is_set():
            try:
                self._action()
            except Exception:
                logger.exception("Task %s failed", self.name)
            # Sleep in an interruptible manner.
            stop_event.wait(interval)
