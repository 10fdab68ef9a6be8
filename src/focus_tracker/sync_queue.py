"""Write buffer, durable queue and upload cycle for sealed entries."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import Optional

from .errors import NetworkUnreachable, PersistenceFailure, SyncFailure, UploadRejected
from .models import TimeEntry
from .store import DurableStore
from .transport import Transport

logger = logging.getLogger(__name__)


class FlushOutcome(str, Enum):
    SKIPPED = "skipped"
    PERSISTENCE_FAILED = "persistence_failed"
    STORED = "stored"
    UNREACHABLE = "unreachable"
    UPLOAD_FAILED = "upload_failed"
    UPLOADED = "uploaded"


@dataclass(slots=True)
class FlushResult:
    outcome: FlushOutcome
    persisted: int = 0
    uploaded: int = 0
    error: Optional[str] = None


class SyncQueue:
    """Buffers sealed entries in memory and moves them to disk and upstream.

    ``append`` only touches the in-memory list. ``flush`` moves that list
    into the durable store and then tries to upload everything the store
    holds, clearing it only after the collector accepted the whole batch.
    At most one flush runs at a time.
    """

    def __init__(
        self,
        store: DurableStore,
        transport: Transport,
        *,
        reachability_timeout: timedelta = timedelta(seconds=5),
    ) -> None:
        self.store = store
        self.transport = transport
        self.reachability_timeout = reachability_timeout
        self._pending: list[TimeEntry] = []
        self._pending_lock = threading.Lock()
        self._sync_guard = threading.Lock()

    @property
    def syncing(self) -> bool:
        return self._sync_guard.locked()

    def append(self, entry: TimeEntry) -> None:
        try:
            with self._pending_lock:
                self._pending.append(entry)
        except Exception:  # pragma: no cover - must never break the sampling tick
            logger.exception("Failed to queue entry for %s", entry.app_name)

    def pending(self) -> list[TimeEntry]:
        with self._pending_lock:
            return list(self._pending)

    def has_pending(self) -> bool:
        with self._pending_lock:
            return bool(self._pending)

    def flush(self, *, wait: bool = False) -> FlushResult:
        """Persist pending entries, then upload the store if the collector is reachable.

        With ``wait=False`` a flush that finds another one in flight returns
        ``SKIPPED`` immediately; with ``wait=True`` it waits for it to finish.
        """
        if not self._sync_guard.acquire(blocking=wait):
            logger.info("Sync already in progress, skipping")
            return FlushResult(FlushOutcome.SKIPPED)
        try:
            return self._flush_locked()
        finally:
            self._sync_guard.release()

    def persist_pending(self, *, wait: bool = True) -> FlushResult:
        """Move pending entries to the durable store without uploading."""
        if not self._sync_guard.acquire(blocking=wait):
            return FlushResult(FlushOutcome.SKIPPED)
        try:
            try:
                persisted = self._persist_locked()
            except PersistenceFailure as exc:
                return FlushResult(FlushOutcome.PERSISTENCE_FAILED, error=str(exc))
            return FlushResult(FlushOutcome.STORED, persisted=persisted)
        finally:
            self._sync_guard.release()

    def _flush_locked(self) -> FlushResult:
        try:
            persisted = self._persist_locked()
        except PersistenceFailure as exc:
            return FlushResult(FlushOutcome.PERSISTENCE_FAILED, error=str(exc))

        try:
            uploaded = self._upload_locked()
        except PersistenceFailure as exc:
            logger.error("Store unavailable during sync: %s", exc)
            return FlushResult(FlushOutcome.PERSISTENCE_FAILED, persisted=persisted, error=str(exc))
        except NetworkUnreachable as exc:
            logger.info("Offline - entries kept in local storage only")
            return FlushResult(FlushOutcome.UNREACHABLE, persisted=persisted, error=str(exc))
        except SyncFailure as exc:
            logger.warning("Upload failed, keeping local data: %s", exc)
            return FlushResult(FlushOutcome.UPLOAD_FAILED, persisted=persisted, error=str(exc))

        if uploaded:
            return FlushResult(FlushOutcome.UPLOADED, persisted=persisted, uploaded=uploaded)
        return FlushResult(FlushOutcome.STORED, persisted=persisted)

    def _persist_locked(self) -> int:
        with self._pending_lock:
            batch = list(self._pending)
        if not batch:
            return 0
        try:
            self.store.append(batch)
        except PersistenceFailure:
            logger.exception("Failed to save %d entries; they stay queued in memory", len(batch))
            raise
        with self._pending_lock:
            # Entries appended while the write ran stay queued for next time.
            del self._pending[: len(batch)]
        logger.info("Saved %d entries to local storage", len(batch))
        return len(batch)

    def _upload_locked(self) -> int:
        if self.store.is_empty():
            return 0

        try:
            reachable = self.transport.is_reachable(self.reachability_timeout)
        except Exception as exc:
            raise NetworkUnreachable(f"reachability probe raised {exc!r}") from exc
        if not reachable:
            raise NetworkUnreachable("collector unreachable")

        rows = self.store.read_rows()
        if not rows:
            return 0
        entries = [entry for _, entry in rows]
        logger.info("Found %d entries to sync", len(entries))
        try:
            accepted = self.transport.upload(entries)
        except Exception as exc:
            raise UploadRejected(f"upload raised {exc!r}") from exc
        if not accepted:
            raise UploadRejected(f"collector did not accept {len(entries)} entries")

        # Only rows that went out are deleted; unreadable ones stay for inspection.
        self.store.remove(row_id for row_id, _ in rows)
        logger.info("Synced %d entries and removed them from local storage", len(entries))
        return len(entries)

    def read_all(self) -> list[TimeEntry]:
        return self.store.read_all()

    def is_empty(self) -> bool:
        return self.store.is_empty()

    def clear(self) -> None:
        self.store.clear()

    def discard_all(self) -> None:
        """Drop pending entries and wipe the durable store."""
        with self._sync_guard:
            with self._pending_lock:
                dropped = len(self._pending)
                self._pending.clear()
            self.store.clear()
        logger.info("Discarded %d pending entries and cleared local storage", dropped)
