"""Transports that probe connectivity and upload entries to the collector."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Any, Optional, Protocol, Sequence

import requests

from .config import DEFAULT_REACHABILITY_URL
from .models import TimeEntry
from .serialization import entry_to_record

logger = logging.getLogger(__name__)


class Transport(Protocol):
    def is_reachable(self, timeout: timedelta) -> bool: ...

    def upload(self, entries: Sequence[TimeEntry]) -> bool: ...


class OfflineTransport:
    """Used when no collector is configured: entries stay on disk."""

    def is_reachable(self, timeout: timedelta) -> bool:
        return False

    def upload(self, entries: Sequence[TimeEntry]) -> bool:
        return False


class HttpTransport:
    """Posts batches of entries as JSON to a remote collector."""

    def __init__(
        self,
        collector_url: str,
        *,
        device_id: str,
        reachability_url: str = DEFAULT_REACHABILITY_URL,
        upload_timeout: timedelta = timedelta(seconds=30),
        tz: Optional[tzinfo] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.collector_url = collector_url
        self.device_id = device_id
        self.reachability_url = reachability_url
        self.upload_timeout = upload_timeout
        self.tz = tz
        self._session = session or requests.Session()

    def is_reachable(self, timeout: timedelta) -> bool:
        try:
            response = self._session.head(
                self.reachability_url,
                timeout=timeout.total_seconds(),
                allow_redirects=False,
            )
        except requests.exceptions.RequestException as exc:
            logger.debug("Reachability probe to %s failed: %s", self.reachability_url, exc)
            return False
        # Redirects count: the host answered.
        return 200 <= response.status_code < 400

    def format_payload(self, entries: Sequence[TimeEntry]) -> dict[str, Any]:
        return {
            "source_id": self.device_id,
            "sent_at": datetime.now(timezone.utc).isoformat(),
            "entries": [entry_to_record(entry, self.tz) for entry in entries],
        }

    def upload(self, entries: Sequence[TimeEntry]) -> bool:
        if not entries:
            return True

        logger.info("Uploading %d entries to %s", len(entries), self.collector_url)
        try:
            response = self._session.post(
                self.collector_url,
                json=self.format_payload(entries),
                timeout=self.upload_timeout.total_seconds(),
            )
            response.raise_for_status()
        except requests.exceptions.HTTPError as exc:
            logger.error(
                "Collector rejected batch: %s - %s",
                exc.response.status_code if exc.response is not None else "?",
                exc.response.text if exc.response is not None else "",
            )
            return False
        except requests.exceptions.RequestException as exc:
            logger.error("Error uploading batch to %s: %s", self.collector_url, exc)
            return False

        logger.info("Collector accepted %d entries (HTTP %s)", len(entries), response.status_code)
        return True


def build_transport(
    collector_url: Optional[str],
    *,
    device_id: str,
    reachability_url: str = DEFAULT_REACHABILITY_URL,
    upload_timeout: timedelta = timedelta(seconds=30),
    tz: Optional[tzinfo] = None,
) -> Transport:
    if not collector_url:
        logger.info("No collector configured; entries will only be stored locally")
        return OfflineTransport()
    return HttpTransport(
        collector_url,
        device_id=device_id,
        reachability_url=reachability_url,
        upload_timeout=upload_timeout,
        tz=tz,
    )
