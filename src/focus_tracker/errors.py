"""Exception types raised inside the tracker.

None of these escape a tick or a flush cycle: the engine and the sync queue
log them and turn them into placeholder values or flush outcomes.
"""

from __future__ import annotations


class TrackerError(Exception):
    """Base class for tracker errors."""


class SamplerUnavailable(TrackerError):
    """The focused window could not be determined for this probe."""


class PersistenceFailure(TrackerError):
    """Reading from or writing to the durable store failed."""


class SyncFailure(TrackerError):
    """Base class for failures talking to the remote collector."""


class NetworkUnreachable(SyncFailure):
    """The reachability probe failed or timed out."""


class UploadRejected(SyncFailure):
    """The collector did not accept the uploaded batch."""


class TimestampParseError(TrackerError, ValueError):
    """A stored timestamp matched neither the strict nor a generic format."""
