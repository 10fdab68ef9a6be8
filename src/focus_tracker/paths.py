"""Per-user locations for the entry store and log file."""

from __future__ import annotations

from pathlib import Path

from platformdirs import PlatformDirs

STORE_FILENAME = "time-entries.sqlite3"
LOG_FILENAME = "tracker.log"

_DIRS = PlatformDirs(appname="FocusTracker", appauthor=False, roaming=True)


def _ensure(path: Path) -> Path:
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    return _ensure(Path(_DIRS.user_data_path))


def get_store_path() -> Path:
    """Default SQLite store for entries that have not been uploaded yet."""
    return get_data_dir() / STORE_FILENAME


def get_log_path() -> Path:
    return _ensure(Path(_DIRS.user_log_path)) / LOG_FILENAME
