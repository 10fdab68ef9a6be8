"""SQLite-backed durable store for time entries awaiting upload."""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from datetime import tzinfo
from pathlib import Path
from typing import Any, Iterable, Iterator, Optional

from .errors import PersistenceFailure, TimestampParseError
from .models import TimeEntry
from .serialization import (
    entry_from_record,
    entry_to_record,
    format_timestamp,
    now_in,
)

logger = logging.getLogger(__name__)

LAST_SAVED_KEY = "lastSaved"


def open_database(path: Path, *, check_same_thread: bool = True) -> sqlite3.Connection:
    """Open (and initialize) the SQLite database."""
    conn = sqlite3.connect(
        path,
        isolation_level=None,
        check_same_thread=check_same_thread,
    )
    conn.row_factory = sqlite3.Row
    initialize_schema(conn)
    return conn


@contextmanager
def database_connection(
    path: Path, *, check_same_thread: bool = True
) -> Iterator[sqlite3.Connection]:
    conn = open_database(path, check_same_thread=check_same_thread)
    try:
        yield conn
    finally:
        conn.close()


@contextmanager
def transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """Run the enclosed statements as one all-or-nothing unit."""
    conn.execute("BEGIN IMMEDIATE")
    try:
        yield conn
    except BaseException:
        conn.execute("ROLLBACK")
        raise
    conn.execute("COMMIT")


def initialize_schema(conn: sqlite3.Connection) -> None:
    conn.executescript(
        """
        CREATE TABLE IF NOT EXISTS time_entries (
            id INTEGER PRIMARY KEY,
            app_title TEXT NOT NULL,
            app_name TEXT NOT NULL,
            start_time TEXT NOT NULL,
            end_time TEXT NOT NULL,
            duration_seconds INTEGER NOT NULL
        );

        CREATE TABLE IF NOT EXISTS store_meta (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL
        );
        """
    )


def insert_entries(
    conn: sqlite3.Connection, entries: Iterable[TimeEntry], tz: Optional[tzinfo] = None
) -> None:
    records = [entry_to_record(entry, tz) for entry in entries]
    conn.executemany(
        """
        INSERT INTO time_entries (
            app_title,
            app_name,
            start_time,
            end_time,
            duration_seconds
        ) VALUES (?, ?, ?, ?, ?)
        """,
        [
            (
                record["appTitle"],
                record["appName"],
                record["startTime"],
                record["endTime"],
                record["durationSeconds"],
            )
            for record in records
        ],
    )


def fetch_entry_rows(conn: sqlite3.Connection) -> list[sqlite3.Row]:
    return list(
        conn.execute(
            """
            SELECT id, app_title, app_name, start_time, end_time, duration_seconds
            FROM time_entries
            ORDER BY id;
            """
        )
    )


def set_meta(conn: sqlite3.Connection, key: str, value: str) -> None:
    conn.execute(
        """
        INSERT INTO store_meta (key, value) VALUES (?, ?)
        ON CONFLICT(key) DO UPDATE SET value = excluded.value
        """,
        (key, value),
    )


def get_meta(conn: sqlite3.Connection, key: str) -> Optional[str]:
    row = conn.execute("SELECT value FROM store_meta WHERE key = ?", (key,)).fetchone()
    return row["value"] if row else None


def row_to_record(row: sqlite3.Row) -> dict[str, Any]:
    return {
        "appTitle": row["app_title"],
        "appName": row["app_name"],
        "startTime": row["start_time"],
        "endTime": row["end_time"],
        "durationSeconds": row["duration_seconds"],
    }


class DurableStore:
    """Append/read/clear queue of entries that survives restarts.

    Every append and clear runs in a single SQLite transaction, so after a
    crash either all of it is visible or none of it is. Each call opens its
    own connection, which keeps the store safe to use from the sampling,
    flush and API threads at once.
    """

    def __init__(self, path: Path, tz: Optional[tzinfo] = None) -> None:
        self.path = Path(path)
        self.tz = tz
        try:
            with database_connection(self.path):
                pass
        except sqlite3.Error as exc:
            raise PersistenceFailure(f"Cannot open store at {self.path}: {exc}") from exc

    def append(self, entries: Iterable[TimeEntry]) -> int:
        batch = list(entries)
        if not batch:
            return 0
        try:
            with database_connection(self.path) as conn, transaction(conn):
                insert_entries(conn, batch, self.tz)
                set_meta(conn, LAST_SAVED_KEY, format_timestamp(now_in(self.tz), self.tz))
        except sqlite3.Error as exc:
            raise PersistenceFailure(f"Failed to append {len(batch)} entries: {exc}") from exc
        logger.debug("Appended %d entries to %s", len(batch), self.path)
        return len(batch)

    def read_all(self) -> list[TimeEntry]:
        return [entry for _, entry in self.read_rows()]

    def read_rows(self) -> list[tuple[int, TimeEntry]]:
        """Return readable entries paired with their row ids, oldest first."""
        try:
            with database_connection(self.path) as conn:
                rows = fetch_entry_rows(conn)
        except sqlite3.Error as exc:
            raise PersistenceFailure(f"Failed to read entries: {exc}") from exc

        entries: list[tuple[int, TimeEntry]] = []
        for row in rows:
            try:
                entries.append((row["id"], entry_from_record(row_to_record(row), self.tz)))
            except TimestampParseError:
                logger.error("Skipping stored entry id=%s with unreadable timestamps", row["id"])
        return entries

    def is_empty(self) -> bool:
        try:
            with database_connection(self.path) as conn:
                row = conn.execute("SELECT EXISTS (SELECT 1 FROM time_entries)").fetchone()
        except sqlite3.Error as exc:
            raise PersistenceFailure(f"Failed to inspect store: {exc}") from exc
        return not row[0]

    def count(self) -> int:
        try:
            with database_connection(self.path) as conn:
                row = conn.execute("SELECT COUNT(*) FROM time_entries").fetchone()
        except sqlite3.Error as exc:
            raise PersistenceFailure(f"Failed to count entries: {exc}") from exc
        return int(row[0])

    def clear(self) -> None:
        try:
            with database_connection(self.path) as conn, transaction(conn):
                conn.execute("DELETE FROM time_entries")
                set_meta(conn, LAST_SAVED_KEY, format_timestamp(now_in(self.tz), self.tz))
        except sqlite3.Error as exc:
            raise PersistenceFailure(f"Failed to clear store: {exc}") from exc
        logger.debug("Cleared store at %s", self.path)

    def remove(self, row_ids: Iterable[int]) -> int:
        ids = [(row_id,) for row_id in row_ids]
        if not ids:
            return 0
        try:
            with database_connection(self.path) as conn, transaction(conn):
                conn.executemany("DELETE FROM time_entries WHERE id = ?", ids)
                set_meta(conn, LAST_SAVED_KEY, format_timestamp(now_in(self.tz), self.tz))
        except sqlite3.Error as exc:
            raise PersistenceFailure(f"Failed to remove {len(ids)} entries: {exc}") from exc
        logger.debug("Removed %d entries from %s", len(ids), self.path)
        return len(ids)

    def last_saved(self) -> Optional[str]:
        try:
            with database_connection(self.path) as conn:
                return get_meta(conn, LAST_SAVED_KEY)
        except sqlite3.Error as exc:
            raise PersistenceFailure(f"Failed to read store metadata: {exc}") from exc

    def snapshot(self) -> dict[str, Any]:
        """Return the store as ``{"entries": [...], "lastSaved": ...}``."""
        entries = self.read_all()
        return {
            "entries": [entry_to_record(entry, self.tz) for entry in entries],
            "lastSaved": self.last_saved(),
        }

