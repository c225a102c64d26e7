"""SQLite persistence for run state: expiring transients and the capped run log."""

from __future__ import annotations

import json
import sqlite3
import time
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator, Optional

ISO_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"
DEFAULT_MAX_LOG_ENTRIES = 1000


def _utcnow() -> str:
    """Return the current UTC timestamp in ISO format."""

    return datetime.now(timezone.utc).strftime(ISO_FORMAT)


@dataclass(slots=True)
class LogEntry:
    """One line of the run log."""

    id: int
    timestamp: str
    message: str
    is_error: bool

    def as_dict(self) -> dict[str, Any]:
        return {"timestamp": self.timestamp, "message": self.message, "is_error": self.is_error}


class Database:
    """SQLite-backed storage for Sitepress run state."""

    def __init__(
        self,
        path: Optional[Path] = None,
        *,
        max_log_entries: int = DEFAULT_MAX_LOG_ENTRIES,
        clock=time.time,
    ) -> None:
        self.path = (path or Path.cwd() / "sitepress.sqlite").resolve()
        self.max_log_entries = max_log_entries
        self._clock = clock

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        """Provide a SQLite connection."""

        connection = sqlite3.connect(self.path, check_same_thread=False)
        connection.row_factory = sqlite3.Row
        try:
            yield connection
        finally:
            connection.close()

    def initialize(self) -> None:
        """Create tables if they do not exist."""

        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.connect() as connection:
            connection.executescript(
                """
                CREATE TABLE IF NOT EXISTS transients (
                    name TEXT PRIMARY KEY,
                    value_json TEXT NOT NULL,
                    expires_at REAL
                );

                CREATE TABLE IF NOT EXISTS run_log (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    timestamp TEXT NOT NULL,
                    message TEXT NOT NULL,
                    is_error INTEGER NOT NULL DEFAULT 0
                );
                """
            )
            connection.commit()

    # -- transients -------------------------------------------------------

    def set_transient(self, name: str, value: Any, ttl_seconds: float | None = None) -> None:
        """Store `value` under `name`, expiring after `ttl_seconds` when given."""

        expires_at = self._clock() + ttl_seconds if ttl_seconds else None
        with self.connect() as connection:
            connection.execute(
                """
                INSERT INTO transients (name, value_json, expires_at) VALUES (?, ?, ?)
                ON CONFLICT(name) DO UPDATE SET
                    value_json = excluded.value_json,
                    expires_at = excluded.expires_at
                """,
                (name, json.dumps(value), expires_at),
            )
            connection.commit()

    def add_transient(self, name: str, value: Any, ttl_seconds: float | None = None) -> bool:
        """Store `value` only if no unexpired transient named `name` exists.

        Returns True when the value was stored. The check and the write happen in one
        transaction so two callers cannot both succeed.
        """

        now = self._clock()
        expires_at = now + ttl_seconds if ttl_seconds else None
        with self.connect() as connection:
            connection.execute("BEGIN IMMEDIATE")
            row = connection.execute(
                "SELECT expires_at FROM transients WHERE name = ?", (name,)
            ).fetchone()
            if row is not None and (row["expires_at"] is None or row["expires_at"] > now):
                connection.rollback()
                return False
            connection.execute(
                "INSERT OR REPLACE INTO transients (name, value_json, expires_at) VALUES (?, ?, ?)",
                (name, json.dumps(value), expires_at),
            )
            connection.commit()
        return True

    def get_transient(self, name: str) -> Any | None:
        """Return the stored value, or None when missing or expired."""

        with self.connect() as connection:
            row = connection.execute(
                "SELECT value_json, expires_at FROM transients WHERE name = ?", (name,)
            ).fetchone()
            if row is None:
                return None
            if row["expires_at"] is not None and row["expires_at"] <= self._clock():
                connection.execute("DELETE FROM transients WHERE name = ?", (name,))
                connection.commit()
                return None
        return json.loads(row["value_json"])

    def delete_transient(self, name: str) -> None:
        with self.connect() as connection:
            connection.execute("DELETE FROM transients WHERE name = ?", (name,))
            connection.commit()

    # -- run log ----------------------------------------------------------

    def append_log(self, message: str, *, is_error: bool = False) -> LogEntry:
        """Append a log entry, dropping the oldest entries beyond the cap."""

        timestamp = _utcnow()
        with self.connect() as connection:
            cursor = connection.execute(
                "INSERT INTO run_log (timestamp, message, is_error) VALUES (?, ?, ?)",
                (timestamp, message, int(is_error)),
            )
            entry_id = cursor.lastrowid
            connection.execute(
                """
                DELETE FROM run_log WHERE id NOT IN (
                    SELECT id FROM run_log ORDER BY id DESC LIMIT ?
                )
                """,
                (self.max_log_entries,),
            )
            connection.commit()
        return LogEntry(id=entry_id, timestamp=timestamp, message=message, is_error=is_error)

    def get_logs(self, offset: int = 0) -> list[LogEntry]:
        """Return log entries in insertion order, skipping the first `offset`."""

        with self.connect() as connection:
            rows = connection.execute(
                "SELECT id, timestamp, message, is_error FROM run_log ORDER BY id LIMIT -1 OFFSET ?",
                (max(0, offset),),
            ).fetchall()
        return [
            LogEntry(
                id=row["id"],
                timestamp=row["timestamp"],
                message=row["message"],
                is_error=bool(row["is_error"]),
            )
            for row in rows
        ]

    def count_logs(self) -> int:
        with self.connect() as connection:
            row = connection.execute("SELECT COUNT(*) FROM run_log").fetchone()
        return int(row[0])

    def clear_logs(self) -> None:
        with self.connect() as connection:
            connection.execute("DELETE FROM run_log")
            connection.commit()
