"""SQLite persistence for command usage records."""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator

SCHEMA_VERSION = 1


class Database:
    """Small SQLite wrapper with explicit schema management."""

    def __init__(self, path: Path) -> None:
        self._path = path

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self._path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    def initialize(self) -> None:
        """Create or migrate schema."""

        with self._connect() as conn:
            conn.execute("CREATE TABLE IF NOT EXISTS schema_version (version INTEGER NOT NULL)")
            row = conn.execute("SELECT version FROM schema_version LIMIT 1").fetchone()
            if row is None:
                self._create_schema(conn)
                conn.execute("INSERT INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))
            elif row["version"] != SCHEMA_VERSION:
                raise RuntimeError(
                    f"Unsupported schema version {row['version']} (expected {SCHEMA_VERSION})"
                )

    def _create_schema(self, conn: sqlite3.Connection) -> None:
        conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS command_usage (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                command TEXT NOT NULL,
                sender_id TEXT NOT NULL,
                used_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_command_usage_sender
                ON command_usage(sender_id);
            """
        )

    def record_command(self, command: str, sender_id: str, used_at: datetime) -> int:
        with self._connect() as conn:
            cur = conn.execute(
                "INSERT INTO command_usage(command, sender_id, used_at) VALUES (?, ?, ?)",
                (command, sender_id, used_at.astimezone(timezone.utc).isoformat()),
            )
            return int(cur.lastrowid)

    def command_counts(self) -> dict[str, int]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT command, COUNT(*) AS uses FROM command_usage GROUP BY command"
            ).fetchall()
        return {row["command"]: int(row["uses"]) for row in rows}
