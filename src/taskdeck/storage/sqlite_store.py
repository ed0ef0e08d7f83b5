"""Summary: SQLite key-value storage for TaskDeck.

Importance: Provides the durable settings and credential store the services read and write.
Alternatives: Use a JSON file per key or an external settings service.
"""

from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator


class SqliteStore:
    """Summary: SQLite-backed key-value store with JSON-encoded values.

    Importance: Keeps tokens, tasks, and suggestion caches local with minimal dependencies.
    Alternatives: Use a document store or an ORM model per entity.
    """

    def __init__(self, db_path: str) -> None:
        """Summary: Initialize the storage with a database path.

        Importance: Allows configurable database location per environment.
        Alternatives: Hardcode a default path in the class.
        """

        self._db_path = Path(db_path)

    def initialize(self) -> None:
        """Summary: Create the settings table if it does not exist.

        Importance: Ensures the store is ready before the coordinator loads credentials.
        Alternatives: Run migrations using a dedicated migration tool.
        """

        with self._connection() as connection:
            connection.execute(
                """
                CREATE TABLE IF NOT EXISTS settings (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
            connection.commit()

    def get(self, key: str, default: Any = None) -> Any:
        """Summary: Return the decoded value for a key, or the default.

        Importance: Mirrors the get-with-default access the services rely on.
        Alternatives: Raise KeyError for missing keys.
        """

        with self._connection() as connection:
            row = connection.execute("SELECT value FROM settings WHERE key = ?", (key,)).fetchone()
        if row is None:
            return default
        return json.loads(row[0])

    def set(self, key: str, value: Any) -> None:
        """Summary: Store a JSON-serializable value under a key, replacing any previous value."""

        encoded = json.dumps(value)
        with self._connection() as connection:
            connection.execute(
                """
                INSERT INTO settings (key, value, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
                """,
                (key, encoded, datetime.now(timezone.utc).isoformat()),
            )
            connection.commit()

    def delete(self, key: str) -> bool:
        """Summary: Delete a key and report whether it existed."""

        with self._connection() as connection:
            cursor = connection.execute("DELETE FROM settings WHERE key = ?", (key,))
            connection.commit()
            return cursor.rowcount > 0

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        """Summary: Context manager for SQLite connections.

        Importance: Ensures connections are closed cleanly after use.
        Alternatives: Keep a single long-lived connection.
        """

        connection = sqlite3.connect(self._db_path)
        try:
            yield connection
        finally:
            connection.close()
