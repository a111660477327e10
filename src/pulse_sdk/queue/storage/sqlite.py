"""SQLite storage for the event queue."""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Generator

from ...errors import StorageError
from .base import QueueStorage


logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS queue_records (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);
"""


@dataclass
class SqliteStorage(QueueStorage):
    """
    Storage that keeps the record as one row of a key/value table.

    Several named queues can share a database file by using different keys.
    """
    path: str
    key: str = "events"

    @property
    def db_path(self) -> Path:
        return Path(self.path).expanduser()

    @contextmanager
    def _connect(self) -> Generator[sqlite3.Connection, None, None]:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(self.db_path))
        try:
            conn.executescript(SCHEMA_SQL)
            yield conn
            conn.commit()
        finally:
            conn.close()

    async def start(self) -> None:
        await self._run(self._init)

    async def load(self) -> list[dict[str, Any]]:
        return await self._run(self._read)

    async def save(self, records: list[dict[str, Any]]) -> None:
        await self._run(self._write, records)

    async def clear(self) -> None:
        await self._run(self._delete)

    async def _run(self, fn, *args):
        try:
            return await asyncio.to_thread(fn, *args)
        except (sqlite3.Error, OSError) as e:
            raise StorageError(f"SQLite queue storage {self.db_path} unavailable: {e}") from e

    def _init(self) -> None:
        with self._connect():
            pass

    def _read(self) -> list[dict[str, Any]]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT value FROM queue_records WHERE key = ?", (self.key,)
            ).fetchone()

        if row is None:
            return []

        try:
            data = json.loads(row[0])
        except json.JSONDecodeError as e:
            logger.error(f"Corrupted queue record {self.key!r} in {self.db_path}: {e}")
            return []

        if not isinstance(data, list):
            logger.error(f"Queue record {self.key!r} in {self.db_path} is not a list, ignoring")
            return []

        return data

    def _write(self, records: list[dict[str, Any]]) -> None:
        value = json.dumps(records, separators=(",", ":"))
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO queue_records (key, value, updated_at)
                VALUES (?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = excluded.updated_at
                """,
                (self.key, value),
            )

    def _delete(self) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM queue_records WHERE key = ?", (self.key,))
