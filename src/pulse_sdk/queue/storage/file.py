"""File-based storage for the event queue."""

from __future__ import annotations

import asyncio
import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from ...errors import StorageError
from .base import QueueStorage


logger = logging.getLogger(__name__)


@dataclass
class FileStorage(QueueStorage):
    """
    Storage that keeps the record as a JSON list in a single file.

    Writes are atomic: the list is written to a temp file, fsynced and
    renamed over the target, so a crash mid-write leaves the previous
    version intact. Blocking file I/O runs in a worker thread.
    """
    path: str
    encoding: str = "utf-8"

    @property
    def file_path(self) -> Path:
        return Path(self.path).expanduser()

    async def start(self) -> None:
        try:
            await asyncio.to_thread(self.file_path.parent.mkdir, parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Cannot create queue directory {self.file_path.parent}: {e}") from e

    async def load(self) -> list[dict[str, Any]]:
        try:
            return await asyncio.to_thread(self._read)
        except OSError as e:
            raise StorageError(f"Failed to read queue file {self.file_path}: {e}") from e

    async def save(self, records: list[dict[str, Any]]) -> None:
        try:
            await asyncio.to_thread(self._write, records)
        except OSError as e:
            raise StorageError(f"Failed to write queue file {self.file_path}: {e}") from e

    async def clear(self) -> None:
        try:
            await asyncio.to_thread(self.file_path.unlink, missing_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to delete queue file {self.file_path}: {e}") from e

    def _read(self) -> list[dict[str, Any]]:
        path = self.file_path
        if not path.exists():
            return []

        with open(path, "rb") as f:
            raw = f.read()

        if not raw.strip():
            return []

        try:
            data = json.loads(raw.decode(self.encoding))
        except UnicodeDecodeError as e:
            self._quarantine(path, f"invalid {self.encoding}: {e}")
            return []
        except json.JSONDecodeError as e:
            self._quarantine(path, f"invalid JSON: {e}")
            return []

        if not isinstance(data, list):
            self._quarantine(path, f"expected a list, got {type(data).__name__}")
            return []

        return data

    def _write(self, records: list[dict[str, Any]]) -> None:
        path = self.file_path
        path.parent.mkdir(parents=True, exist_ok=True)

        temp_path = path.with_suffix(path.suffix + ".tmp")
        with open(temp_path, "w", encoding=self.encoding) as f:
            json.dump(records, f, separators=(",", ":"))
            f.flush()
            os.fsync(f.fileno())

        temp_path.replace(path)

        try:
            path.chmod(0o600)
        except PermissionError:
            logger.warning(f"Could not set permissions on {path} (continuing)")

    def _quarantine(self, path: Path, reason: str) -> None:
        """Move an unreadable queue file aside so the queue can start fresh."""
        corrupt_path = path.with_suffix(path.suffix + ".corrupt")
        logger.error(f"Corrupted queue file {path} ({reason}), moving to {corrupt_path}")
        path.replace(corrupt_path)
