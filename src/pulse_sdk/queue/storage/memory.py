"""In-memory storage for tests and ephemeral queues."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from .base import QueueStorage


@dataclass
class MemoryStorage(QueueStorage):
    """
    Storage that keeps the record in process memory.

    Nothing survives a restart. Each record dict is copied on the way in
    and out, so callers never share the stored list or its records.
    """
    records: list[dict[str, Any]] = field(default_factory=list)

    # Number of save() calls, useful to assert persistence happened
    save_count: int = field(default=0, init=False)

    async def load(self) -> list[dict[str, Any]]:
        return [dict(r) if isinstance(r, dict) else r for r in self.records]

    async def save(self, records: list[dict[str, Any]]) -> None:
        self.records = [dict(r) for r in records]
        self.save_count += 1

    async def clear(self) -> None:
        self.records = []
