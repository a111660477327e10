"""Base storage interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class QueueStorage(ABC):
    """
    Abstract base class for queue persistence.

    A backend holds a single named record: the full ordered list of queued
    event records. Every store mutation is a read-modify-write of that one
    record, so backends only need whole-record load/save.

    Backends raise StorageError when the medium is unavailable.
    """

    @abstractmethod
    async def load(self) -> list[dict[str, Any]]:
        """Load the persisted records (empty list if none were saved)."""
        ...

    @abstractmethod
    async def save(self, records: list[dict[str, Any]]) -> None:
        """Replace the persisted records with `records`."""
        ...

    @abstractmethod
    async def clear(self) -> None:
        """Delete the persisted record."""
        ...

    async def start(self) -> None:
        """Initialize the backend (called on startup)."""
        pass

    async def stop(self) -> None:
        """Release backend resources (called on shutdown)."""
        pass
