"""Durable, capacity-bounded event queue."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Iterable

from pydantic import ValidationError

from .events import EventKind, QueuedEvent, copy_payload, epoch_ms, new_event_id
from .retry import RetryResult, should_evict
from .storage.base import QueueStorage


logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 1000


class EventStore:
    """
    Ordered list of queued events, persisted through a QueueStorage backend.

    The store is the single source of truth for what is still undelivered.
    Every mutation is a read-modify-write of the whole persisted record and
    runs under one asyncio.Lock, so concurrent producers and the upload run
    never interleave and lose updates.

    A mutation only becomes visible in memory after the backend accepted
    it: if `save()` raises StorageError the in-memory view is untouched and
    the error propagates to the caller. The store never retries internally.

    Invariants:
    - ids are unique across the events currently held
    - at most `capacity` events are held; appends drop the oldest first
    - order is enqueue order, kept across reloads and retries
    - an event whose retry count reaches its max_retries is removed in the
      same operation that bumped it
    """

    def __init__(
        self,
        storage: QueueStorage,
        *,
        capacity: int = DEFAULT_CAPACITY,
        max_retries: int = 3,
        clock: Callable[[], int] = epoch_ms,
        id_factory: Callable[[], str] = new_event_id,
    ):
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self.storage = storage
        self.capacity = capacity
        # Limit snapshotted onto each appended event
        self.max_retries = max_retries
        self._clock = clock
        self._id_factory = id_factory

        self._events: list[QueuedEvent] | None = None
        self._lock = asyncio.Lock()
        self._stats = {
            "appended": 0,
            "removed": 0,
            "retried": 0,
            "evicted_retries": 0,
            "dropped_capacity": 0,
            "skipped_corrupted": 0,
        }

    def new_id(self) -> str:
        """Reserve an id for an append that will happen later."""
        return self._id_factory()

    async def load(self) -> int:
        """Load persisted events (idempotent). Returns the queue size."""
        async with self._lock:
            await self._ensure_loaded()
            return len(self._events)

    async def append(
        self,
        kind: EventKind | str,
        payload: Any,
        *,
        event_id: str | None = None,
    ) -> str:
        """
        Queue a new event and persist the updated collection.

        Args:
            kind: Event category
            payload: JSON-encodable producer data (copied, never interpreted)
            event_id: Pre-reserved id from new_id(); generated when omitted

        Returns:
            The new event's id

        Raises:
            SerializationError: If the payload is not JSON-encodable
            StorageError: If the backend could not persist the append
            ValueError: If kind is unknown or event_id is already queued
        """
        kind = EventKind(kind)
        data = copy_payload(payload)

        async with self._lock:
            await self._ensure_loaded()
            current_ids = {e.id for e in self._events}

            if event_id is None:
                event_id = self._id_factory()
                while event_id in current_ids:
                    event_id = self._id_factory()
            elif event_id in current_ids:
                raise ValueError(f"Event id already queued: {event_id}")

            event = QueuedEvent(
                id=event_id,
                enqueued_at=self._clock(),
                kind=kind,
                payload=data,
                retry_count=0,
                max_retries=self.max_retries,
            )

            updated = self._events + [event]
            overflow = len(updated) - self.capacity
            if overflow > 0:
                updated = updated[overflow:]

            await self._commit(updated)

            self._stats["appended"] += 1
            if overflow > 0:
                self._stats["dropped_capacity"] += overflow
                logger.warning(f"Queue at capacity ({self.capacity}), dropped {overflow} oldest event(s)")

            logger.debug(f"Event {event.id} ({kind.value}) queued, size={len(updated)}")
            return event.id

    async def read_all(self) -> list[QueuedEvent]:
        """Ordered snapshot of the queue. Does not mutate."""
        async with self._lock:
            await self._ensure_loaded()
            return list(self._events)

    async def remove_by_ids(self, ids: Iterable[str]) -> list[str]:
        """
        Remove exactly the named events, keeping the order of the rest.

        Returns:
            Ids that were actually present and removed, in queue order
        """
        targets = set(ids)
        async with self._lock:
            await self._ensure_loaded()
            removed = [e.id for e in self._events if e.id in targets]
            if not removed:
                return []

            await self._commit([e for e in self._events if e.id not in targets])
            self._stats["removed"] += len(removed)
            return removed

    async def bump_retry_or_evict(self, ids: Iterable[str]) -> RetryResult:
        """
        Record one failed delivery attempt for each named event.

        Events reaching their max_retries are removed; the others stay in
        place with retry_count incremented.
        """
        targets = set(ids)
        result = RetryResult()
        async with self._lock:
            await self._ensure_loaded()
            updated: list[QueuedEvent] = []

            for event in self._events:
                if event.id not in targets:
                    updated.append(event)
                    continue

                bumped = event.with_retry()
                if should_evict(bumped.retry_count, bumped.max_retries):
                    result.evicted.append(event.id)
                else:
                    updated.append(bumped)
                    result.retried.append(event.id)

            if not result.retried and not result.evicted:
                return result

            await self._commit(updated)

        self._stats["retried"] += len(result.retried)
        self._stats["evicted_retries"] += len(result.evicted)
        for event_id in result.evicted:
            logger.warning(f"Event {event_id} exceeded max retries, removing from queue")
        return result

    async def size(self) -> int:
        async with self._lock:
            await self._ensure_loaded()
            return len(self._events)

    async def clear(self) -> None:
        """Drop every queued event. Irreversible."""
        async with self._lock:
            await self.storage.clear()
            dropped = len(self._events) if self._events is not None else 0
            self._events = []
        logger.info(f"Event queue cleared ({dropped} event(s) dropped)")

    @property
    def stats(self) -> dict:
        """Get store statistics."""
        return {
            **self._stats,
            "size": len(self._events) if self._events is not None else None,
            "capacity": self.capacity,
        }

    async def _ensure_loaded(self) -> None:
        """Populate the in-memory view from storage (caller must hold lock)."""
        if self._events is not None:
            return

        records = await self.storage.load()
        events: list[QueuedEvent] = []
        seen: set[str] = set()

        for index, record in enumerate(records):
            try:
                event = QueuedEvent.from_record(record)
            except ValidationError as e:
                self._stats["skipped_corrupted"] += 1
                logger.warning(f"Skipping corrupted queue record {index}: {e.error_count()} error(s)")
                continue

            if event.id in seen:
                self._stats["skipped_corrupted"] += 1
                logger.warning(f"Skipping duplicate queue record {index} (id={event.id})")
                continue

            seen.add(event.id)
            events.append(event)

        overflow = len(events) - self.capacity
        if overflow > 0:
            events = events[overflow:]
            self._stats["dropped_capacity"] += overflow
            logger.warning(f"Persisted queue exceeds capacity ({self.capacity}), dropped {overflow} oldest event(s)")

        self._events = events
        logger.debug(f"Loaded {len(events)} queued event(s) from storage")

    async def _commit(self, events: list[QueuedEvent]) -> None:
        """Persist, then publish in memory (caller must hold lock)."""
        await self.storage.save([e.to_record() for e in events])
        self._events = events
