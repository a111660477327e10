"""Sequential batched upload of the queue contents."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable

from ..config import UploadConfig
from ..errors import SerializationError, ServerError, StorageError, TransportError
from .connectivity import AlwaysOnline, ConnectivityProbe
from .events import QueuedEvent, encode_json, epoch_ms
from .store import EventStore
from .transport import UploadTransport


logger = logging.getLogger(__name__)


@dataclass
class UploadOutcome:
    """Summary of one upload run."""
    delivered: int = 0
    retried: int = 0
    evicted: int = 0
    batches_sent: int = 0

    # Why the run did nothing: "empty" | "offline"
    skipped: str | None = None

    # First error encountered, if any
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def is_noop(self) -> bool:
        """True when the run touched neither the network nor the store."""
        return (
            self.batches_sent == 0
            and self.delivered == 0
            and self.retried == 0
            and self.evicted == 0
            and self.error is None
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "delivered": self.delivered,
            "retried": self.retried,
            "evicted": self.evicted,
            "batches_sent": self.batches_sent,
            "skipped": self.skipped,
            "error": str(self.error) if self.error else None,
        }


def partition(events: list[QueuedEvent], batch_size: int) -> list[list[QueuedEvent]]:
    """Split events into consecutive, order-preserving batches."""
    return [events[i:i + batch_size] for i in range(0, len(events), batch_size)]


@dataclass
class _EncodedBatch:
    body: str
    ids: list[str]
    unencodable: list[str] = field(default_factory=list)


class BatchUploader:
    """
    Delivers the queue to the collector in ordered batches.

    Batches go out one at a time, oldest first. A successful batch is
    removed from the store before the next is attempted; a failed batch
    has its retry counts bumped and ends the run, so newer events never
    overtake older ones that are still retryable.

    run() never raises: every failure is reported in the UploadOutcome.
    """

    def __init__(
        self,
        transport: UploadTransport,
        probe: ConnectivityProbe | None = None,
        clock: Callable[[], int] = epoch_ms,
    ):
        self.transport = transport
        self.probe = probe or AlwaysOnline()
        self._clock = clock
        self._stats = {
            "runs": 0,
            "batches_sent": 0,
            "batches_failed": 0,
            "delivered": 0,
            "retried": 0,
            "evicted": 0,
        }

    async def run(self, store: EventStore, config: UploadConfig) -> UploadOutcome:
        """Upload everything currently queued."""
        outcome = UploadOutcome()
        self._stats["runs"] += 1
        try:
            await self._run(store, config, outcome)
        except Exception as e:
            logger.exception(f"Upload run aborted: {e}")
            if outcome.error is None:
                outcome.error = e

        self._stats["batches_sent"] += outcome.batches_sent
        self._stats["delivered"] += outcome.delivered
        self._stats["retried"] += outcome.retried
        self._stats["evicted"] += outcome.evicted
        return outcome

    async def _run(self, store: EventStore, config: UploadConfig, outcome: UploadOutcome) -> None:
        try:
            events = await store.read_all()
        except StorageError as e:
            logger.error(f"Cannot read event queue: {e}")
            outcome.error = e
            return

        if not events:
            outcome.skipped = "empty"
            return

        if not await self._is_online():
            logger.info("No internet connection, skipping upload")
            outcome.skipped = "offline"
            return

        for batch in partition(events, config.batch_size):
            encoded = self._encode(batch)

            if encoded.unencodable:
                if not await self._evict_unencodable(store, encoded.unencodable, outcome):
                    return

            if not encoded.ids:
                continue

            try:
                await self.transport.send(encoded.body, config)
            except Exception as e:
                # Any failure to deliver counts as an attempt for the whole batch
                if isinstance(e, (TransportError, ServerError)):
                    logger.warning(f"Batch upload failed ({len(encoded.ids)} events): {e}")
                else:
                    logger.exception(f"Batch upload failed unexpectedly ({len(encoded.ids)} events): {e}")
                self._stats["batches_failed"] += 1
                outcome.error = outcome.error or e
                await self._record_failure(store, encoded.ids, outcome)
                return

            outcome.batches_sent += 1
            try:
                removed = await store.remove_by_ids(encoded.ids)
            except StorageError as e:
                # Delivered but still queued: the next run re-sends them
                logger.error(f"Batch delivered but could not be removed from queue: {e}")
                outcome.error = outcome.error or e
                return
            outcome.delivered += len(removed)

        if outcome.delivered:
            logger.info(f"Successfully uploaded {outcome.delivered} events")

    def _encode(self, batch: list[QueuedEvent]) -> _EncodedBatch:
        """Encode a batch body, setting aside events that cannot be encoded."""
        records = []
        ids = []
        unencodable = []

        for event in batch:
            record = event.to_record()
            try:
                encode_json(record)
            except SerializationError as e:
                logger.error(f"Event {event.id} cannot be encoded, evicting: {e}")
                unencodable.append(event.id)
                continue
            records.append(record)
            ids.append(event.id)

        body = encode_json({"events": records, "timestamp": self._clock()}) if records else ""
        return _EncodedBatch(body=body, ids=ids, unencodable=unencodable)

    async def _evict_unencodable(self, store: EventStore, ids: list[str], outcome: UploadOutcome) -> bool:
        try:
            removed = await store.remove_by_ids(ids)
        except StorageError as e:
            logger.error(f"Could not evict unencodable events: {e}")
            outcome.error = outcome.error or e
            return False
        outcome.evicted += len(removed)
        if outcome.error is None:
            outcome.error = SerializationError(f"{len(removed)} event(s) could not be encoded", event_id=ids[0])
        return True

    async def _record_failure(self, store: EventStore, ids: list[str], outcome: UploadOutcome) -> None:
        try:
            result = await store.bump_retry_or_evict(ids)
        except StorageError as e:
            logger.error(f"Could not record failed attempt: {e}")
            return
        outcome.retried += len(result.retried)
        outcome.evicted += len(result.evicted)

    async def _is_online(self) -> bool:
        try:
            return await self.probe.is_online()
        except Exception as e:
            logger.warning(f"Connectivity probe error, assuming offline: {e}")
            return False

    @property
    def stats(self) -> dict:
        """Get uploader statistics."""
        return dict(self._stats)
