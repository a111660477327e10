"""Client facade - the ingestion API and management surface for host apps.

Flow:
1. Producers (crash hook, network transport, session tracker, host code)
   call ingest() / ingest_nowait()
2. The event is persisted in the EventStore and the scheduler is notified
3. The scheduler starts a debounced, periodic or manual upload run
4. The BatchUploader delivers batches and settles them in the store
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable

import httpx

from .config import PulseConfig, UploadConfig
from .errors import PulseError
from .producers import CrashReporter, NetworkTracker, SessionTracker, TrackingTransport
from .queue.connectivity import ConnectivityProbe, probe_for
from .queue.events import EventKind, copy_payload, epoch_ms, new_event_id
from .queue.scheduler import UploadScheduler
from .queue.storage import QueueStorage, create_storage
from .queue.store import EventStore
from .queue.timer import Timer
from .queue.transport import HttpTransport, UploadTransport
from .queue.uploader import BatchUploader, UploadOutcome


logger = logging.getLogger(__name__)


class PulseClient:
    """
    Buffers telemetry events on the device and uploads them in batches.

    Every collaborator can be injected (storage, transport, connectivity
    probe, timer, clock, id factory), which is how tests run the client
    against fake storage, a mocked collector and virtual time.

    Usage:
        async with PulseClient(PulseConfig.from_yaml("pulse.yaml")) as pulse:
            await pulse.track_event("checkout", {"items": 3})
    """

    def __init__(
        self,
        config: PulseConfig | None = None,
        *,
        storage: QueueStorage | None = None,
        transport: UploadTransport | None = None,
        probe: ConnectivityProbe | None = None,
        timer: Timer | None = None,
        clock: Callable[[], int] = epoch_ms,
        id_factory: Callable[[], str] = new_event_id,
    ):
        self.config = config or PulseConfig()
        if self.config.debug:
            logging.getLogger("pulse_sdk").setLevel(logging.DEBUG)

        self._clock = clock
        self.storage = storage or create_storage(self.config.storage)
        self.store = EventStore(
            self.storage,
            capacity=self.config.storage.capacity,
            max_retries=self.config.upload.max_retries,
            clock=clock,
            id_factory=id_factory,
        )
        self.transport = transport or HttpTransport()
        self.uploader = BatchUploader(self.transport, probe or probe_for(self.config.upload), clock=clock)
        self._probe_injected = probe is not None
        self._timer = timer
        self.scheduler = self._new_scheduler()

        self.session = SessionTracker(self._emit, clock=clock)
        self.crash_reporter = CrashReporter(self._emit, session_id=self._current_session_id, clock=clock)
        self.network = NetworkTracker(self._emit, session_id=self._current_session_id, clock=clock)

        self._loop: asyncio.AbstractEventLoop | None = None
        self._background: set[asyncio.Task] = set()
        self._started = False
        self._stats = {
            "ingested": 0,
            "ingest_failures": 0,
        }

    async def __aenter__(self) -> PulseClient:
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()

    @property
    def started(self) -> bool:
        return self._started

    async def start(self) -> None:
        """Load the persisted queue, start scheduling and enabled producers."""
        if self._started:
            logger.warning("Pulse client is already started")
            return

        logger.info("Starting pulse client...")
        self._loop = asyncio.get_running_loop()
        if self.scheduler.is_stopped:
            # Restart after stop(): a stopped scheduler cannot be reused
            self.scheduler = self._new_scheduler()
        await self.storage.start()
        size = await self.store.load()
        logger.info(f"Event queue loaded ({size} pending event(s))")

        self.scheduler.start()
        self._started = True

        producers = self.config.producers
        if producers.session_tracking:
            self.session.start()
        if producers.crash_reporting:
            self.crash_reporter.install(self._loop)
        if producers.network_tracking:
            self.network.start_tracking()

        await self.track_event("sdk_initialized", {
            "config": {
                "enableCrashReporting": producers.crash_reporting,
                "enableNetworkTracking": producers.network_tracking,
                "enableSessionTracking": producers.session_tracking,
            },
        })
        logger.info("Pulse client started")

    async def stop(self, flush: bool = False) -> None:
        """
        Stop producers and scheduling.

        Queued events stay persisted for the next start. With flush=True a
        final upload run is attempted first.
        """
        if not self._started:
            return

        self.session.end()
        self.crash_reporter.uninstall()
        self.network.stop_tracking()
        await self._drain_background()

        if flush:
            await self.scheduler.flush()
        await self.scheduler.stop()

        await self.transport.aclose()
        await self.storage.stop()
        self._started = False
        logger.info(f"Pulse client stopped. Stats: {self.stats}")

    # ------------------------------------------------------------------
    # Ingestion API
    # ------------------------------------------------------------------

    async def ingest(self, kind: EventKind | str, payload: Any) -> str:
        """
        Persist one event and schedule an upload. Never waits on the network.

        Raises:
            StorageError: Event was not queued (persistence unavailable)
            SerializationError: Payload is not JSON-encodable
        """
        try:
            event_id = await self.store.append(kind, payload)
        except PulseError:
            self._stats["ingest_failures"] += 1
            raise
        self._stats["ingested"] += 1
        self.scheduler.notify()
        return event_id

    def ingest_nowait(self, kind: EventKind | str, payload: Any) -> str:
        """
        Hand off an event without awaiting persistence. Thread-safe.

        The id is returned immediately; storage failures are logged and
        counted, not raised.

        Raises:
            RuntimeError: Client not started
            ValueError: Unknown event kind
            SerializationError: Payload is not JSON-encodable
        """
        loop = self._loop
        if loop is None or loop.is_closed():
            raise RuntimeError("Pulse client not started")

        kind = EventKind(kind)
        data = copy_payload(payload)
        event_id = self.store.new_id()

        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is loop:
            self._spawn(kind, data, event_id)
        else:
            loop.call_soon_threadsafe(self._spawn, kind, data, event_id)
        return event_id

    async def track_event(self, event_name: str, data: dict[str, Any] | None = None) -> str | None:
        """Queue a custom event. Ignored (with a warning) before start()."""
        if not self._started:
            logger.warning("Pulse client not started. Call start() first.")
            return None

        payload = {
            "eventName": event_name,
            "timestamp": self._clock(),
            "sessionId": self._current_session_id(),
            **(data or {}),
        }
        try:
            event_id = await self.ingest(EventKind.CUSTOM, payload)
        except PulseError as e:
            logger.error(f"Failed to track custom event {event_name}: {e}")
            return None

        logger.debug(f"Custom event tracked: {event_name}")
        return event_id

    async def set_user(self, user_id: str, attributes: dict[str, Any] | None = None) -> None:
        """Attach a user to the session and record a user_identified event."""
        if not self._started:
            logger.warning("Pulse client not started. Call start() first.")
            return

        self.session.set_user(user_id, attributes)
        await self.track_event("user_identified", {
            "userId": user_id,
            "attributes": dict(attributes or {}),
        })

    def network_transport(self, inner: httpx.AsyncBaseTransport | None = None) -> TrackingTransport:
        """Transport for host httpx clients whose requests should be tracked."""
        return self.network.wrap(inner)

    # ------------------------------------------------------------------
    # Management surface
    # ------------------------------------------------------------------

    async def queue_size(self) -> int:
        return await self.store.size()

    async def flush(self) -> UploadOutcome:
        """Upload now, respecting the single-flight guard."""
        return await self.scheduler.flush()

    async def clear(self) -> None:
        """Irreversibly drop every queued event without delivering it."""
        await self.store.clear()

    def configure(self, **changes: Any) -> UploadConfig:
        """
        Update upload settings at runtime.

        Accepts any UploadConfig field (server_url, api_key, batch_size,
        max_retries, upload_interval_seconds, debounce_delay_seconds, ...).
        A new max_retries applies to events appended afterwards only.
        """
        upload = self.config.upload.updated(**changes)
        self.config.upload = upload
        self.store.max_retries = upload.max_retries
        self.scheduler.reconfigure(
            debounce_delay=upload.debounce_delay_seconds,
            upload_interval=upload.upload_interval_seconds,
        )
        if "connectivity_url" in changes and not self._probe_injected:
            self.uploader.probe = probe_for(upload)

        logger.info(f"Upload configuration updated: {', '.join(sorted(changes))}")
        return upload

    @property
    def stats(self) -> dict:
        """Get client statistics."""
        return {
            **self._stats,
            "store": self.store.stats,
            "uploader": self.uploader.stats,
            "scheduler": self.scheduler.stats,
        }

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _new_scheduler(self) -> UploadScheduler:
        return UploadScheduler(
            self._run_upload,
            debounce_delay=self.config.upload.debounce_delay_seconds,
            upload_interval=self.config.upload.upload_interval_seconds,
            timer=self._timer,
        )

    async def _run_upload(self) -> UploadOutcome:
        return await self.uploader.run(self.store, self.config.upload)

    def _current_session_id(self) -> str | None:
        return self.session.session_id if self.session.active else None

    def _emit(self, kind: EventKind, payload: dict) -> str | None:
        """Producer entry point; never raises into the producer."""
        try:
            return self.ingest_nowait(kind, payload)
        except (PulseError, RuntimeError, ValueError) as e:
            self._stats["ingest_failures"] += 1
            logger.error(f"Failed to save {kind.value} event to offline queue: {e}")
            return None

    def _spawn(self, kind: EventKind, payload: Any, event_id: str) -> None:
        task = self._loop.create_task(self._append_in_background(kind, payload, event_id))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _append_in_background(self, kind: EventKind, payload: Any, event_id: str) -> None:
        try:
            await self.store.append(kind, payload, event_id=event_id)
        except (PulseError, ValueError) as e:
            self._stats["ingest_failures"] += 1
            logger.error(f"Failed to save event {event_id} to offline queue: {e}")
            return
        self._stats["ingested"] += 1
        self.scheduler.notify()

    async def _drain_background(self) -> None:
        """Wait for fire-and-forget appends, including ones they schedule."""
        while self._background:
            await asyncio.gather(*list(self._background))
