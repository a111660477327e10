"""Decides when upload runs happen and keeps them single-flight."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from .timer import LoopTimer, Timer, TimerHandle
from .uploader import UploadOutcome


logger = logging.getLogger(__name__)


class UploadScheduler:
    """
    Starts upload runs on three kinds of trigger:

    - debounced: notify() after every append; the run starts once
      `debounce_delay` seconds pass without another notification
    - periodic: every `upload_interval` seconds while started
    - manual: flush(), which runs immediately

    At most one run is in flight. A trigger arriving during a run is
    coalesced into a single follow-up run that starts when the current one
    finishes; flush() callers in that situation await the follow-up.

    Time is read only through the injected Timer, so tests can drive the
    scheduler with a virtual clock.
    """

    def __init__(
        self,
        upload: Callable[[], Awaitable[UploadOutcome]],
        *,
        debounce_delay: float = 2.0,
        upload_interval: float = 30.0,
        timer: Timer | None = None,
    ):
        self._upload = upload
        self.debounce_delay = debounce_delay
        self.upload_interval = upload_interval
        self._timer = timer or LoopTimer()

        self._debounce_handle: TimerHandle | None = None
        self._interval_handle: TimerHandle | None = None
        self._inflight: asyncio.Task | None = None
        self._rerun = False
        self._started = False
        self._stopped = False
        self._last_outcome: UploadOutcome | None = None
        self._stats = {
            "runs": 0,
            "coalesced": 0,
            "debounced_triggers": 0,
            "periodic_triggers": 0,
            "manual_triggers": 0,
            "errors": 0,
        }

    @property
    def is_running(self) -> bool:
        """True while an upload run is in flight."""
        return self._inflight is not None and not self._inflight.done()

    @property
    def is_stopped(self) -> bool:
        return self._stopped

    @property
    def last_outcome(self) -> UploadOutcome | None:
        return self._last_outcome

    def start(self) -> None:
        """Start the periodic trigger."""
        if self._stopped:
            raise RuntimeError("Scheduler already stopped")
        if self._started:
            return
        self._started = True
        self._schedule_interval()
        logger.info(
            f"Upload scheduler started (interval={self.upload_interval}s, debounce={self.debounce_delay}s)"
        )

    async def stop(self) -> None:
        """
        Cancel pending timers and wait for an in-flight run to finish.

        The in-flight run is not interrupted; no follow-up run is started.
        """
        self._stopped = True
        self._started = False
        self._cancel_debounce()
        if self._interval_handle is not None:
            self._interval_handle.cancel()
            self._interval_handle = None

        await self.wait_idle()
        logger.info(f"Upload scheduler stopped. Stats: {self._stats}")

    def notify(self) -> None:
        """Signal new data; (re)starts the debounce window."""
        if self._stopped:
            return
        self._cancel_debounce()
        self._debounce_handle = self._timer.call_later(self.debounce_delay, self._on_debounce)

    async def flush(self) -> UploadOutcome:
        """Run an upload now (or join the follow-up of the current run)."""
        self._cancel_debounce()
        self._stats["manual_triggers"] += 1
        task = self._trigger()
        return await asyncio.shield(task)

    async def wait_idle(self) -> None:
        """Wait until no run is in flight."""
        while self.is_running:
            await asyncio.shield(self._inflight)

    def reconfigure(
        self,
        *,
        debounce_delay: float | None = None,
        upload_interval: float | None = None,
    ) -> None:
        """Change timings; the periodic timer restarts with the new interval."""
        if debounce_delay is not None:
            self.debounce_delay = debounce_delay
        if upload_interval is not None and upload_interval != self.upload_interval:
            self.upload_interval = upload_interval
            if self._started:
                if self._interval_handle is not None:
                    self._interval_handle.cancel()
                self._schedule_interval()

    @property
    def stats(self) -> dict:
        """Get scheduler statistics."""
        return {
            **self._stats,
            "in_flight": self.is_running,
        }

    def _on_debounce(self) -> None:
        self._debounce_handle = None
        self._stats["debounced_triggers"] += 1
        self._trigger()

    def _on_interval(self) -> None:
        self._interval_handle = None
        if not self._started:
            return
        self._stats["periodic_triggers"] += 1
        self._trigger()
        self._schedule_interval()

    def _schedule_interval(self) -> None:
        self._interval_handle = self._timer.call_later(self.upload_interval, self._on_interval)

    def _cancel_debounce(self) -> None:
        if self._debounce_handle is not None:
            self._debounce_handle.cancel()
            self._debounce_handle = None

    def _trigger(self) -> asyncio.Task:
        if self.is_running:
            self._rerun = True
            self._stats["coalesced"] += 1
            return self._inflight

        self._inflight = asyncio.get_running_loop().create_task(self._drive())
        return self._inflight

    async def _drive(self) -> UploadOutcome:
        while True:
            self._rerun = False
            outcome = await self._run_once()
            if not self._rerun or self._stopped:
                return outcome

    async def _run_once(self) -> UploadOutcome:
        self._stats["runs"] += 1
        try:
            outcome = await self._upload()
        except Exception as e:
            logger.exception(f"Upload run failed: {e}")
            self._stats["errors"] += 1
            outcome = UploadOutcome(error=e)
        self._last_outcome = outcome
        return outcome
