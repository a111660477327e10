"""Fakes for driving the queue pipeline deterministically.

ManualTimer replaces wall-clock timers with virtual time, FakeClock gives
stable enqueue timestamps, and the storage/transport/probe fakes script
failures without touching disk or network.
"""

from __future__ import annotations

import asyncio
import itertools
import json
from dataclasses import dataclass, field
from typing import Any, Callable

from pulse_sdk.config import UploadConfig
from pulse_sdk.errors import ServerError, StorageError, TransportError
from pulse_sdk.queue.connectivity import ConnectivityProbe
from pulse_sdk.queue.storage.memory import MemoryStorage
from pulse_sdk.queue.timer import Timer
from pulse_sdk.queue.transport import UploadTransport


COLLECTOR_URL = "https://collector.example.com/upload"


class FakeClock:
    """Epoch-ms clock that only moves when told to."""

    def __init__(self, start: int = 1_700_000_000_000):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


def sequential_ids(prefix: str = "e") -> Callable[[], str]:
    counter = itertools.count(1)
    return lambda: f"{prefix}{next(counter)}"


@dataclass
class ManualHandle:
    when: float
    seq: int
    callback: Callable[[], None]
    cancelled: bool = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualTimer(Timer):
    """Virtual-time timer: callbacks fire only inside advance()."""

    def __init__(self):
        self.now = 0.0
        self._seq = itertools.count()
        self._handles: list[ManualHandle] = []

    def call_later(self, delay: float, callback: Callable[[], None]) -> ManualHandle:
        handle = ManualHandle(self.now + delay, next(self._seq), callback)
        self._handles.append(handle)
        return handle

    @property
    def pending(self) -> int:
        return sum(1 for h in self._handles if not h.cancelled)

    def advance(self, seconds: float) -> None:
        target = self.now + seconds
        while True:
            due = [h for h in self._handles if not h.cancelled and h.when <= target]
            if not due:
                break
            handle = min(due, key=lambda h: (h.when, h.seq))
            self._handles.remove(handle)
            self.now = handle.when
            handle.callback()
        self._handles = [h for h in self._handles if not h.cancelled]
        self.now = target


@dataclass
class FailingStorage(MemoryStorage):
    """MemoryStorage whose load/save can be switched to fail."""
    fail_load: bool = False
    fail_save: bool = False
    fail_clear: bool = False

    async def load(self) -> list[dict[str, Any]]:
        if self.fail_load:
            raise StorageError("storage offline (load)")
        return await super().load()

    async def save(self, records: list[dict[str, Any]]) -> None:
        if self.fail_save:
            raise StorageError("storage offline (save)")
        await super().save(records)

    async def clear(self) -> None:
        if self.fail_clear:
            raise StorageError("storage offline (clear)")
        await super().clear()


@dataclass
class YieldingStorage(MemoryStorage):
    """MemoryStorage that suspends on every call, to expose interleavings."""

    async def load(self) -> list[dict[str, Any]]:
        await asyncio.sleep(0)
        return await super().load()

    async def save(self, records: list[dict[str, Any]]) -> None:
        await asyncio.sleep(0)
        await super().save(records)


class StaticProbe(ConnectivityProbe):
    def __init__(self, online: bool = True):
        self.online = online
        self.calls = 0

    async def is_online(self) -> bool:
        self.calls += 1
        return self.online


@dataclass
class RecordingTransport(UploadTransport):
    """
    Transport that records decoded batch bodies.

    `fail_on` holds the 0-based indexes of send() calls that fail;
    `status` chooses ServerError(status) over TransportError.
    """
    fail_on: set[int] = field(default_factory=set)
    fail_all: bool = False
    status: int | None = 503
    gate: asyncio.Event | None = None
    bodies: list[dict] = field(default_factory=list)
    configs: list[UploadConfig] = field(default_factory=list)
    active: int = 0
    max_active: int = 0
    closed: bool = False

    @property
    def calls(self) -> int:
        return len(self.bodies)

    def sent_ids(self, call: int) -> list[str]:
        return [e["id"] for e in self.bodies[call]["events"]]

    async def send(self, body: str, config: UploadConfig) -> None:
        index = len(self.bodies)
        self.bodies.append(json.loads(body))
        self.configs.append(config)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.gate is not None:
                await self.gate.wait()
            if self.fail_all or index in self.fail_on:
                if self.status is None:
                    raise TransportError("connection refused")
                raise ServerError(self.status)
        finally:
            self.active -= 1

    async def aclose(self) -> None:
        self.closed = True
