"""Timer abstraction driving the upload scheduler."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Callable, Protocol


class TimerHandle(Protocol):
    def cancel(self) -> None:
        ...


class Timer(ABC):
    """Schedules plain callbacks after a delay (seconds)."""

    @abstractmethod
    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        ...


class LoopTimer(Timer):
    """Timer backed by the running asyncio event loop."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        return asyncio.get_running_loop().call_later(delay, callback)
