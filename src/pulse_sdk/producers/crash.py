"""Crash capture through the interpreter's exception hooks."""

from __future__ import annotations

import asyncio
import logging
import sys
import threading
import traceback
from typing import Any, Callable

from ..queue.events import EventKind, epoch_ms


logger = logging.getLogger(__name__)

Emit = Callable[[EventKind, dict], Any]


class CrashReporter:
    """
    Records unhandled exceptions as crash events.

    Hooks sys.excepthook (fatal), threading.excepthook and the asyncio loop
    exception handler (non-fatal). The previous handlers are always called
    after the crash is recorded and are restored by uninstall().
    """

    def __init__(
        self,
        emit: Emit,
        session_id: Callable[[], str | None] = lambda: None,
        clock: Callable[[], int] = epoch_ms,
    ):
        self._emit = emit
        self._session_id = session_id
        self._clock = clock
        self._installed = False
        self._loop: asyncio.AbstractEventLoop | None = None
        self._prev_excepthook = None
        self._prev_thread_excepthook = None
        self._prev_loop_handler = None

    @property
    def installed(self) -> bool:
        return self._installed

    def install(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        if self._installed:
            return

        self._prev_excepthook = sys.excepthook
        sys.excepthook = self._excepthook

        self._prev_thread_excepthook = threading.excepthook
        threading.excepthook = self._thread_excepthook

        if loop is not None:
            self._loop = loop
            self._prev_loop_handler = loop.get_exception_handler()
            loop.set_exception_handler(self._loop_exception_handler)

        self._installed = True
        logger.debug("Crash reporter installed")

    def uninstall(self) -> None:
        if not self._installed:
            return

        sys.excepthook = self._prev_excepthook
        threading.excepthook = self._prev_thread_excepthook
        if self._loop is not None and not self._loop.is_closed():
            self._loop.set_exception_handler(self._prev_loop_handler)

        self._loop = None
        self._installed = False
        logger.debug("Crash reporter uninstalled")

    def capture(self, exc: BaseException, *, is_fatal: bool) -> Any:
        """Record one exception as a crash event."""
        stack = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        crash = {
            "timestamp": self._clock(),
            "stackTrace": stack,
            "isFatal": is_fatal,
            "errorType": type(exc).__name__,
            "message": str(exc),
            "sessionId": self._session_id(),
        }
        logger.info(f"Crash captured and queued: {crash['errorType']} (fatal={is_fatal})")
        return self._emit(EventKind.CRASH, crash)

    def _excepthook(self, exc_type, exc, tb) -> None:
        if not issubclass(exc_type, KeyboardInterrupt):
            self.capture(exc.with_traceback(tb), is_fatal=True)
        self._prev_excepthook(exc_type, exc, tb)

    def _thread_excepthook(self, args) -> None:
        if args.exc_value is not None and not issubclass(args.exc_type, SystemExit):
            self.capture(args.exc_value, is_fatal=False)
        self._prev_thread_excepthook(args)

    def _loop_exception_handler(self, loop: asyncio.AbstractEventLoop, context: dict) -> None:
        exc = context.get("exception")
        if exc is not None:
            self.capture(exc, is_fatal=False)

        if self._prev_loop_handler is not None:
            self._prev_loop_handler(loop, context)
        else:
            loop.default_exception_handler(context)
