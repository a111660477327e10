"""Tests for crash capture."""

import asyncio
import sys
import threading

import pytest

from pulse_sdk.producers.crash import CrashReporter
from pulse_sdk.queue.events import EventKind


class Recorder:
    def __init__(self):
        self.events = []

    def __call__(self, kind, payload):
        self.events.append((kind, payload))


def raise_and_catch(exc):
    try:
        raise exc
    except type(exc) as e:
        return e


@pytest.fixture
def emit():
    return Recorder()


@pytest.fixture
def previous_hooks(monkeypatch):
    calls = []
    monkeypatch.setattr(sys, "excepthook", lambda *args: calls.append(("sys", args)))
    monkeypatch.setattr(threading, "excepthook", lambda args: calls.append(("thread", args)))
    return calls


class TestCrashReporter:
    def test_capture_payload(self, emit, clock):
        reporter = CrashReporter(emit, session_id=lambda: "session_1", clock=clock)
        exc = raise_and_catch(ValueError("bad state"))

        reporter.capture(exc, is_fatal=True)

        kind, payload = emit.events[0]
        assert kind == EventKind.CRASH
        assert payload["timestamp"] == clock.now
        assert payload["isFatal"] is True
        assert payload["errorType"] == "ValueError"
        assert payload["message"] == "bad state"
        assert payload["sessionId"] == "session_1"
        assert "raise_and_catch" in payload["stackTrace"]

    def test_excepthook_records_fatal_and_chains(self, emit, clock, previous_hooks):
        reporter = CrashReporter(emit, clock=clock)
        reporter.install()
        try:
            exc = raise_and_catch(RuntimeError("boom"))
            sys.excepthook(RuntimeError, exc, exc.__traceback__)
        finally:
            reporter.uninstall()

        assert emit.events[0][1]["isFatal"] is True
        assert previous_hooks[0][0] == "sys"

    def test_keyboard_interrupt_not_recorded(self, emit, clock, previous_hooks):
        reporter = CrashReporter(emit, clock=clock)
        reporter.install()
        try:
            exc = raise_and_catch(KeyboardInterrupt())
            sys.excepthook(KeyboardInterrupt, exc, exc.__traceback__)
        finally:
            reporter.uninstall()

        assert emit.events == []
        assert len(previous_hooks) == 1

    def test_thread_exception_recorded_non_fatal(self, emit, clock, previous_hooks):
        reporter = CrashReporter(emit, clock=clock)
        reporter.install()
        try:
            def worker():
                raise OSError("disk gone")

            thread = threading.Thread(target=worker)
            thread.start()
            thread.join()
        finally:
            reporter.uninstall()

        assert emit.events[0][1]["isFatal"] is False
        assert emit.events[0][1]["errorType"] == "OSError"
        assert previous_hooks[0][0] == "thread"

    def test_uninstall_restores_hooks(self, emit, previous_hooks):
        original = sys.excepthook
        reporter = CrashReporter(emit)
        reporter.install()
        assert sys.excepthook is not original
        reporter.uninstall()

        assert sys.excepthook is original
        assert not reporter.installed

    @pytest.mark.asyncio
    async def test_loop_exception_handler(self, emit, clock):
        loop = asyncio.get_running_loop()
        handled = []
        loop.set_exception_handler(lambda lp, context: handled.append(context))

        reporter = CrashReporter(emit, clock=clock)
        reporter.install(loop)
        try:
            loop.call_exception_handler({
                "message": "Task exception was never retrieved",
                "exception": raise_and_catch(ValueError("lost")),
            })
        finally:
            reporter.uninstall()
            loop.set_exception_handler(None)

        assert emit.events[0][1]["message"] == "lost"
        assert emit.events[0][1]["isFatal"] is False
        assert handled[0]["message"] == "Task exception was never retrieved"
