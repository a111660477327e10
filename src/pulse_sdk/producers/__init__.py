"""Built-in telemetry producers feeding the event queue."""

from .crash import CrashReporter
from .network import NetworkTracker, TrackingTransport
from .session import SessionTracker

__all__ = [
    "CrashReporter",
    "NetworkTracker",
    "TrackingTransport",
    "SessionTracker",
]
