"""
Pulse SDK - offline-first telemetry buffering

Buffers telemetry events produced on an unreliable client device and
delivers them to a remote collector:
- Durable, capacity-bounded event queue (survives restarts)
- Ordered batch uploads with per-event retry and eviction
- Debounced, periodic and manual upload triggers, never in parallel
- Producers for crashes, network requests and sessions
"""

from .client import PulseClient
from .config import PulseConfig, UploadConfig, StorageConfig
from .errors import PulseError, StorageError, TransportError, ServerError, SerializationError
from .queue import EventKind, QueuedEvent, UploadOutcome

__version__ = "0.1.0"

__all__ = [
    "PulseClient",
    "PulseConfig",
    "UploadConfig",
    "StorageConfig",
    "PulseError",
    "StorageError",
    "TransportError",
    "ServerError",
    "SerializationError",
    "EventKind",
    "QueuedEvent",
    "UploadOutcome",
]
