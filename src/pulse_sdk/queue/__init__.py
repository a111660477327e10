"""Persisted event queue and batched upload pipeline."""

from .events import EventKind, QueuedEvent
from .store import EventStore
from .retry import should_evict, RetryResult
from .uploader import BatchUploader, UploadOutcome
from .scheduler import UploadScheduler

__all__ = [
    "EventKind",
    "QueuedEvent",
    "EventStore",
    "should_evict",
    "RetryResult",
    "BatchUploader",
    "UploadOutcome",
    "UploadScheduler",
]
