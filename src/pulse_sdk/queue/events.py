"""Queued event types."""

from __future__ import annotations

import json
import time
import uuid
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any

from ..errors import SerializationError


class EventKind(str, Enum):
    """Category of a buffered telemetry record."""
    CRASH = "crash"
    PERFORMANCE = "performance"
    NETWORK = "network"
    SESSION = "session"
    CUSTOM = "custom"


def epoch_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def new_event_id() -> str:
    """Generate a queue-unique event id."""
    return f"event_{epoch_ms()}_{uuid.uuid4().hex[:12]}"


def encode_json(value: Any) -> str:
    """
    Encode a value with strict JSON rules (no NaN/Infinity, no custom objects).

    Raises:
        SerializationError: If the value cannot be encoded
    """
    try:
        return json.dumps(value, allow_nan=False, separators=(",", ":"))
    except (TypeError, ValueError) as e:
        raise SerializationError(f"Payload is not JSON-encodable: {e}") from e


def copy_payload(payload: Any) -> Any:
    """Return a detached, JSON-clean copy of a producer payload."""
    return json.loads(encode_json(payload))


@dataclass(frozen=True, slots=True)
class QueuedEvent:
    """
    One buffered telemetry record.

    Owned exclusively by the EventStore. `max_retries` is a snapshot of the
    configured limit at append time, so reconfiguration never changes the
    fate of events already queued.
    """
    id: str
    enqueued_at: int  # epoch ms
    kind: EventKind
    payload: Any
    retry_count: int = 0
    max_retries: int = 3

    def with_retry(self) -> QueuedEvent:
        """Copy of this event after one more failed delivery attempt."""
        return replace(self, retry_count=self.retry_count + 1)

    def to_record(self) -> dict[str, Any]:
        """Serialize to the persisted / wire record layout."""
        return {
            "id": self.id,
            "timestamp": self.enqueued_at,
            "type": self.kind.value,
            "data": self.payload,
            "retryCount": self.retry_count,
            "maxRetries": self.max_retries,
        }

    @classmethod
    def from_record(cls, record: Any) -> QueuedEvent:
        """
        Deserialize from a persisted record.

        Raises:
            pydantic.ValidationError: If the record is malformed
        """
        from .models import EventRecord

        model = EventRecord.model_validate(record)
        return cls(
            id=model.id,
            enqueued_at=model.enqueued_at,
            kind=model.kind,
            payload=model.data,
            retry_count=model.retry_count,
            max_retries=model.max_retries,
        )
