"""Pydantic models for persisted queue records."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .events import EventKind


class EventRecord(BaseModel):
    """
    One queued event as it is persisted and sent on the wire.

    Field names follow the collector's JSON contract; attribute names are
    the Python spelling.
    """

    model_config = ConfigDict(
        populate_by_name=True,
        extra="ignore",
        json_schema_extra={
            "example": {
                "id": "event_1718000000000_k3j9x0a1b2c3",
                "timestamp": 1718000000000,
                "type": "crash",
                "data": {"stackTrace": "Traceback ...", "isFatal": True},
                "retryCount": 0,
                "maxRetries": 3,
            }
        },
    )

    id: str = Field(..., min_length=1, description="Unique event id")
    enqueued_at: int = Field(..., ge=0, alias="timestamp", description="Epoch milliseconds at append")
    kind: EventKind = Field(..., alias="type")
    data: Any = Field(None, description="Producer payload, never interpreted")
    retry_count: int = Field(0, ge=0, alias="retryCount")
    max_retries: int = Field(..., ge=0, alias="maxRetries")

    @model_validator(mode="after")
    def _retry_count_within_limit(self) -> "EventRecord":
        if self.retry_count > self.max_retries:
            raise ValueError(
                f"retryCount {self.retry_count} exceeds maxRetries {self.max_retries}"
            )
        return self
