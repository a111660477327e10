"""Error taxonomy for the event queue and upload pipeline."""

from __future__ import annotations


class PulseError(Exception):
    """Base exception for pulse SDK errors."""
    pass


class StorageError(PulseError):
    """Persistence medium could not be read or written."""
    pass


class TransportError(PulseError):
    """No connectivity, DNS/TLS failure or request timeout."""
    pass


class ServerError(PulseError):
    """Collector answered with a non-2xx status."""

    def __init__(self, status_code: int, message: str | None = None):
        super().__init__(message or f"Upload failed with status: {status_code}")
        self.status_code = status_code


class SerializationError(PulseError):
    """Event payload cannot be encoded to the wire format."""

    def __init__(self, message: str, event_id: str | None = None):
        super().__init__(message)
        self.event_id = event_id
