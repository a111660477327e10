"""Session lifecycle events."""

from __future__ import annotations

import logging
import uuid
from typing import Any, Callable

from ..queue.events import EventKind, epoch_ms


logger = logging.getLogger(__name__)

Emit = Callable[[EventKind, dict], Any]


def new_session_id(clock: Callable[[], int] = epoch_ms) -> str:
    return f"session_{clock()}_{uuid.uuid4().hex[:9]}"


class SessionTracker:
    """
    Tracks the current app session and records its start and end.

    User identity and custom attributes set on the tracker are attached to
    the session events and exposed to other producers via `session_id`.
    """

    def __init__(
        self,
        emit: Emit,
        clock: Callable[[], int] = epoch_ms,
        device: dict[str, Any] | None = None,
    ):
        self._emit = emit
        self._clock = clock
        self.device = dict(device or {})
        self.session_id: str = new_session_id(clock)
        self.start_time: int | None = None
        self.user_id: str | None = None
        self.custom_attributes: dict[str, Any] = {}
        self._ended = False

    @property
    def active(self) -> bool:
        return self.start_time is not None

    def start(self) -> None:
        """Begin a session (a fresh id if a previous one already ended)."""
        if self.active:
            return
        if self._ended:
            self.session_id = new_session_id(self._clock)
        self._ended = False
        self.start_time = self._clock()
        self._emit(EventKind.SESSION, {**self.current_session(), "phase": "start"})
        logger.debug(f"Session {self.session_id} started")

    def end(self) -> None:
        """Close the session and record its duration."""
        if not self.active:
            return
        end_time = self._clock()
        payload = {
            **self.current_session(),
            "phase": "end",
            "endTime": end_time,
            "duration": end_time - self.start_time,
        }
        self.start_time = None
        self._ended = True
        self._emit(EventKind.SESSION, payload)
        logger.debug(f"Session {self.session_id} ended")

    def set_user(self, user_id: str, attributes: dict[str, Any] | None = None) -> None:
        self.user_id = user_id
        self.update_custom_attributes({"userId": user_id, **(attributes or {})})

    def update_custom_attributes(self, attributes: dict[str, Any]) -> None:
        self.custom_attributes.update(attributes)

    def current_session(self) -> dict[str, Any]:
        session = {
            "sessionId": self.session_id,
            "startTime": self.start_time,
            "userId": self.user_id,
            "customAttributes": dict(self.custom_attributes),
        }
        if self.device:
            session["device"] = dict(self.device)
        return session
