"""Network request tracking as an explicit httpx transport middleware."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable

import httpx

from ..queue.events import EventKind, epoch_ms


logger = logging.getLogger(__name__)

Emit = Callable[[EventKind, dict], Any]

MAX_TRACKED_REQUESTS = 1000


def _content_length(headers: httpx.Headers) -> int:
    try:
        return int(headers.get("content-length", 0))
    except ValueError:
        return 0


class TrackingTransport(httpx.AsyncBaseTransport):
    """
    Transport wrapper that reports every request to a NetworkTracker.

    Pass it to the host's own client:

        client = httpx.AsyncClient(transport=tracker.wrap())

    Errors raised by the inner transport are recorded and re-raised
    unchanged.
    """

    def __init__(self, tracker: NetworkTracker, inner: httpx.AsyncBaseTransport):
        self.tracker = tracker
        self._inner = inner

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        started_at = self.tracker.now()
        start = time.perf_counter()
        try:
            response = await self._inner.handle_async_request(request)
        except Exception as e:
            self.tracker.record(
                request,
                started_at=started_at,
                duration_ms=(time.perf_counter() - start) * 1000,
                error=e,
            )
            raise

        self.tracker.record(
            request,
            started_at=started_at,
            duration_ms=(time.perf_counter() - start) * 1000,
            response=response,
        )
        return response

    async def aclose(self) -> None:
        await self._inner.aclose()


class NetworkTracker:
    """
    Collects request timings and queues them as network events.

    Keeps the last MAX_TRACKED_REQUESTS requests in memory for stats.
    Recording is a no-op while the tracker is disabled.
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
        self._requests: list[dict[str, Any]] = []
        self.enabled = False

    def now(self) -> int:
        return self._clock()

    def start_tracking(self) -> None:
        self.enabled = True

    def stop_tracking(self) -> None:
        self.enabled = False

    def wrap(self, inner: httpx.AsyncBaseTransport | None = None) -> TrackingTransport:
        """Wrap a transport (a fresh AsyncHTTPTransport by default)."""
        return TrackingTransport(self, inner or httpx.AsyncHTTPTransport())

    def record(
        self,
        request: httpx.Request,
        *,
        started_at: int,
        duration_ms: float,
        response: httpx.Response | None = None,
        error: BaseException | None = None,
    ) -> dict[str, Any] | None:
        if not self.enabled:
            return None

        entry: dict[str, Any] = {
            "timestamp": started_at,
            "url": str(request.url),
            "method": request.method,
            "duration": round(duration_ms, 3),
            "isError": error is not None or (response is not None and response.status_code >= 400),
            "requestSize": _content_length(request.headers),
            "sessionId": self._session_id(),
        }
        if response is not None:
            entry["statusCode"] = response.status_code
            entry["responseSize"] = _content_length(response.headers)
        if error is not None:
            entry["errorMessage"] = str(error) or type(error).__name__

        self._requests.append(entry)
        if len(self._requests) > MAX_TRACKED_REQUESTS:
            self._requests = self._requests[-MAX_TRACKED_REQUESTS:]

        self._emit(EventKind.NETWORK, entry)
        logger.debug(f"Network request tracked: {entry['method']} {entry['url']}")
        return entry

    def get_requests(self) -> list[dict[str, Any]]:
        return list(self._requests)

    def get_network_stats(self) -> dict[str, float]:
        total = len(self._requests)
        errors = sum(1 for r in self._requests if r["isError"])
        latency = sum(r["duration"] for r in self._requests)
        return {
            "totalRequests": total,
            "errorCount": errors,
            "averageLatency": latency / total if total else 0,
            "errorPercentage": (errors / total) * 100 if total else 0,
        }
