"""Tests for network request tracking."""

import httpx
import pytest

from pulse_sdk.producers.network import MAX_TRACKED_REQUESTS, NetworkTracker
from pulse_sdk.queue.events import EventKind


class Recorder:
    def __init__(self):
        self.events = []

    def __call__(self, kind, payload):
        self.events.append((kind, payload))


def handler(request: httpx.Request) -> httpx.Response:
    if request.url.path == "/fail":
        return httpx.Response(500)
    if request.url.path == "/down":
        raise httpx.ConnectError("unreachable", request=request)
    return httpx.Response(200, content=b"hello")


@pytest.fixture
def emit():
    return Recorder()


@pytest.fixture
def tracker(emit, clock):
    tracker = NetworkTracker(emit, session_id=lambda: "session_1", clock=clock)
    tracker.start_tracking()
    return tracker


class TestTrackingTransport:
    @pytest.mark.asyncio
    async def test_successful_request_recorded(self, tracker, emit, clock):
        async with httpx.AsyncClient(transport=tracker.wrap(httpx.MockTransport(handler))) as client:
            response = await client.post("https://api.example.com/items", content=b"12345")

        assert response.status_code == 200
        kind, entry = emit.events[0]
        assert kind == EventKind.NETWORK
        assert entry["url"] == "https://api.example.com/items"
        assert entry["method"] == "POST"
        assert entry["statusCode"] == 200
        assert entry["isError"] is False
        assert entry["requestSize"] == 5
        assert entry["responseSize"] == 5
        assert entry["timestamp"] == clock.now
        assert entry["sessionId"] == "session_1"
        assert entry["duration"] >= 0

    @pytest.mark.asyncio
    async def test_error_status_flagged(self, tracker, emit):
        async with httpx.AsyncClient(transport=tracker.wrap(httpx.MockTransport(handler))) as client:
            await client.get("https://api.example.com/fail")

        assert emit.events[0][1]["isError"] is True
        assert emit.events[0][1]["statusCode"] == 500

    @pytest.mark.asyncio
    async def test_transport_error_recorded_and_reraised(self, tracker, emit):
        async with httpx.AsyncClient(transport=tracker.wrap(httpx.MockTransport(handler))) as client:
            with pytest.raises(httpx.ConnectError):
                await client.get("https://api.example.com/down")

        entry = emit.events[0][1]
        assert entry["isError"] is True
        assert entry["errorMessage"] == "unreachable"
        assert "statusCode" not in entry

    @pytest.mark.asyncio
    async def test_disabled_tracker_records_nothing(self, tracker, emit):
        tracker.stop_tracking()
        async with httpx.AsyncClient(transport=tracker.wrap(httpx.MockTransport(handler))) as client:
            await client.get("https://api.example.com/ok")

        assert emit.events == []
        assert tracker.get_requests() == []


class TestNetworkStats:
    def test_empty_stats(self, tracker):
        assert tracker.get_network_stats() == {
            "totalRequests": 0,
            "errorCount": 0,
            "averageLatency": 0,
            "errorPercentage": 0,
        }

    def test_stats_over_recorded_requests(self, tracker):
        request = httpx.Request("GET", "https://api.example.com/")
        tracker.record(request, started_at=1, duration_ms=10, response=httpx.Response(200))
        tracker.record(request, started_at=2, duration_ms=30, response=httpx.Response(404))
        tracker.record(request, started_at=3, duration_ms=20, error=httpx.ReadTimeout("slow"))
        tracker.record(request, started_at=4, duration_ms=20, response=httpx.Response(201))

        stats = tracker.get_network_stats()
        assert stats["totalRequests"] == 4
        assert stats["errorCount"] == 2
        assert stats["averageLatency"] == 20
        assert stats["errorPercentage"] == 50

    def test_keeps_most_recent_requests(self, tracker):
        request = httpx.Request("GET", "https://api.example.com/")
        for i in range(MAX_TRACKED_REQUESTS + 5):
            tracker.record(request, started_at=i, duration_ms=1, response=httpx.Response(200))

        requests = tracker.get_requests()
        assert len(requests) == MAX_TRACKED_REQUESTS
        assert requests[0]["timestamp"] == 5
