"""Shared fixtures for pulse SDK tests."""

import pytest

from pulse_sdk.config import LoggingConfig, ProducersConfig, PulseConfig, StorageConfig, UploadConfig
from pulse_sdk.queue.storage.memory import MemoryStorage
from pulse_sdk.queue.store import EventStore

from tests.mocks.queue_fakes import (
    COLLECTOR_URL,
    FakeClock,
    ManualTimer,
    RecordingTransport,
    StaticProbe,
    sequential_ids,
)


# =============================================================================
# Queue Fixtures
# =============================================================================

@pytest.fixture(autouse=True)
def _no_env_overrides(monkeypatch):
    """Keep the developer's PULSE_* variables out of the tests."""
    monkeypatch.delenv("PULSE_SERVER_URL", raising=False)
    monkeypatch.delenv("PULSE_API_KEY", raising=False)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def store(storage, clock) -> EventStore:
    """Store with deterministic ids (e1, e2, ...) and timestamps."""
    return EventStore(storage, clock=clock, id_factory=sequential_ids())


@pytest.fixture
def upload_config() -> UploadConfig:
    return UploadConfig(server_url=COLLECTOR_URL, api_key="test-key")


@pytest.fixture
def timer() -> ManualTimer:
    return ManualTimer()


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def probe() -> StaticProbe:
    return StaticProbe(online=True)


# =============================================================================
# Client Fixtures
# =============================================================================

@pytest.fixture
def pulse_config() -> PulseConfig:
    """Client config with built-in producers off and an in-memory queue."""
    return PulseConfig(
        upload=UploadConfig(server_url=COLLECTOR_URL, api_key="test-key"),
        storage=StorageConfig(backend="memory"),
        producers=ProducersConfig(
            crash_reporting=False,
            network_tracking=False,
            session_tracking=False,
        ),
        logging=LoggingConfig(),
    )
