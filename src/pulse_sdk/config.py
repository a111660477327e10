"""Configuration for the pulse SDK."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields, replace
from typing import Any


DEFAULT_SERVER_URL = "https://your-server.com/upload"


@dataclass
class UploadConfig:
    """
    Upload pipeline configuration.

    Can be set via:
    - Constructor arguments
    - Environment variables (PULSE_SERVER_URL, PULSE_API_KEY)
    - Config file
    """
    # Collector endpoint (POST)
    server_url: str = field(
        default_factory=lambda: os.environ.get("PULSE_SERVER_URL", DEFAULT_SERVER_URL)
    )

    # Static bearer token (omitted from requests when unset)
    api_key: str | None = field(
        default_factory=lambda: os.environ.get("PULSE_API_KEY") or None
    )

    # Batching
    batch_size: int = 50

    # Failed attempts before an event is evicted (snapshotted per event)
    max_retries: int = 3

    # Scheduling
    upload_interval_seconds: float = 30.0
    debounce_delay_seconds: float = 2.0

    # Per-batch request timeout (a timeout counts as a transport failure)
    request_timeout_seconds: float = 10.0

    # GET target used as connectivity probe (None = assume online)
    connectivity_url: str | None = None

    def __post_init__(self):
        if self.batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {self.batch_size}")
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {self.max_retries}")
        for name in ("upload_interval_seconds", "debounce_delay_seconds", "request_timeout_seconds"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be > 0, got {getattr(self, name)}")

    def updated(self, **changes: Any) -> UploadConfig:
        """Return a copy with `changes` applied (validated)."""
        known = {f.name for f in fields(self)}
        unknown = set(changes) - known
        if unknown:
            raise ValueError(f"Unknown upload config field(s): {', '.join(sorted(unknown))}")
        return replace(self, **changes)


@dataclass
class StorageConfig:
    """Queue persistence configuration."""
    backend: str = "file"  # memory | file | sqlite | redis

    # File or SQLite database path (None = backend default under ~/.pulse)
    path: str | None = None

    # Name of the single persisted record
    key: str = "events"

    # Maximum queued events; oldest are dropped first
    capacity: int = 1000

    # Redis connection
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_db: int = 0
    redis_password: str | None = None
    socket_timeout: float = 5.0

    def __post_init__(self):
        if self.backend not in ("memory", "file", "sqlite", "redis"):
            raise ValueError(f"Unknown storage backend: {self.backend}")
        if self.capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {self.capacity}")

    @property
    def resolved_path(self) -> str:
        if self.path:
            return os.path.expanduser(self.path)
        suffix = "db" if self.backend == "sqlite" else "json"
        return os.path.expanduser(f"~/.pulse/{self.key}.{suffix}")


@dataclass
class ProducersConfig:
    """Which built-in producers the client enables on start."""
    crash_reporting: bool = True
    network_tracking: bool = True
    session_tracking: bool = True


@dataclass
class LoggingConfig:
    """Logging configuration (applied by the CLI, not by the library)."""
    level: str = "INFO"
    format: str = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass
class PulseConfig:
    """Main configuration container."""
    upload: UploadConfig = field(default_factory=UploadConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    producers: ProducersConfig = field(default_factory=ProducersConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    debug: bool = False

    @classmethod
    def from_dict(cls, data: dict) -> PulseConfig:
        """Create config from dictionary."""
        return cls(
            upload=UploadConfig(**data.get("upload", {})),
            storage=StorageConfig(**data.get("storage", {})),
            producers=ProducersConfig(**data.get("producers", {})),
            logging=LoggingConfig(**data.get("logging", {})),
            debug=bool(data.get("debug", False)),
        )

    @classmethod
    def from_yaml(cls, path: str) -> PulseConfig:
        """Load config from YAML file."""
        import yaml
        with open(path, "r") as f:
            data = yaml.safe_load(f)
        return cls.from_dict(data or {})

    @classmethod
    def from_json(cls, path: str) -> PulseConfig:
        """Load config from JSON file."""
        import json
        with open(path, "r") as f:
            data = json.load(f)
        return cls.from_dict(data)

    @classmethod
    def from_file(cls, path: str) -> PulseConfig:
        """Load config from a YAML or JSON file, chosen by extension."""
        if path.endswith(".json"):
            return cls.from_json(path)
        return cls.from_yaml(path)
