"""Queue storage backends - where the single persisted record lives."""

from ...config import StorageConfig
from .base import QueueStorage
from .file import FileStorage
from .memory import MemoryStorage
from .redis import RedisStorage
from .sqlite import SqliteStorage


def create_storage(config: StorageConfig) -> QueueStorage:
    """Build the storage backend named by `config.backend`."""
    if config.backend == "memory":
        return MemoryStorage()
    if config.backend == "file":
        return FileStorage(path=config.resolved_path)
    if config.backend == "sqlite":
        return SqliteStorage(path=config.resolved_path, key=config.key)
    if config.backend == "redis":
        return RedisStorage(config)
    raise ValueError(f"Unknown storage backend: {config.backend}")


__all__ = [
    "QueueStorage",
    "MemoryStorage",
    "FileStorage",
    "SqliteStorage",
    "RedisStorage",
    "create_storage",
]
