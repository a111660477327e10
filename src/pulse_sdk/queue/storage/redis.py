"""Redis storage for the event queue."""

from __future__ import annotations

import json
import logging
from typing import Any

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from ...config import StorageConfig
from ...errors import StorageError
from .base import QueueStorage


logger = logging.getLogger(__name__)


class RedisStorage(QueueStorage):
    """
    Redis-backed storage.

    Survives process restarts and can be inspected from outside the device
    process. The whole queue lives under one key as a JSON list.

    Key format: {key}
    Value: JSON list of event records
    """

    def __init__(self, config: StorageConfig, client: aioredis.Redis | None = None):
        self.config = config
        self._client = client
        self._owns_client = client is None

    async def start(self) -> None:
        if self._client is None:
            self._client = aioredis.Redis(
                host=self.config.redis_host,
                port=self.config.redis_port,
                db=self.config.redis_db,
                password=self.config.redis_password,
                socket_timeout=self.config.socket_timeout,
                socket_connect_timeout=self.config.socket_timeout,
                decode_responses=True,
            )
        try:
            await self._client.ping()
        except RedisError as e:
            raise StorageError(f"Failed to connect to Redis: {e}") from e
        logger.info(f"Queue storage connected to Redis at {self.config.redis_host}:{self.config.redis_port}")

    async def stop(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
            logger.info("Redis connection closed")

    @property
    def client(self) -> aioredis.Redis:
        if self._client is None:
            raise StorageError("Redis storage not started")
        return self._client

    async def load(self) -> list[dict[str, Any]]:
        try:
            raw = await self.client.get(self.config.key)
        except RedisError as e:
            raise StorageError(f"Redis get error for {self.config.key}: {e}") from e

        if raw is None:
            return []

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.error(f"Corrupted queue record in Redis key {self.config.key}: {e}")
            return []

        if not isinstance(data, list):
            logger.error(f"Redis key {self.config.key} does not hold a list, ignoring")
            return []

        return data

    async def save(self, records: list[dict[str, Any]]) -> None:
        try:
            await self.client.set(self.config.key, json.dumps(records, separators=(",", ":")))
        except RedisError as e:
            raise StorageError(f"Redis set error for {self.config.key}: {e}") from e

    async def clear(self) -> None:
        try:
            await self.client.delete(self.config.key)
        except RedisError as e:
            raise StorageError(f"Redis delete error for {self.config.key}: {e}") from e
