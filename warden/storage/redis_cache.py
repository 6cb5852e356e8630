"""
Redis cache storage.

Values are stored JSON-encoded so strings, numbers and small dicts round-trip
unchanged. Every call is bounded by the client's socket timeout.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import redis.asyncio as redis
from redis.exceptions import RedisError

from warden.core.errors import InternalError
from warden.storage.base import CacheStorage

logger = logging.getLogger(__name__)


class RedisCacheStorage(CacheStorage):
    """CacheStorage backed by a shared redis.asyncio client."""

    def __init__(self, client: redis.Redis):
        self._client = client

    @classmethod
    def from_url(cls, url: str, timeout: float = 10.0) -> RedisCacheStorage:
        client = redis.from_url(
            url,
            decode_responses=True,
            socket_timeout=timeout,
            socket_connect_timeout=timeout,
        )
        logger.info("Redis cache client created")
        return cls(client)

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        try:
            await self._client.set(key, json.dumps(value), ex=ttl or None)
        except RedisError as e:
            logger.error(f"Redis SET failed for {key}: {e!r}")
            raise InternalError() from e

    async def get(self, key: str) -> Any | None:
        try:
            raw = await self._client.get(key)
        except RedisError as e:
            logger.error(f"Redis GET failed for {key}: {e!r}")
            raise InternalError() from e
        if raw is None:
            return None
        return json.loads(raw)

    async def delete(self, key: str) -> bool:
        try:
            return bool(await self._client.delete(key))
        except RedisError as e:
            logger.error(f"Redis DEL failed for {key}: {e!r}")
            raise InternalError() from e

    async def exists(self, key: str) -> bool:
        try:
            return bool(await self._client.exists(key))
        except RedisError as e:
            logger.error(f"Redis EXISTS failed for {key}: {e!r}")
            raise InternalError() from e

    async def close(self) -> None:
        await self._client.aclose()
