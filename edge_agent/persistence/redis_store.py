"""
Provide the key-value store used for rate-limit counters.

The limiter only needs two operations, get and put-with-TTL, so it depends on
the `KeyValueStore` protocol; `RedisStore` is the production implementation.
"""

from __future__ import annotations

from typing import Optional, Protocol

from redis.asyncio import Redis
from redis.exceptions import RedisError

from edge_agent.core.errors import StorageError


class KeyValueStore(Protocol):
    """Opaque string keys and values with per-key expiry. May raise StorageError."""

    async def get(self, key: str) -> Optional[str]:
        ...

    async def put(self, key: str, value: str, ttl_seconds: int) -> None:
        ...


class RedisStore:
    """
    Wrap a Redis asyncio client and expose the key-value operations needed by the limiter.
    The store does not own the client's lifecycle; caller is responsible for creation.
    Any Redis failure is re-raised as StorageError.
    """

    def __init__(self, client: Redis) -> None:
        self._client = client

    async def get(self, key: str) -> Optional[str]:
        """Return the stored value, or None if the key is absent or expired."""
        try:
            value = await self._client.get(key)
        except RedisError as exc:
            raise StorageError(f"GET {key} failed: {exc}") from exc
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return value

    async def put(self, key: str, value: str, ttl_seconds: int) -> None:
        """Overwrite the value and reset its TTL (SET key value EX ttl)."""
        try:
            await self._client.set(key, value, ex=ttl_seconds)
        except RedisError as exc:
            raise StorageError(f"SET {key} failed: {exc}") from exc
