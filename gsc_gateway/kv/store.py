"""
Key-Value Store - Shared capability behind the token cache, rate limiter
and response cache.

Each consumer owns its own key namespace and TTL policy; this module only
provides get/set-with-TTL/delete over Redis.
"""

from typing import Protocol

from redis import asyncio as aioredis
from structlog import get_logger

from gsc_gateway.config import settings

logger = get_logger(__name__)


class KeyValueStore(Protocol):
    """Minimal async key-value capability with per-key expiry."""

    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None: ...

    async def delete(self, key: str) -> None: ...


class RedisKeyValueStore:
    """KeyValueStore backed by redis.asyncio."""

    def __init__(self, client: aioredis.Redis) -> None:
        self.client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisKeyValueStore":
        """Create a store with its own connection pool."""
        return cls(aioredis.from_url(url, decode_responses=True))

    async def get(self, key: str) -> str | None:
        value = await self.client.get(key)
        if value is None:
            return None
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return str(value)

    async def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        # Redis rejects non-positive expirations
        if ttl_seconds is not None:
            ttl_seconds = max(int(ttl_seconds), 1)
        await self.client.set(key, value, ex=ttl_seconds)

    async def delete(self, key: str) -> None:
        await self.client.delete(key)

    async def close(self) -> None:
        """Close the underlying connection pool."""
        await self.client.aclose()


# Process-wide store, created lazily
_store: RedisKeyValueStore | None = None


def get_kv_store() -> RedisKeyValueStore:
    """Get or create the process-wide key-value store."""
    global _store
    if _store is None:
        _store = RedisKeyValueStore.from_url(settings.redis_url)
        logger.info("kv_store_initialized")
    return _store


async def close_kv_store() -> None:
    """Close the process-wide store (for graceful shutdown)."""
    global _store
    if _store is not None:
        await _store.close()
        _store = None
