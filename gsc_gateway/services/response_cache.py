"""
Response Cache - TTL cache of upstream responses in the key-value store.

Entries carry their own expiresAt so a read never serves a stale payload,
even when the backing store has not expired the key yet.
"""

import json
import time
from collections.abc import Callable, Mapping
from typing import Any

from structlog import get_logger

from gsc_gateway.kv.store import KeyValueStore

logger = get_logger(__name__)

CACHE_PREFIX = "gsc"
DEFAULT_TTL_SECONDS = 3600


def build_cache_key(user_id: int, operation: str, params: Mapping[str, Any] | None = None) -> str:
    """
    Deterministic cache key: `gsc:{user}:{operation}:{k1}:{v1}|{k2}:{v2}`.

    Parameters are sorted by name so ordering never splits the cache.
    """
    items = sorted((params or {}).items(), key=lambda kv: kv[0])
    param_string = "|".join(f"{name}:{_format_value(value)}" for name, value in items)
    return f"{CACHE_PREFIX}:{user_id}:{operation}:{param_string}"


def _format_value(value: Any) -> str:
    if isinstance(value, (list, tuple)):
        return ",".join(str(v) for v in value)
    return str(value)


class ResponseCache:
    """Read-through/write-through cache for upstream payloads."""

    def __init__(self, kv: KeyValueStore, clock: Callable[[], float] = time.time) -> None:
        self.kv = kv
        self.clock = clock

    async def get(self, key: str) -> Any | None:
        """Return the cached payload, or None on miss, expiry or read error."""
        try:
            raw = await self.kv.get(key)
            if not raw:
                return None
            cached = json.loads(raw)
            expires_at = cached.get("expiresAt")
            if expires_at is not None and self._now_ms() > int(expires_at):
                await self.kv.delete(key)
                return None
            return cached.get("data")
        except Exception as e:
            logger.warning("cache_read_failed", key=key, error=str(e))
            return None

    async def set(self, key: str, payload: Any, ttl_seconds: int = DEFAULT_TTL_SECONDS) -> None:
        """Store a payload for ttl_seconds; write errors are logged and ignored."""
        envelope = {"data": payload, "expiresAt": self._now_ms() + ttl_seconds * 1000}
        try:
            await self.kv.set(key, json.dumps(envelope), ttl_seconds=ttl_seconds)
        except Exception as e:
            logger.warning("cache_write_failed", key=key, error=str(e))

    async def delete(self, key: str) -> None:
        try:
            await self.kv.delete(key)
        except Exception as e:
            logger.warning("cache_delete_failed", key=key, error=str(e))

    def _now_ms(self) -> int:
        return int(self.clock() * 1000)
