"""
Rate Limiter - fixed-window request counter in the key-value store.

Advisory only: the read-modify-write is not atomic, so concurrent requests
may under-count, and any storage failure lets the request through.
"""

import json
import math
import time
from collections.abc import Callable
from datetime import UTC, datetime

from structlog import get_logger

from gsc_gateway.kv.store import KeyValueStore
from gsc_gateway.models.domain import RateLimitResult

logger = get_logger(__name__)

RATE_LIMIT_PREFIX = "rate_limit:gsc"


def build_rate_limit_key(user_id: int, operation: str) -> str:
    """Rate limit key for a (user, operation) pair, before the window suffix."""
    return f"{RATE_LIMIT_PREFIX}:{user_id}:{operation}"


def _to_datetime(epoch_ms: int) -> datetime:
    return datetime.fromtimestamp(epoch_ms / 1000, tz=UTC)


class RateLimiter:
    """
    Fixed-window limiter.

    The window key is `key:floor(now / window)`. Each window stores
    `{"count": n, "reset": epoch_ms}` with a backing TTL of one window.
    """

    def __init__(self, kv: KeyValueStore, clock: Callable[[], float] = time.time) -> None:
        self.kv = kv
        self.clock = clock

    async def check(self, key: str, limit: int, window_seconds: int) -> RateLimitResult:
        """Count one request against the window and report whether it is limited."""
        now_ms = int(self.clock() * 1000)
        window_ms = window_seconds * 1000
        fresh_reset = now_ms + window_ms

        try:
            window_key = f"{key}:{math.floor(now_ms / window_ms)}"
            raw = await self.kv.get(window_key)
            current = json.loads(raw) if raw else {"count": 0, "reset": fresh_reset}
            count = int(current["count"])
            reset = int(current["reset"])

            # Exact boundary counts as expired so a window always resets
            if now_ms >= reset:
                await self._write(window_key, 1, fresh_reset, window_seconds)
                return RateLimitResult(
                    limited=False,
                    remaining=max(limit - 1, 0),
                    reset_at=_to_datetime(fresh_reset),
                )

            if count >= limit:
                return RateLimitResult(limited=True, remaining=0, reset_at=_to_datetime(reset))

            await self._write(window_key, count + 1, reset, window_seconds)
            return RateLimitResult(
                limited=False,
                remaining=limit - count - 1,
                reset_at=_to_datetime(reset),
            )

        except Exception as e:
            # Fail open: the limiter must never block on storage trouble
            logger.warning("rate_limit_check_failed", key=key, error=str(e))
            return RateLimitResult(
                limited=False, remaining=limit, reset_at=_to_datetime(fresh_reset)
            )

    async def _write(self, window_key: str, count: int, reset: int, window_seconds: int) -> None:
        payload = json.dumps({"count": count, "reset": reset})
        await self.kv.set(window_key, payload, ttl_seconds=window_seconds)
