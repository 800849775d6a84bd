"""
Tests for the fixed-window RateLimiter.
"""

import json

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from gsc_gateway.services.rate_limiter import RateLimiter, build_rate_limit_key
from tests.fakes import FakeClock, InMemoryKV


class TestRateLimitKey:
    def test_key_shape(self) -> None:
        assert build_rate_limit_key(42, "sites") == "rate_limit:gsc:42:sites"


class TestFixedWindow:
    """Counting within and across windows."""

    async def test_limit_two_window_sixty(self, kv: InMemoryKV, clock: FakeClock) -> None:
        """Three calls with limit 2: remaining 1, 0, then limited with 0."""
        limiter = RateLimiter(kv, clock=clock)
        key = build_rate_limit_key(1, "sites")

        first = await limiter.check(key, 2, 60)
        second = await limiter.check(key, 2, 60)
        third = await limiter.check(key, 2, 60)

        assert (first.limited, first.remaining) == (False, 1)
        assert (second.limited, second.remaining) == (False, 0)
        assert (third.limited, third.remaining) == (True, 0)

    async def test_limited_request_does_not_increment(
        self, kv: InMemoryKV, clock: FakeClock
    ) -> None:
        limiter = RateLimiter(kv, clock=clock)
        await limiter.check("k", 1, 60)
        await limiter.check("k", 1, 60)
        await limiter.check("k", 1, 60)

        window_key = f"k:{int(clock() * 1000) // 60000}"
        stored = json.loads(kv.data[window_key][0])
        assert stored["count"] == 1

    async def test_reset_is_stored_window_reset(self, kv: InMemoryKV, clock: FakeClock) -> None:
        limiter = RateLimiter(kv, clock=clock)
        first = await limiter.check("k", 1, 60)
        clock.advance(5)
        limited = await limiter.check("k", 1, 60)

        assert limited.limited is True
        assert limited.reset_at == first.reset_at

    async def test_new_window_starts_fresh(self, kv: InMemoryKV, clock: FakeClock) -> None:
        limiter = RateLimiter(kv, clock=clock)
        await limiter.check("k", 1, 60)
        assert (await limiter.check("k", 1, 60)).limited is True

        clock.advance(60)
        result = await limiter.check("k", 1, 60)

        assert result.limited is False
        assert result.remaining == 0

    async def test_reset_boundary_counts_as_expired(
        self, kv: InMemoryKV, clock: FakeClock
    ) -> None:
        """A stored window whose reset equals now is treated as a new window."""
        limiter = RateLimiter(kv, clock=clock)
        now_ms = int(clock() * 1000)
        window_key = f"k:{now_ms // 60000}"
        await kv.set(window_key, json.dumps({"count": 5, "reset": now_ms}), ttl_seconds=60)

        result = await limiter.check("k", 5, 60)

        assert result.limited is False
        assert result.remaining == 4
        assert json.loads(kv.data[window_key][0])["count"] == 1

    async def test_window_written_with_window_ttl(self, kv: InMemoryKV, clock: FakeClock) -> None:
        limiter = RateLimiter(kv, clock=clock)
        await limiter.check("k", 10, 30)

        assert list(kv.ttls.values()) == [30]


class TestFailOpen:
    async def test_storage_failure_allows_request(self, kv: InMemoryKV, clock: FakeClock) -> None:
        kv.fail = True
        limiter = RateLimiter(kv, clock=clock)

        result = await limiter.check("k", 7, 60)

        assert result.limited is False
        assert result.remaining == 7

    async def test_corrupt_window_allows_request(self, kv: InMemoryKV, clock: FakeClock) -> None:
        limiter = RateLimiter(kv, clock=clock)
        window_key = f"k:{int(clock() * 1000) // 60000}"
        await kv.set(window_key, "not json", ttl_seconds=60)

        result = await limiter.check("k", 3, 60)

        assert result.limited is False
        assert result.remaining == 3


class TestRateLimiterProperties:
    """Property-based checks of the window counter."""

    @given(limit=st.integers(min_value=1, max_value=30), extra=st.integers(min_value=1, max_value=10))
    @settings(max_examples=50)
    @pytest.mark.asyncio
    async def test_exactly_limit_requests_pass(self, limit: int, extra: int) -> None:
        """N requests pass in one window, every later one is limited."""
        clock = FakeClock()
        limiter = RateLimiter(InMemoryKV(clock), clock=clock)

        results = [await limiter.check("k", limit, 60) for _ in range(limit + extra)]

        assert [r.limited for r in results] == [False] * limit + [True] * extra
        assert [r.remaining for r in results[:limit]] == list(range(limit - 1, -1, -1))
