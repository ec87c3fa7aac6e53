"""
Sliding Window Rate Limiting Test Suite

Verifies the Nth-allowed / (N+1)th-blocked boundary, recording of blocked
calls, window pruning, and key partitioning.
"""
import asyncio
import pytest

from tutor_backend.realtime.kv_store import InMemoryKeyValueStore
from tutor_backend.realtime.rate_limit import SlidingWindowRateLimiter


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def store(clock):
    return InMemoryKeyValueStore(clock=clock)


def make_limiter(store, clock, limit=12, window=300):
    return SlidingWindowRateLimiter(store, limit, window, namespace="test", clock=clock)


# =============================================================================
# Test: Basic Rate Limiting
# =============================================================================

class TestBasicRateLimit:

    @pytest.mark.asyncio
    async def test_requests_within_limit_are_allowed(self, store, clock):
        limiter = make_limiter(store, clock, limit=12)

        for expected_remaining in range(11, -1, -1):
            result = await limiter.check("user:abc")
            assert result.allowed is True
            assert result.remaining == expected_remaining

    @pytest.mark.asyncio
    async def test_request_over_limit_is_blocked(self, store, clock):
        limiter = make_limiter(store, clock, limit=12)
        for _ in range(12):
            await limiter.check("user:abc")

        result = await limiter.check("user:abc")
        assert result.allowed is False
        assert result.remaining == 0

    @pytest.mark.asyncio
    async def test_ip_limit_of_thirty(self, store, clock):
        limiter = make_limiter(store, clock, limit=30)
        results = [await limiter.check("ip:xyz") for _ in range(31)]
        assert all(r.allowed for r in results[:30])
        assert results[30].allowed is False


# =============================================================================
# Test: Window Behaviour
# =============================================================================

class TestSlidingWindow:

    @pytest.mark.asyncio
    async def test_window_elapses(self, store, clock):
        limiter = make_limiter(store, clock, limit=3, window=10)
        for _ in range(3):
            await limiter.check("k")
        assert (await limiter.check("k")).allowed is False

        clock.advance(10.5)
        assert (await limiter.check("k")).allowed is True

    @pytest.mark.asyncio
    async def test_blocked_calls_still_count(self, store, clock):
        limiter = make_limiter(store, clock, limit=2, window=10)
        await limiter.check("k")
        await limiter.check("k")

        clock.advance(6)
        assert (await limiter.check("k")).allowed is False
        assert (await limiter.check("k")).allowed is False

        # The first two calls have left the window, the two blocked ones have not
        clock.advance(4.5)
        assert (await limiter.check("k")).allowed is False


# =============================================================================
# Test: Isolation & Concurrency
# =============================================================================

class TestIsolation:

    @pytest.mark.asyncio
    async def test_keys_are_independent(self, store, clock):
        limiter = make_limiter(store, clock, limit=1)
        await limiter.check("user:a")
        assert (await limiter.check("user:a")).allowed is False
        assert (await limiter.check("user:b")).allowed is True

    @pytest.mark.asyncio
    async def test_namespaces_do_not_share_state(self, store, clock):
        learner = SlidingWindowRateLimiter(store, 1, 300, namespace="learner", clock=clock)
        ip = SlidingWindowRateLimiter(store, 1, 300, namespace="ip", clock=clock)
        await learner.check("same")
        assert (await ip.check("same")).allowed is True

    @pytest.mark.asyncio
    async def test_concurrent_checks_admit_exactly_limit(self, store, clock):
        limiter = make_limiter(store, clock, limit=12)
        results = await asyncio.gather(*(limiter.check("user:burst") for _ in range(20)))
        assert sum(1 for r in results if r.allowed) == 12
