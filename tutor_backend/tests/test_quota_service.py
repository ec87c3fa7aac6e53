"""
Daily Quota Test Suite

Limit merging, exact-L enforcement, disabled/unlimited limits, calendar-day
reset, and reservation semantics under concurrency.
"""
import asyncio
import pytest

from tutor_backend.errors import QuotaDisabledError, QuotaExceededError
from tutor_backend.realtime.kv_store import InMemoryKeyValueStore
from tutor_backend.services.quota_service import (
    DailyQuotaTracker,
    QuotaState,
    effective_count,
    merge_tutor_limits,
    today_key,
)


@pytest.fixture
def tracker(clock):
    return DailyQuotaTracker(InMemoryKeyValueStore(clock=clock), clock=clock)


# =============================================================================
# Test: Limit Merging
# =============================================================================

class TestMergeTutorLimits:

    @pytest.mark.parametrize("plan_limit, learner_limit, expected", [
        (3, 1, 1),
        (3, None, 3),
        ("unlimited", None, "unlimited"),
        ("unlimited", 2, 2),
        (5, -2, 0),
        (None, 4, 4),
        (5, 3, 3),
        (5, None, 5),
        (2, 9, 2),
    ])
    def test_merge(self, plan_limit, learner_limit, expected):
        assert merge_tutor_limits(plan_limit, learner_limit) == expected


# =============================================================================
# Test: Day Keys
# =============================================================================

class TestEffectiveCount:

    def test_today_key_is_utc_date(self, clock):
        assert today_key(clock()) == "2023-11-14"

    def test_missing_state_counts_zero(self, clock):
        assert effective_count(clock(), None) == 0

    def test_stale_day_counts_zero(self, clock):
        assert effective_count(clock(), QuotaState(day="2023-11-13", count=7)) == 0

    def test_same_day_count(self, clock):
        assert effective_count(clock(), QuotaState(day="2023-11-14", count=2, pending=1)) == 2


# =============================================================================
# Test: Enforcement
# =============================================================================

class TestEnforce:

    @pytest.mark.asyncio
    async def test_exactly_limit_answers_per_day(self, tracker):
        for expected_before, expected_after in [(3, 2), (2, 1), (1, 0)]:
            assert await tracker.enforce(3, "learner", "free") == expected_before
            assert await tracker.record(3, "learner") == expected_after

        with pytest.raises(QuotaExceededError) as exc_info:
            await tracker.enforce(3, "learner", "free")
        assert exc_info.value.status_code == 402
        assert exc_info.value.code == "quota_exceeded"

    @pytest.mark.asyncio
    async def test_exceeded_message_names_plan(self, tracker):
        await tracker.enforce(1, "learner", "family-plus")
        await tracker.record(1, "learner")

        with pytest.raises(QuotaExceededError) as exc_info:
            await tracker.enforce(1, "learner", "family-plus")
        assert "on your family plus plan" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_zero_limit_is_disabled_regardless_of_usage(self, tracker):
        with pytest.raises(QuotaDisabledError) as exc_info:
            await tracker.enforce(0, "fresh-learner", "free")
        assert exc_info.value.status_code == 403
        assert exc_info.value.code == "quota_disabled"

    @pytest.mark.asyncio
    async def test_unlimited_returns_none(self, tracker):
        assert await tracker.enforce("unlimited", "learner") is None
        assert await tracker.enforce(None, "learner") is None
        assert await tracker.record("unlimited", "learner") is None
        assert await tracker.used_today("learner") == 0

    @pytest.mark.asyncio
    async def test_counter_resets_on_new_day(self, tracker, clock):
        await tracker.enforce(1, "learner")
        await tracker.record(1, "learner")
        with pytest.raises(QuotaExceededError):
            await tracker.enforce(1, "learner")

        clock.advance(2 * 60 * 60)  # past UTC midnight
        assert await tracker.enforce(1, "learner") == 1

    @pytest.mark.asyncio
    async def test_keys_are_independent(self, tracker):
        await tracker.enforce(1, "a")
        await tracker.record(1, "a")
        assert await tracker.enforce(1, "b") == 1


# =============================================================================
# Test: Reservations
# =============================================================================

class TestReservations:

    @pytest.mark.asyncio
    async def test_release_returns_the_slot(self, tracker):
        assert await tracker.enforce(2, "learner") == 2
        await tracker.release(2, "learner")

        assert await tracker.used_today("learner") == 0
        assert await tracker.enforce(2, "learner") == 2

    @pytest.mark.asyncio
    async def test_pending_reservation_blocks_last_slot(self, tracker):
        await tracker.enforce(1, "learner")
        with pytest.raises(QuotaExceededError):
            await tracker.enforce(1, "learner")

    @pytest.mark.asyncio
    async def test_concurrent_enforce_never_oversubscribes(self, tracker):
        results = await asyncio.gather(
            *(tracker.enforce(2, "learner") for _ in range(5)),
            return_exceptions=True
        )
        granted = [r for r in results if not isinstance(r, Exception)]
        refused = [r for r in results if isinstance(r, QuotaExceededError)]
        assert len(granted) == 2
        assert len(refused) == 3

    @pytest.mark.asyncio
    async def test_reservation_settles_on_the_day_it_was_taken(self, tracker, clock):
        day = tracker.today()
        assert await tracker.enforce(2, "learner", day=day) == 2

        clock.advance(2 * 60 * 60)  # answer lands after UTC midnight
        assert await tracker.record(2, "learner", day=day) == 1

        assert tracker.today() != day
        assert await tracker.used_today("learner") == 0
        assert await tracker.enforce(2, "learner") == 2

    @pytest.mark.asyncio
    async def test_release_after_midnight_frees_the_old_day(self, tracker, clock):
        day = tracker.today()
        await tracker.enforce(1, "learner", day=day)
        clock.advance(2 * 60 * 60)

        await tracker.release(1, "learner", day=day)

        assert await tracker.enforce(1, "learner") == 1
        assert await tracker.enforce(1, "other", day=day) == 1

    @pytest.mark.asyncio
    async def test_release_without_reservation_is_harmless(self, tracker):
        await tracker.release(3, "nobody")
        assert await tracker.enforce(3, "nobody") == 3
