"""
Duplicate-Prompt Suppression Test Suite
"""
import pytest

from tutor_backend.ai.dedup import DuplicatePromptSuppressor, normalize_prompt, prompt_digest
from tutor_backend.realtime.kv_store import InMemoryKeyValueStore


@pytest.fixture
def suppressor(clock):
    return DuplicatePromptSuppressor(InMemoryKeyValueStore(clock=clock), window_seconds=30, clock=clock)


class TestNormalize:

    def test_lowercases_and_collapses_whitespace(self):
        assert normalize_prompt("  What IS \n\t 2+2? ") == "what is 2+2?"

    def test_equivalent_prompts_share_digest(self):
        assert prompt_digest("Hello   World") == prompt_digest("hello world")
        assert prompt_digest("hello world") != prompt_digest("hello there")


class TestSuppression:

    @pytest.mark.asyncio
    async def test_repeat_inside_window_is_blocked(self, suppressor, clock):
        assert await suppressor.check_and_record("learner", "What is 7 x 8?") is True
        clock.advance(5)
        assert await suppressor.check_and_record("learner", "what is 7  x 8?") is False

    @pytest.mark.asyncio
    async def test_repeat_after_window_is_allowed(self, suppressor, clock):
        await suppressor.check_and_record("learner", "What is 7 x 8?")
        clock.advance(30)
        assert await suppressor.check_and_record("learner", "What is 7 x 8?") is True

    @pytest.mark.asyncio
    async def test_window_measured_from_first_submission(self, suppressor, clock):
        await suppressor.check_and_record("learner", "q")
        clock.advance(20)
        assert await suppressor.check_and_record("learner", "q") is False
        clock.advance(15)
        assert await suppressor.check_and_record("learner", "q") is True

    @pytest.mark.asyncio
    async def test_only_previous_prompt_is_remembered(self, suppressor):
        assert await suppressor.check_and_record("learner", "A") is True
        assert await suppressor.check_and_record("learner", "B") is True
        assert await suppressor.check_and_record("learner", "A") is True

    @pytest.mark.asyncio
    async def test_usage_keys_are_independent(self, suppressor):
        assert await suppressor.check_and_record("one", "same prompt") is True
        assert await suppressor.check_and_record("two", "same prompt") is True
