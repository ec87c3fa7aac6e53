"""
Shared fixtures for the tutor backend test suite.
"""
import pytest

from tutor_backend.config.settings import TutorSettings

# 2023-11-14T22:13:20Z
START_TS = 1_700_000_000.0


class FakeClock:
    """Manually advanced epoch clock."""

    def __init__(self, start: float = START_TS):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


def make_settings(**overrides) -> TutorSettings:
    settings = TutorSettings()
    settings.api_key = "test-key"
    settings.base_url = "https://llm.test/api/v1"
    settings.primary_model = "primary/model"
    settings.fallback_model = "fallback/model"
    settings.timeout_ms = 3000
    settings.app_base_url = "https://elevated.test"
    settings.app_title = "ElevatED"
    settings.preview_sample_rate = 0.0
    for key, value in overrides.items():
        setattr(settings, key, value)
    return settings


@pytest.fixture
def settings():
    return make_settings()
