"""
Configuration & Error Envelope Test Suite
"""
import pytest

from tutor_backend.config.settings import TutorSettings, get_settings, reset_settings
from tutor_backend.errors import (
    ConfigurationError,
    QuotaExceededError,
    RateLimitedError,
    UpstreamTimeoutError,
    format_plan_label,
)
from tutor_backend.routes.tutor import parse_bool_header, parse_daily_limit


class TestTutorSettings:

    def test_defaults(self, monkeypatch):
        for name in ("OPENROUTER_API_KEY", "TUTOR_TIMEOUT_MS", "TUTOR_BASE_URL", "TUTOR_LEARNER_RATE_LIMIT"):
            monkeypatch.delenv(name, raising=False)
        settings = TutorSettings()

        assert settings.endpoint == "https://openrouter.ai/api/v1/chat/completions"
        assert settings.timeout_ms == 12000
        assert settings.learner_rate_limit == 12
        assert settings.ip_rate_limit >= 1

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("OPENROUTER_API_KEY", "sk-test")
        monkeypatch.setenv("TUTOR_BASE_URL", "https://proxy.example/v1/")
        monkeypatch.setenv("TUTOR_TIMEOUT_MS", "8000")
        monkeypatch.setenv("TUTOR_LEARNER_RATE_LIMIT", "not-a-number")
        settings = TutorSettings()

        assert settings.endpoint == "https://proxy.example/v1/chat/completions"
        assert settings.timeout_seconds == 8.0
        assert settings.learner_rate_limit == 12

    def test_timeout_floor(self, monkeypatch):
        monkeypatch.setenv("TUTOR_TIMEOUT_MS", "500")
        assert TutorSettings().timeout_ms == 3000

    def test_missing_api_key_fails_validation(self, monkeypatch):
        monkeypatch.delenv("OPENROUTER_API_KEY", raising=False)
        with pytest.raises(ConfigurationError) as exc_info:
            TutorSettings().validate()
        assert exc_info.value.status_code == 500

    def test_snapshot_hides_secret(self, monkeypatch):
        monkeypatch.setenv("OPENROUTER_API_KEY", "sk-secret")
        snapshot = TutorSettings().to_dict()
        assert snapshot["api_key_configured"] is True
        assert "sk-secret" not in str(snapshot)

    def test_get_settings_is_cached_until_reset(self):
        reset_settings()
        first = get_settings()
        assert get_settings() is first
        reset_settings()
        assert get_settings() is not first
        reset_settings()


class TestErrorEnvelope:

    def test_rate_limited_envelope(self):
        assert RateLimitedError().to_dict() == {
            "success": False,
            "error": "Rate Limited",
            "message": "Too many AI requests. Please wait a moment and try again.",
            "code": "rate_limited",
            "details": {"remaining": 0},
        }

    def test_quota_exceeded_without_plan(self):
        error = QuotaExceededError(limit=3)
        assert error.message.startswith("You've reached today's AI tutor limit. ")
        assert error.details["limit"] == 3

    def test_timeout_message(self):
        error = UpstreamTimeoutError(model="m", timeout_seconds=12.0)
        assert error.status_code == 504
        assert error.message == "Model m did not answer within 12s"

    def test_plan_label(self):
        assert format_plan_label("family_plus-annual") == "family plus annual"


class TestHeaderParsing:

    @pytest.mark.parametrize("raw, expected", [
        (None, None), ("3", 3), (" Unlimited ", "unlimited"), ("lots", None), ("-1", -1),
    ])
    def test_daily_limit(self, raw, expected):
        assert parse_daily_limit(raw) == expected

    @pytest.mark.parametrize("raw, expected", [
        (None, None), ("true", True), ("0", False), ("No", False), ("maybe", None),
    ])
    def test_bool_header(self, raw, expected):
        assert parse_bool_header(raw) == expected
