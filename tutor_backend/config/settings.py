"""
Tutor Settings

Centralized configuration for the tutor pipeline.
All values are loaded from environment variables (optionally via .env, see main.py).
"""
import os
from typing import Optional

from tutor_backend.errors import ConfigurationError


DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_MODEL = "mistralai/mistral-7b-instruct:free"
MIN_TIMEOUT_MS = 3000


def get_bool_env(key: str, default: bool = False) -> bool:
    """Get a boolean value from environment variable."""
    value = os.getenv(key, str(default)).lower()
    return value in ('true', '1', 'yes', 'on', 'enabled')


def get_int_env(key: str, default: int) -> int:
    """Get an integer value from environment variable, falling back on junk."""
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def get_float_env(key: str, default: float) -> float:
    """Get a float value from environment variable, falling back on junk."""
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def get_str_env(key: str, default: Optional[str] = None) -> Optional[str]:
    """Get a non-empty string from environment variable."""
    value = os.getenv(key)
    if value is None or not value.strip():
        return default
    return value.strip()


class TutorSettings:
    """
    Settings for the tutor service.

    To add a new setting:
    1. Read it here from an environment variable with a sane default
    2. Thread it into the component that needs it in main.py
    """

    def __init__(self):
        # Upstream provider
        self.api_key: Optional[str] = get_str_env("OPENROUTER_API_KEY")
        self.base_url: str = get_str_env("TUTOR_BASE_URL", DEFAULT_BASE_URL).rstrip("/")
        self.timeout_ms: int = max(MIN_TIMEOUT_MS, get_int_env("TUTOR_TIMEOUT_MS", 12000))
        self.primary_model: str = get_str_env("TUTOR_PRIMARY_MODEL", DEFAULT_MODEL)
        self.fallback_model: str = get_str_env("TUTOR_FALLBACK_MODEL", DEFAULT_MODEL)
        self.temperature: float = get_float_env("TUTOR_TEMPERATURE", 0.4)
        self.app_base_url: str = get_str_env("APP_BASE_URL", "https://elevated.chat")
        self.app_title: str = get_str_env("APP_TITLE", "ElevatED")

        # Abuse prevention
        self.learner_rate_limit: int = get_int_env("TUTOR_LEARNER_RATE_LIMIT", 12)
        self.ip_rate_limit: int = get_int_env("TUTOR_IP_RATE_LIMIT", 30)
        self.rate_window_seconds: int = get_int_env("TUTOR_RATE_WINDOW_SECONDS", 5 * 60)
        self.dedup_window_seconds: int = get_int_env("TUTOR_DEDUP_WINDOW_SECONDS", 30)

        # Caching / observability
        self.context_ttl_seconds: int = get_int_env("TUTOR_CONTEXT_TTL_SECONDS", 30)
        self.preview_sample_rate: float = get_float_env("TUTOR_PREVIEW_SAMPLE_RATE", 0.02)

        # Platform
        self.database_url: str = get_str_env("DATABASE_URL", "sqlite+aiosqlite:///./tutor.db")
        self.environment: str = get_str_env("ENVIRONMENT", "development")
        self.debug_sql: bool = get_bool_env("DEBUG_SQL", False)

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/chat/completions"

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    def validate(self) -> None:
        """
        Fail fast on startup-class problems.

        Raises:
            ConfigurationError: If the upstream API key is missing
        """
        if not self.api_key:
            raise ConfigurationError("AI is not configured. Missing OPENROUTER_API_KEY.")

    def to_dict(self) -> dict:
        """Settings snapshot safe for logs (no secrets)."""
        return {
            "endpoint": self.endpoint,
            "timeout_ms": self.timeout_ms,
            "primary_model": self.primary_model,
            "fallback_model": self.fallback_model,
            "learner_rate_limit": self.learner_rate_limit,
            "ip_rate_limit": self.ip_rate_limit,
            "rate_window_seconds": self.rate_window_seconds,
            "dedup_window_seconds": self.dedup_window_seconds,
            "context_ttl_seconds": self.context_ttl_seconds,
            "environment": self.environment,
            "api_key_configured": bool(self.api_key),
        }


_settings: Optional[TutorSettings] = None


def get_settings() -> TutorSettings:
    """Get or create the process-wide settings."""
    global _settings
    if _settings is None:
        _settings = TutorSettings()
    return _settings


def reset_settings() -> None:
    """Drop cached settings so the next call re-reads the environment."""
    global _settings
    _settings = None
