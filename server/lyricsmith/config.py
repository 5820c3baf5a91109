# ─────────────────────────────────────────────────────────────────────────────
# Settings — Pydantic v2 BaseSettings
# ─────────────────────────────────────────────────────────────────────────────


from functools import lru_cache
from typing import Literal

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

APP_VERSION = "1.0.0"


class Settings(BaseSettings):
    """Server configuration sourced from environment variables.

    Uses pydantic-settings v2 (separate package from pydantic).
    Field names map 1:1 to upper-case env vars (RATE_LIMIT_REQUESTS, ...).
    """

    model_config = SettingsConfigDict(env_prefix="", env_file=".env", extra="ignore")

    # ── LLM provider ─────────────────────────────────────────────────────────
    llm_provider: Literal["openai", "anthropic"] = "openai"
    llm_model: str = ""  # Empty = provider default
    # SecretStr keeps keys out of logs, repr(), and model_dump().
    openai_api_key: SecretStr = SecretStr("")
    anthropic_api_key: SecretStr = SecretStr("")
    llm_max_retries: int = 2
    # Passed to the SDK client only. Unset = SDK default; the request pipeline
    # itself never cancels a handler.
    llm_timeout_seconds: float | None = None

    # ── Voice (text-to-speech) ───────────────────────────────────────────────
    openai_tts_enabled: bool = True
    default_voice_model: str = "gpt-4o-mini-tts"
    voice_retry_attempts: int = 3
    voice_retry_delay_ms: int = 400
    voice_preview_duration: int = 10  # seconds
    voice_preview_max_duration: int = 15

    # ── HTTP surface ─────────────────────────────────────────────────────────
    api_prefix: str = "/api"
    # Comma-separated allow-list. The first entry is the fallback origin echoed
    # on responses to requests without a recognized Origin header.
    cors_origin: str = "http://localhost:3000,http://localhost:5173"

    # ── Rate limiting ────────────────────────────────────────────────────────
    rate_limit_requests: int = 10
    rate_limit_window: int = 60  # seconds
    preview_rate_limit_requests: int = 5
    preview_rate_limit_window: int = 60
    # True = admit requests when the usage store errors (availability first).
    rate_limit_fail_open: bool = True
    rate_limit_storage: Literal["sqlite", "memory"] = "sqlite"
    usage_retention_seconds: int = 3600
    usage_cleanup_interval_seconds: int = 300

    # ── Persistence ──────────────────────────────────────────────────────────
    database_url: str = "data/lyricsmith.db"

    # ── Logging ──────────────────────────────────────────────────────────────
    log_level: str = "INFO"
    log_json: bool = True

    # ── Tracing ──────────────────────────────────────────────────────────────
    # "console" prints spans to stdout; empty disables OpenTelemetry export.
    otel_exporter: str = ""

    @property
    def active_llm_key(self) -> str:
        """API key for the selected provider ('' when unset)."""
        if self.llm_provider == "anthropic":
            return self.anthropic_api_key.get_secret_value()
        return self.openai_api_key.get_secret_value()


@lru_cache
def get_settings() -> Settings:
    """Cached settings singleton."""
    return Settings()
