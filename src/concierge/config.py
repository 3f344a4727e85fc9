"""Application Configuration

Type-safe configuration using Pydantic Settings for environment variable handling.

The three secrets the concierge cannot run without (LLM provider key, datastore
URL, datastore service credential) are required. Everything else has a default
suitable for development. Missing secrets fail the process at import time with
a ConfigurationError naming every missing variable, never per request.
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings

from .domain.exceptions import ConfigurationError

# Origins the mobile client and the hosted dashboard are served from.
DEFAULT_CORS_ORIGINS: tuple[str, ...] = (
    "http://localhost:8081",
    "http://localhost:19006",
    "https://sevenkeys.app",
)


class Settings(BaseSettings):
    """Application settings from environment variables"""

    # =============================================================================
    # APPLICATION
    # =============================================================================

    app_name: str = Field(default="Seven Keys Concierge", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    environment: str = Field(default="development", alias="ENVIRONMENT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_format: str = Field(default="console", alias="LOG_FORMAT")

    # =============================================================================
    # SECRETS (required at cold start)
    # =============================================================================

    anthropic_api_key: str = Field(..., alias="ANTHROPIC_API_KEY", min_length=1)
    supabase_url: str = Field(..., alias="SUPABASE_URL", min_length=1)
    supabase_service_role_key: str = Field(..., alias="SUPABASE_SERVICE_ROLE_KEY", min_length=1)

    # =============================================================================
    # SESSION STORE
    # =============================================================================

    redis_url: str = Field(default="redis://localhost:6379/0", alias="REDIS_URL")
    lock_wait_seconds: float = Field(default=5.0, gt=0, alias="LOCK_WAIT_SECONDS")

    # =============================================================================
    # CORS
    # =============================================================================

    # Comma separated, extends DEFAULT_CORS_ORIGINS
    cors_allowed_origins: str = Field(default="", alias="CORS_ALLOWED_ORIGINS")
    cors_default_origin: str = Field(default="https://sevenkeys.app", alias="CORS_DEFAULT_ORIGIN")

    # =============================================================================
    # LLM / ORCHESTRATION
    # =============================================================================

    llm_model: str = Field(default="claude-sonnet-4-20250514", alias="LLM_MODEL")
    llm_max_tokens: int = Field(default=1024, gt=0, alias="LLM_MAX_TOKENS")
    max_model_calls: int = Field(default=5, ge=1, le=10, alias="MAX_MODEL_CALLS")
    history_limit: int = Field(default=20, ge=1, alias="HISTORY_LIMIT")
    max_message_length: int = Field(default=4000, gt=0, alias="MAX_MESSAGE_LENGTH")
    venue_timezone: str = Field(default="Asia/Dubai", alias="VENUE_TIMEZONE")

    # =============================================================================
    # TIMEOUTS
    # =============================================================================

    request_timeout_seconds: float = Field(default=20.0, gt=0, alias="REQUEST_TIMEOUT_SECONDS")
    model_timeout_seconds: float = Field(default=8.0, gt=0, alias="MODEL_TIMEOUT_SECONDS")
    tool_timeout_seconds: float = Field(default=5.0, gt=0, alias="TOOL_TIMEOUT_SECONDS")
    model_retry_backoff_seconds: float = Field(default=0.5, ge=0, alias="MODEL_RETRY_BACKOFF_SECONDS")

    model_config = {"env_file": ".env", "case_sensitive": False, "extra": "ignore"}

    @field_validator("log_format")
    @classmethod
    def known_log_format(cls, v: str) -> str:
        if v not in ("console", "json"):
            raise ValueError("LOG_FORMAT must be 'console' or 'json'")
        return v

    @model_validator(mode="after")
    def sub_timeouts_fit_in_request_budget(self) -> Settings:
        """Per-call timeouts must be strictly smaller than the whole-request deadline."""
        budget = self.request_timeout_seconds
        if self.model_timeout_seconds >= budget or self.tool_timeout_seconds >= budget:
            raise ValueError("MODEL_TIMEOUT_SECONDS and TOOL_TIMEOUT_SECONDS must be smaller than REQUEST_TIMEOUT_SECONDS")
        return self

    @property
    def extra_cors_origins(self) -> tuple[str, ...]:
        return tuple(origin.strip() for origin in self.cors_allowed_origins.split(",") if origin.strip())

    @property
    def is_development(self) -> bool:
        return self.environment == "development"


def load_settings() -> Settings:
    """Validate the environment, turning missing variables into one startup error."""
    try:
        return Settings.model_validate({})
    except ValidationError as exc:
        missing = [
            str(error["loc"][0])
            for error in exc.errors()
            if error["type"] == "missing" and error["loc"]
        ]
        if missing:
            raise ConfigurationError(f"Missing required environment variables: {', '.join(missing)}") from exc
        raise ConfigurationError(f"Invalid configuration: {exc}") from exc


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()


settings = get_settings()
