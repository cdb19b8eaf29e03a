"""Application configuration and .env loading."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Centralized runtime configuration."""

    data_dir: str = Field(default="data/rfpflow", validation_alias="RFPFLOW_DATA_DIR")
    cache_scope: Literal["deterministic", "none"] = Field(
        default="deterministic", validation_alias="CACHE_SCOPE"
    )
    log_level: str = Field(default="INFO", validation_alias="RFPFLOW_LOG_LEVEL")

    generation_provider: str | None = Field(
        default=None, validation_alias="GENERATION_PROVIDER"
    )
    generation_timeout: float | None = Field(
        default=120.0, validation_alias="GENERATION_TIMEOUT"
    )
    generation_max_retries: int = Field(
        default=2, validation_alias="GENERATION_MAX_RETRIES"
    )
    generation_retry_backoff_ms: int = Field(
        default=800, validation_alias="GENERATION_RETRY_BACKOFF_MS"
    )

    research_model: str = Field(default="gpt-4o", validation_alias="RESEARCH_MODEL")
    research_temperature: float = Field(
        default=0.1, validation_alias="RESEARCH_TEMPERATURE"
    )
    research_max_tokens: int = Field(
        default=2000, validation_alias="RESEARCH_MAX_TOKENS"
    )

    draft_model: str = Field(default="gpt-4o", validation_alias="DRAFT_MODEL")
    draft_temperature: float = Field(default=0.3, validation_alias="DRAFT_TEMPERATURE")
    draft_max_tokens: int = Field(default=2000, validation_alias="DRAFT_MAX_TOKENS")

    tailor_model: str = Field(default="o3-mini", validation_alias="TAILOR_MODEL")
    tailor_temperature: float = Field(default=0.4, validation_alias="TAILOR_TEMPERATURE")
    tailor_max_tokens: int = Field(default=3000, validation_alias="TAILOR_MAX_TOKENS")

    context_model: str = Field(default="gpt-4o", validation_alias="CONTEXT_MODEL")
    context_temperature: float = Field(
        default=0.1, validation_alias="CONTEXT_TEMPERATURE"
    )
    context_max_tokens: int = Field(default=1000, validation_alias="CONTEXT_MAX_TOKENS")

    link_validation_timeout: float = Field(
        default=10.0, validation_alias="LINK_VALIDATION_TIMEOUT"
    )
    link_validation_concurrency: int = Field(
        default=5, validation_alias="LINK_VALIDATION_CONCURRENCY"
    )

    failure_policy: Literal["continue", "fail_fast"] = Field(
        default="continue", validation_alias="FAILURE_POLICY"
    )
    event_log_size: int = Field(default=500, validation_alias="EVENT_LOG_SIZE")
    worker_lease_seconds: float = Field(
        default=60.0, gt=0, validation_alias="WORKER_LEASE_SECONDS"
    )

    langsmith_api_key: str | None = Field(
        default=None, validation_alias="LANGSMITH_API_KEY"
    )
    langsmith_project: str | None = Field(
        default=None, validation_alias="LANGSMITH_PROJECT"
    )
    langsmith_endpoint: str | None = Field(
        default=None, validation_alias="LANGSMITH_ENDPOINT"
    )
    langsmith_tracing: bool = Field(default=False, validation_alias="LANGSMITH_TRACING")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings once from .env/environment."""
    return Settings()


__all__ = ["Settings", "get_settings"]
