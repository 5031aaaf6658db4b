"""Typed settings configuration - single source of truth."""

from functools import lru_cache
from typing import Literal

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Database (unset = in-memory stores)
    database_url: str | None = None

    # Change feed (unset = in-process feed)
    redis_url: str | None = None

    # Itinerary generation
    itinerary_backend: Literal["openai", "stub"] = "openai"
    llm_api_key: SecretStr | None = None
    llm_base_url: str | None = None
    llm_model: str = "gpt-4o-mini"

    # Pricing search
    pricing_backend: Literal["http", "fixture"] = "http"
    pricing_search_url: str = ""
    pricing_api_key: SecretStr | None = None

    # Cosmetic group image regeneration (unset = disabled)
    share_image_url: str = ""

    # Timeouts (seconds) for outbound calls
    external_timeout_seconds: float = 60.0

    # Share link lifecycle
    link_ttl_hours: int = 24
    share_code_max_attempts: int = 10

    # SSE
    stream_heartbeat_seconds: float = 15.0


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
