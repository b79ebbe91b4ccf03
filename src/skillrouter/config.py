"""skillrouter Configuration Management.

Uses Pydantic Settings for type-safe configuration with environment variable support.
"""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class RedisSettings(BaseSettings):
    """Redis connection settings (confirmation persistence)."""

    model_config = SettingsConfigDict(env_prefix="REDIS_")

    enabled: bool = False
    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: str | None = None
    key_prefix: str = "skillrouter:confirmation:"

    @property
    def url(self) -> str:
        """Build Redis URL."""
        if self.password:
            return f"redis://:{self.password}@{self.host}:{self.port}/{self.db}"
        return f"redis://{self.host}:{self.port}/{self.db}"


class LLMSettings(BaseSettings):
    """Completion service settings."""

    model_config = SettingsConfigDict(env_prefix="LLM_")

    api_key: str | None = None
    base_url: str = "https://openrouter.ai/api/v1"
    model: str = "openai/gpt-4o-mini"
    temperature: float = Field(default=0.2, ge=0.0, le=2.0)
    max_tokens: int = 600
    timeout_seconds: float = Field(default=20.0, gt=0)


class WebLookupSettings(BaseSettings):
    """Web lookup backend settings."""

    model_config = SettingsConfigDict(env_prefix="WEB_")

    searxng_url: str | None = None
    max_results: int = 5
    timeout_seconds: float = Field(default=15.0, gt=0)


class RouterSettings(BaseSettings):
    """Decision thresholds and limits for the action router."""

    model_config = SettingsConfigDict(env_prefix="ROUTER_")

    # Strategy
    primary_strategy: Literal["deterministic", "probabilistic"] = "deterministic"

    # Confidence gates
    creation_confidence_threshold: float = Field(default=0.85, ge=0.0, le=1.0)
    chat_suggestion_confidence: float = Field(default=0.8, ge=0.0, le=1.0)

    # Prompt size
    max_skills_in_prompt: int = 15
    max_history_turns: int = 5

    # Pending confirmations
    confirmation_ttl_seconds: int = 300

    # Feature flags
    enable_auto_skill_creation: bool = True
    enable_web_search: bool = True

    # Optional override for the bundled rules table
    rules_file: Path | None = None

    @field_validator("rules_file", mode="before")
    @classmethod
    def expand_path(cls, v: str | Path | None) -> Path | None:
        """Expand ~ in paths."""
        if v in (None, ""):
            return None
        return Path(v).expanduser()


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_prefix="SKILLROUTER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Environment
    env: Literal["development", "staging", "production"] = "development"
    debug: bool = False

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # Nested settings
    router: RouterSettings = Field(default_factory=RouterSettings)
    llm: LLMSettings = Field(default_factory=LLMSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    web: WebLookupSettings = Field(default_factory=WebLookupSettings)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Uses lru_cache to ensure settings are loaded once and reused.
    """
    return Settings()
