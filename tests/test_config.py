"""Tests for settings loading."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from skillrouter.config import RouterSettings, Settings, get_settings


class TestSettings:
    def test_defaults(self, monkeypatch):
        for name in ("ROUTER_PRIMARY_STRATEGY", "LLM_API_KEY", "REDIS_ENABLED", "WEB_SEARXNG_URL"):
            monkeypatch.delenv(name, raising=False)

        settings = Settings(_env_file=None)

        assert settings.router.primary_strategy == "deterministic"
        assert settings.router.creation_confidence_threshold == 0.85
        assert settings.router.chat_suggestion_confidence == 0.8
        assert settings.router.max_skills_in_prompt == 15
        assert settings.router.max_history_turns == 5
        assert settings.router.confirmation_ttl_seconds == 300
        assert settings.llm.api_key is None
        assert not settings.redis.enabled
        assert settings.web.searxng_url is None

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("ROUTER_PRIMARY_STRATEGY", "probabilistic")
        monkeypatch.setenv("ROUTER_CONFIRMATION_TTL_SECONDS", "60")
        monkeypatch.setenv("LLM_MODEL", "meta/llama")
        monkeypatch.setenv("SKILLROUTER_LOG_LEVEL", "DEBUG")

        settings = get_settings()

        assert settings.router.primary_strategy == "probabilistic"
        assert settings.router.confirmation_ttl_seconds == 60
        assert settings.llm.model == "meta/llama"
        assert settings.log_level == "DEBUG"

    def test_invalid_strategy(self, monkeypatch):
        monkeypatch.setenv("ROUTER_PRIMARY_STRATEGY", "random")
        with pytest.raises(ValidationError):
            RouterSettings()

    def test_threshold_bounds(self):
        with pytest.raises(ValidationError):
            RouterSettings(creation_confidence_threshold=1.5)

    def test_rules_file_expands_user(self):
        settings = RouterSettings(rules_file="~/rules.yaml")
        assert settings.rules_file == Path("~/rules.yaml").expanduser()
        assert RouterSettings(rules_file="").rules_file is None

    def test_redis_url(self):
        from skillrouter.config import RedisSettings

        assert RedisSettings(host="cache", port=6380, db=2).url == "redis://cache:6380/2"
        assert RedisSettings(password="pw").url == "redis://:pw@localhost:6379/0"

    def test_cached(self):
        assert get_settings() is get_settings()
