"""Shared fixtures for skillrouter tests."""

from __future__ import annotations

import pytest
import structlog

from skillrouter.agents.dispatcher import reset_dispatcher
from skillrouter.config import get_settings
from skillrouter.core.rule_registry import RuleRegistry, reset_rule_registry
from skillrouter.models.skills import Skill


@pytest.fixture(autouse=True)
def _reset_globals():
    """Keep cached settings, rule tables, logging and the dispatcher per-test."""
    get_settings.cache_clear()
    reset_rule_registry()
    reset_dispatcher()
    structlog.reset_defaults()
    yield
    get_settings.cache_clear()
    reset_rule_registry()
    reset_dispatcher()
    structlog.reset_defaults()


@pytest.fixture
def registry() -> RuleRegistry:
    """The bundled rule tables."""
    reg = RuleRegistry()
    reg.load()
    return reg


@pytest.fixture
def water_skill() -> Skill:
    return Skill(
        id="water",
        name="Water",
        unit="ml",
        triggers=["water", "drank"],
        daily_goal=2000,
        description="Daily water intake",
        icon="💧",
        examples=["drank 2 glasses of water"],
    )


@pytest.fixture
def calories_skill() -> Skill:
    return Skill(
        id="calories",
        name="Calories",
        unit="kcal",
        triggers=["kcal", "calories", "food"],
        daily_goal=2000,
        description="Daily calorie intake",
    )


class FakeClock:
    """Manually advanced clock for TTL tests."""

    def __init__(self, start: float = 1_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
