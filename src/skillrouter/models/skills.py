"""Skill data model shared by the router and the skill store."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass
class Skill:
    """A tracked metric (e.g. water intake)."""

    id: str
    name: str
    unit: str = ""
    triggers: list[str] = field(default_factory=list)
    daily_goal: float | None = None
    description: str = ""
    icon: str | None = None
    skill_type: str = "counter"
    examples: list[str] = field(default_factory=list)
    usage_count: int = 0

    @property
    def purpose_category(self) -> str:
        """Coarse semantic bucket derived from the skill id."""
        from skillrouter.core.rule_registry import get_rule_registry

        return get_rule_registry().category_for_skill(self.id)

    def unit_suffix(self) -> str:
        return f" {self.unit}" if self.unit else ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "unit": self.unit,
            "triggers": list(self.triggers),
            "daily_goal": self.daily_goal,
            "description": self.description,
            "icon": self.icon,
            "skill_type": self.skill_type,
            "examples": list(self.examples),
            "usage_count": self.usage_count,
        }


@dataclass(frozen=True)
class ExtractedValue:
    """Quantity parsed out of an utterance. Never persisted by the router."""

    amount: float
    unit: str

    def to_dict(self) -> dict[str, Any]:
        return {"amount": self.amount, "unit": self.unit}


@dataclass
class Entry:
    """A single logged data point."""

    skill_id: str
    amount: float
    unit: str
    note: str | None = None
    source: str = "router"
    created_at: datetime = field(default_factory=datetime.now)


@dataclass
class SkillStats:
    """Aggregate over a window of entries."""

    sum: float = 0
    count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {"sum": self.sum, "count": self.count}
