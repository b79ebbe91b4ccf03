"""Skill store - tracked metrics and their entries.

The router only needs the small surface on ``SkillStore``. The bundled
``InMemorySkillStore`` is the default and what the tests run against.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any

from skillrouter.exceptions import SkillStoreError
from skillrouter.models.decisions import ProposedSkill
from skillrouter.models.skills import Entry, Skill, SkillStats

logger = logging.getLogger(__name__)

WEEK_DAYS = 7


class SkillStore(ABC):
    """Storage interface used by the router."""

    @abstractmethod
    async def list_skills(self) -> list[Skill]:
        """All skills in declaration order."""

    @abstractmethod
    async def get_skill(self, skill_id: str) -> Skill | None: ...

    @abstractmethod
    async def add_entry(
        self,
        skill_id: str,
        amount: float,
        unit: str | None = None,
        note: str | None = None,
    ) -> Entry:
        """Record a data point. Raises SkillStoreError for unknown skills."""

    @abstractmethod
    async def get_daily_stats(self, skill_id: str) -> SkillStats: ...

    @abstractmethod
    async def get_week_stats(self, skill_id: str) -> SkillStats: ...

    @abstractmethod
    async def create_skill(
        self, skill_id: str, definition: ProposedSkill | dict[str, Any]
    ) -> Skill:
        """Create a skill. Raises SkillStoreError if the id is taken."""


class InMemorySkillStore(SkillStore):
    """Dict-backed store; entries live for the lifetime of the process."""

    def __init__(
        self,
        skills: list[Skill] | None = None,
        now: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._skills: dict[str, Skill] = {}
        self._entries: list[Entry] = []
        self._now = now
        for skill in skills or []:
            self._skills[skill.id] = skill

    @property
    def entries(self) -> list[Entry]:
        return list(self._entries)

    async def list_skills(self) -> list[Skill]:
        return list(self._skills.values())

    async def get_skill(self, skill_id: str) -> Skill | None:
        return self._skills.get(skill_id)

    async def add_entry(
        self,
        skill_id: str,
        amount: float,
        unit: str | None = None,
        note: str | None = None,
    ) -> Entry:
        skill = self._skills.get(skill_id)
        if skill is None:
            raise SkillStoreError(f"unknown skill: {skill_id}")

        entry = Entry(
            skill_id=skill_id,
            amount=amount,
            unit=unit or skill.unit,
            note=note,
            created_at=self._now(),
        )
        self._entries.append(entry)
        skill.usage_count += 1
        logger.debug("Logged %s %s to %s", amount, entry.unit, skill_id)
        return entry

    def _stats_since(self, skill_id: str, since: datetime) -> SkillStats:
        stats = SkillStats()
        for entry in self._entries:
            if entry.skill_id == skill_id and entry.created_at >= since:
                stats.sum += entry.amount
                stats.count += 1
        return stats

    async def get_daily_stats(self, skill_id: str) -> SkillStats:
        start_of_day = self._now().replace(hour=0, minute=0, second=0, microsecond=0)
        return self._stats_since(skill_id, start_of_day)

    async def get_week_stats(self, skill_id: str) -> SkillStats:
        start_of_day = self._now().replace(hour=0, minute=0, second=0, microsecond=0)
        return self._stats_since(skill_id, start_of_day - timedelta(days=WEEK_DAYS - 1))

    async def create_skill(
        self, skill_id: str, definition: ProposedSkill | dict[str, Any]
    ) -> Skill:
        if skill_id in self._skills:
            raise SkillStoreError(f"skill already exists: {skill_id}")
        if isinstance(definition, dict):
            definition = ProposedSkill.model_validate(definition)

        skill = Skill(
            id=skill_id,
            name=definition.name,
            unit=definition.unit or "",
            triggers=list(definition.triggers),
            daily_goal=definition.daily_goal,
            description=definition.description,
            icon=definition.icon,
            skill_type=definition.type,
        )
        self._skills[skill_id] = skill
        logger.info("Created skill %s (%s)", skill_id, definition.name)
        return skill
