"""Skill storage."""

from skillrouter.services.skills.store import InMemorySkillStore, SkillStore

__all__ = ["InMemorySkillStore", "SkillStore"]
