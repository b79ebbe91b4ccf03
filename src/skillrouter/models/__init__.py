"""skillrouter models."""

from skillrouter.models.decisions import (
    Chat,
    CreateSkill,
    DecisionAction,
    ExtractedData,
    IntentDecision,
    ProposedSkill,
    SkillAction,
    UseSkill,
    WebSearch,
    fallback_decision,
)
from skillrouter.models.results import ActionResult, ResultType
from skillrouter.models.skills import Entry, ExtractedValue, Skill, SkillStats

__all__ = [
    "ActionResult",
    "Chat",
    "CreateSkill",
    "DecisionAction",
    "Entry",
    "ExtractedData",
    "ExtractedValue",
    "IntentDecision",
    "ProposedSkill",
    "ResultType",
    "Skill",
    "SkillAction",
    "SkillStats",
    "UseSkill",
    "WebSearch",
    "fallback_decision",
]
