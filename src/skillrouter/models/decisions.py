"""Intent decisions - the router's resolved action for one input.

A decision is exactly one of four shapes, discriminated on ``action``.
Completion output uses camelCase keys (``skillId``, ``proposedSkill``, ...);
both spellings are accepted.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator


class DecisionAction(str, Enum):
    """The four things the router can do with an utterance."""

    USE_SKILL = "use_skill"
    CREATE_SKILL = "create_skill"
    WEB_SEARCH = "web_search"
    CHAT = "chat"


class SkillAction(str, Enum):
    """What to do with an existing skill."""

    LOG = "log"
    QUERY = "query"
    STATS = "stats"
    HELP = "help"


class ExtractedData(BaseModel):
    """Value the completion service pulled out of the utterance."""

    model_config = ConfigDict(extra="ignore")

    value: float | None = None
    unit: str | None = None
    note: str | None = None


class ProposedSkill(BaseModel):
    """Definition of a skill that does not exist yet."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    name: str = Field(min_length=1)
    type: str = "number"
    description: str = ""
    unit: str | None = None
    triggers: list[str] = Field(default_factory=list)
    daily_goal: float | None = Field(default=None, alias="dailyGoal")
    icon: str | None = None

    @property
    def skill_id(self) -> str:
        """Slug used as the new skill's id."""
        slug = re.sub(r"[^a-z0-9_]", "_", self.name.strip().lower())
        return re.sub(r"_+", "_", slug).strip("_") or "custom"


class _DecisionBase(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    reasoning: str = ""


class UseSkill(_DecisionBase):
    """Log to or read from an existing skill."""

    action: Literal["use_skill"] = "use_skill"
    skill_id: str = Field(default="", alias="skillId")
    skill_action: SkillAction = Field(default=SkillAction.HELP, alias="skillAction")
    extracted_data: ExtractedData | None = Field(default=None, alias="extractedData")

    @field_validator("skill_action", mode="before")
    @classmethod
    def unknown_action_is_help(cls, v: Any) -> Any:
        if isinstance(v, str) and v.lower() in {a.value for a in SkillAction}:
            return v.lower()
        if isinstance(v, SkillAction):
            return v
        return SkillAction.HELP


class CreateSkill(_DecisionBase):
    """Create a new skill (possibly after user confirmation)."""

    action: Literal["create_skill"] = "create_skill"
    proposed_skill: ProposedSkill | None = Field(default=None, alias="proposedSkill")


class WebSearch(_DecisionBase):
    """Look something up on the web."""

    action: Literal["web_search"] = "web_search"
    search_query: str | None = Field(default=None, alias="searchQuery")


class Chat(_DecisionBase):
    """Reply conversationally."""

    action: Literal["chat"] = "chat"
    suggested_response: str | None = Field(default=None, alias="suggestedResponse")


IntentDecision = Annotated[
    Union[UseSkill, CreateSkill, WebSearch, Chat],
    Field(discriminator="action"),
]

intent_decision_adapter: TypeAdapter[IntentDecision] = TypeAdapter(IntentDecision)

FALLBACK_CONFIDENCE = 0.3
FALLBACK_REASONING = "fallback due to analysis error"


def fallback_decision() -> Chat:
    """Decision used when the completion service output cannot be used."""
    return Chat(confidence=FALLBACK_CONFIDENCE, reasoning=FALLBACK_REASONING)
