"""Decision Resolver - ask the completion service what to do.

Used when the deterministic path cannot settle an utterance. Builds a
bounded prompt (top skills by usage, last few turns), makes exactly one
completion call and parses the reply. Never raises: every failure becomes
the fixed low-confidence chat fallback.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from skillrouter.agents.parsing import normalize_decision, parse_payload
from skillrouter.models.decisions import IntentDecision, fallback_decision
from skillrouter.services.metrics import record_fallback

if TYPE_CHECKING:
    from collections.abc import Sequence

    from skillrouter.config import Settings
    from skillrouter.models.skills import Skill
    from skillrouter.services.llm import CompletionService

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = "You are an intent classifier. Output ONLY valid JSON. No explanations outside JSON."

DECISION_PROMPT = """You are an intelligent assistant router. Analyze the user's input and decide how to handle it.

## User Input
"{user_input}"

## Available Skills
{skill_list}

## Recent Conversation
{history}

## Your Task
Decide the best way to handle this input:

1. **use_skill** - the user wants to log data, track something, or read back a metric that matches an existing skill
2. **create_skill** - the user is trying to track something NEW that has no skill yet
3. **web_search** - the user needs current information, facts, news or real-time data
4. **chat** - conversation, help requests, or questions you can answer directly

## Response Format (JSON only)
{{
  "action": "use_skill" | "create_skill" | "web_search" | "chat",
  "confidence": 0.0-1.0,
  "reasoning": "brief explanation",
  "skillId": "skill_id_to_use",
  "skillAction": "log" | "query" | "stats" | "help",
  "extractedData": {{"value": 123, "unit": "ml", "note": "optional note"}},
  "proposedSkill": {{
    "name": "skill name",
    "type": "counter" | "number" | "duration" | "scale" | "text",
    "description": "what it tracks",
    "unit": "optional unit",
    "triggers": ["keyword1", "keyword2"]
  }},
  "searchQuery": "optimized search query",
  "suggestedResponse": "optional direct response if simple"
}}

Rules:
- Be decisive. Pick the most appropriate action.
- If a skill exists that matches, prefer use_skill over create_skill.
- Confidence: 0.9+ for clear matches, 0.6-0.8 for likely, below 0.6 for uncertain."""

MAX_TRIGGERS_IN_PROMPT = 3
MAX_TURN_CHARS = 100


@dataclass
class ResolverConfig:
    """Prompt size and call limits for the resolver."""

    model: str = "openai/gpt-4o-mini"
    max_skills: int = 15
    max_history_turns: int = 5
    timeout_seconds: float = 20.0

    @classmethod
    def from_settings(cls, settings: Settings) -> ResolverConfig:
        return cls(
            model=settings.llm.model,
            max_skills=settings.router.max_skills_in_prompt,
            max_history_turns=settings.router.max_history_turns,
            timeout_seconds=settings.llm.timeout_seconds,
        )


def select_prompt_skills(skills: Sequence[Skill], limit: int) -> list[Skill]:
    """Most-used skills first; declaration order breaks ties."""
    # sorted() is stable, so equal usage keeps the declared order
    return sorted(skills, key=lambda s: -(s.usage_count or 0))[:limit]


def render_skill(skill: Skill) -> str:
    line = f"- **{skill.name}** ({skill.id})"
    if skill.unit:
        line += f" [unit: {skill.unit}]"
    line += f": {skill.description or f'Track {skill.name}'}"
    if skill.triggers:
        line += f" [triggers: {', '.join(skill.triggers[:MAX_TRIGGERS_IN_PROMPT])}]"
    return line


def render_history(turns: Sequence[dict[str, Any]]) -> str:
    lines = []
    for turn in turns:
        content = str(turn.get("content", ""))[:MAX_TURN_CHARS]
        lines.append(f"{turn.get('role', 'user')}: {content}")
    return "\n".join(lines)


class DecisionResolver:
    """Probabilistic decision maker backed by a completion service."""

    def __init__(
        self,
        completion: CompletionService | None,
        config: ResolverConfig | None = None,
    ) -> None:
        self._completion = completion
        self.config = config or ResolverConfig()

    def build_messages(
        self,
        text: str,
        skills: Sequence[Skill],
        conversation_history: Sequence[dict[str, Any]] | None = None,
    ) -> list[dict[str, str]]:
        """Render the system and user messages for one decision call."""
        prompt_skills = select_prompt_skills(skills, self.config.max_skills)
        skill_list = (
            "\n".join(render_skill(s) for s in prompt_skills)
            if prompt_skills
            else "(No skills configured yet)"
        )

        history = list(conversation_history or [])
        recent = history[-self.config.max_history_turns :] if self.config.max_history_turns else []
        history_text = render_history(recent) if recent else "(No recent conversation)"

        prompt = DECISION_PROMPT.format(
            user_input=text,
            skill_list=skill_list,
            history=history_text,
        )
        return [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ]

    async def resolve(
        self,
        text: str,
        skills: Sequence[Skill],
        conversation_history: Sequence[dict[str, Any]] | None = None,
    ) -> IntentDecision:
        """Return a validated decision, or the chat fallback."""
        if self._completion is None:
            logger.warning("No completion service configured, using fallback decision")
            record_fallback("service")
            return fallback_decision()

        messages = self.build_messages(text, skills, conversation_history)
        try:
            response = await asyncio.wait_for(
                self._completion.complete(self.config.model, messages),
                timeout=self.config.timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Decision call timed out after %.1fs, using fallback decision",
                self.config.timeout_seconds,
            )
            record_fallback("timeout")
            return fallback_decision()
        except Exception as e:
            logger.warning("Decision call failed, using fallback decision: %s", e)
            record_fallback("service")
            return fallback_decision()

        payload = parse_payload(response.text or "")
        if payload is None:
            logger.warning("Decision output was not JSON, using fallback decision")
            record_fallback("parse")
            return fallback_decision()

        try:
            decision = normalize_decision(payload)
        except ValidationError as e:
            logger.warning("Decision output failed validation, using fallback decision: %s", e)
            record_fallback("parse")
            return fallback_decision()

        logger.debug(
            "Resolved %s (confidence %.2f): %s",
            decision.action,
            decision.confidence,
            decision.reasoning,
        )
        return decision
