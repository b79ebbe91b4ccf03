"""Skill Matcher - pick the registered skill an utterance is about.

Scores come from id/name/trigger overlap plus a purpose-category bonus,
minus penalties for cross-category matches (water vs food). Ties go to the
skill seen first in the declared order.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from skillrouter.core.rule_registry import get_rule_registry

if TYPE_CHECKING:
    from collections.abc import Sequence

    from skillrouter.core.rule_registry import RuleRegistry
    from skillrouter.models.skills import Skill

logger = logging.getLogger(__name__)


@dataclass
class SkillScore:
    """Score breakdown for one skill (kept for diagnostics)."""

    skill: Skill
    category: str
    total: int = 0
    reasons: list[str] = field(default_factory=list)


class SkillMatcher:
    """Scores skills against an utterance."""

    def __init__(self, registry: RuleRegistry | None = None) -> None:
        self._registry = registry

    @property
    def registry(self) -> RuleRegistry:
        if self._registry is None:
            self._registry = get_rule_registry()
        return self._registry

    def purpose_of(self, skill: Skill) -> str:
        return self.registry.category_for_skill(skill.id)

    def score(self, text: str, skill: Skill) -> SkillScore:
        """Score a single skill against the utterance."""
        registry = self.registry
        weights = registry.scoring
        lower = text.lower()
        category = registry.category_for_skill(skill.id)
        result = SkillScore(skill=skill, category=category)

        if skill.id.lower() in lower:
            result.total += weights.id_match
            result.reasons.append("id")
        if skill.name and skill.name.lower() in lower:
            result.total += weights.name_match
            result.reasons.append("name")
        for trigger in skill.triggers:
            if trigger and trigger.lower() in lower:
                result.total += weights.trigger_match
                result.reasons.append(f"trigger:{trigger}")

        purpose = registry.category(category)
        if purpose is not None and purpose.mentioned_in(lower):
            result.total += weights.purpose_match
            result.reasons.append(f"purpose:{category}")

        mismatch = registry.mismatch_rule(category)
        if mismatch is not None and mismatch.fires_on(lower):
            result.total -= mismatch.penalty
            result.reasons.append(f"mismatch:{mismatch.conflicts_with}")

        return result

    def rank(self, text: str, skills: Sequence[Skill]) -> list[SkillScore]:
        """Score every skill, in declared order."""
        return [self.score(text, skill) for skill in skills]

    def find(self, text: str, skills: Sequence[Skill]) -> Skill | None:
        """Return the best-scoring skill, or None if no score is positive."""
        best: SkillScore | None = None
        for scored in self.rank(text, skills):
            # Strictly greater: equal scores keep the earlier skill
            if scored.total > 0 and (best is None or scored.total > best.total):
                best = scored

        if best is None:
            return None
        logger.debug(
            "Matched skill %s (score %d: %s)",
            best.skill.id,
            best.total,
            ", ".join(best.reasons),
        )
        return best.skill


def find_matching_skill(
    text: str,
    skills: Sequence[Skill],
    registry: RuleRegistry | None = None,
) -> Skill | None:
    """Convenience wrapper around SkillMatcher."""
    return SkillMatcher(registry).find(text, skills)
