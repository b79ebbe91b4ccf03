"""Action handlers - execute a resolved decision and describe the outcome.

One handler per decision action. Handlers talk to the external
collaborators (skill store, confirmation store, web lookup, completion
service) and always return an ActionResult for expected failures. Anything
unexpected propagates to the dispatcher.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from skillrouter.agents.extraction import DEFAULT_VALUE, ValueExtractor
from skillrouter.exceptions import CompletionError, SkillStoreError
from skillrouter.models.decisions import SkillAction
from skillrouter.models.results import ActionResult, ResultType
from skillrouter.models.skills import ExtractedValue

if TYPE_CHECKING:
    from skillrouter.models.decisions import Chat, CreateSkill, ProposedSkill, UseSkill, WebSearch
    from skillrouter.models.skills import Skill, SkillStats
    from skillrouter.services.confirmation import ConfirmationStore, PendingConfirmation
    from skillrouter.services.llm import CompletionService
    from skillrouter.services.skills import SkillStore
    from skillrouter.services.web_lookup import WebLookupService

logger = logging.getLogger(__name__)

CHAT_SYSTEM_PROMPT = (
    "You are a friendly personal tracking assistant. You help the user log "
    "habits and metrics and answer questions briefly. Keep replies to two or "
    "three sentences."
)

# Set in PendingConfirmation.extra when the proposal came from the type table
LOG_DEFAULT_VALUE = "log_default_value"


def format_amount(value: float) -> str:
    """Render 500.0 as "500" and 1.25 as "1.25"."""
    if float(value).is_integer():
        return str(int(value))
    return f"{value:.2f}".rstrip("0").rstrip(".")


def goal_progress(total: float, goal: float | None) -> int | None:
    if not goal:
        return None
    return int(round(total / goal * 100))


# =============================================================================
# Existing skills
# =============================================================================


class SkillActionHandler:
    """Log to, summarize and explain existing skills."""

    def __init__(self, store: SkillStore, extractor: ValueExtractor | None = None) -> None:
        self._store = store
        self._extractor = extractor or ValueExtractor()

    async def execute(self, decision: UseSkill, text: str) -> ActionResult:
        """Run a UseSkill decision against the store."""
        skill = await self._store.get_skill(decision.skill_id)
        if skill is None:
            return await self.not_found(decision.skill_id)

        try:
            if decision.skill_action == SkillAction.LOG:
                value = self._value_for(decision, text)
                return await self.log(skill, value, note=self._note_for(decision))
            if decision.skill_action in (SkillAction.QUERY, SkillAction.STATS):
                return await self.stats(skill)
            return self.help(skill)
        except SkillStoreError as e:
            logger.error("Skill %s failed: %s", skill.id, e)
            return ActionResult(
                success=False,
                type=ResultType.SKILL_ERROR,
                content=f"Error using {skill.name}: {e}",
                metadata={"skill_id": skill.id, "error": str(e)},
            )

    def _value_for(self, decision: UseSkill, text: str) -> ExtractedValue:
        data = decision.extracted_data
        if data is not None and data.value is not None:
            return ExtractedValue(amount=data.value, unit=data.unit or "")
        return self._extractor.extract(text)

    @staticmethod
    def _note_for(decision: UseSkill) -> str | None:
        return decision.extracted_data.note if decision.extracted_data else None

    async def not_found(self, skill_id: str) -> ActionResult:
        available = [s.id for s in await self._store.list_skills()]
        return ActionResult(
            success=False,
            type=ResultType.SKILL_NOT_FOUND,
            content=(
                f'I couldn\'t find the skill "{skill_id}". '
                f"Available skills: {', '.join(available) or 'none'}"
            ),
            metadata={"skill_id": skill_id, "available_skills": available},
        )

    async def log(
        self,
        skill: Skill,
        value: ExtractedValue,
        note: str | None = None,
        result_type: str = ResultType.SKILL_LOG,
        content_prefix: str | None = None,
    ) -> ActionResult:
        """Add one entry and report today's running total."""
        await self._store.add_entry(skill.id, value.amount, value.unit or skill.unit, note)
        today = await self._store.get_daily_stats(skill.id)

        suffix = skill.unit_suffix()
        content = content_prefix or (
            f"{skill.icon or '✅'} Logged to **{skill.name}**: {format_amount(value.amount)}{suffix}"
        )
        if today.sum > 0:
            content += f"\n📊 Today's total: {format_amount(today.sum)}{suffix}"
            progress = goal_progress(today.sum, skill.daily_goal)
            if progress is not None:
                content += f" ({progress}% of {format_amount(skill.daily_goal)} goal)"

        return ActionResult(
            success=True,
            type=result_type,
            content=content,
            metadata={
                "skill_id": skill.id,
                "logged": value.to_dict(),
                "today": today.to_dict(),
            },
        )

    async def summary(self, skill: Skill) -> ActionResult:
        """Today's total for a skill (deterministic query path)."""
        today = await self._store.get_daily_stats(skill.id)
        content = f"**{skill.name}** {skill.icon or '📊'}\n" + self._today_line(skill, today)
        progress = goal_progress(today.sum, skill.daily_goal)
        if progress is not None:
            content += f"\n🎯 Goal: {progress}% of {format_amount(skill.daily_goal)}"
        return ActionResult(
            success=True,
            type=ResultType.SKILL_QUERY,
            content=content,
            metadata={"skill_id": skill.id, "stats": today.to_dict()},
        )

    async def stats(self, skill: Skill) -> ActionResult:
        """Today and this week for a skill."""
        today = await self._store.get_daily_stats(skill.id)
        week = await self._store.get_week_stats(skill.id)
        suffix = skill.unit_suffix()

        content = f"**{skill.name}** {skill.icon or '📊'}\n" + self._today_line(skill, today)
        content += f"\nThis week: {format_amount(week.sum)}{suffix} ({week.count} entries)"
        progress = goal_progress(today.sum, skill.daily_goal)
        if progress is not None:
            content += f"\n🎯 Daily goal: {progress}% complete"

        return ActionResult(
            success=True,
            type=ResultType.SKILL_STATS,
            content=content,
            metadata={
                "skill_id": skill.id,
                "stats": {"today": today.to_dict(), "week": week.to_dict()},
            },
        )

    @staticmethod
    def _today_line(skill: Skill, today: SkillStats) -> str:
        return f"Today: {format_amount(today.sum)}{skill.unit_suffix()} ({today.count} entries)"

    @staticmethod
    def help(skill: Skill) -> ActionResult:
        examples = ", ".join(skill.examples[:3]) or "None"
        content = (
            f"**{skill.name}** {skill.icon or ''}".rstrip()
            + f"\n{skill.description or 'No description'}\n\n"
            + f"Triggers: {', '.join(skill.triggers)}\nExamples: {examples}"
        )
        return ActionResult(
            success=True,
            type=ResultType.SKILL_HELP,
            content=content,
            metadata={"skill_id": skill.id},
        )


# =============================================================================
# New skills
# =============================================================================


class SkillCreationHandler:
    """Create skills outright or park them behind a yes/no confirmation."""

    def __init__(
        self,
        store: SkillStore,
        confirmations: ConfirmationStore,
        skill_actions: SkillActionHandler,
        extractor: ValueExtractor | None = None,
        confidence_threshold: float = 0.85,
        enabled: bool = True,
    ) -> None:
        self._store = store
        self._confirmations = confirmations
        self._skill_actions = skill_actions
        self._extractor = extractor or ValueExtractor()
        self.confidence_threshold = confidence_threshold
        self.enabled = enabled

    async def handle(
        self,
        decision: CreateSkill,
        text: str,
        session_id: str,
        log_default_value: bool = False,
    ) -> ActionResult:
        """Apply the confidence gate to a CreateSkill decision."""
        if not self.enabled:
            return ActionResult(
                success=False,
                type=ResultType.SKILL_CREATION_DISABLED,
                content=(
                    "I could create a skill for that, but auto-creation is disabled. "
                    "You can create one manually."
                ),
            )

        proposed = decision.proposed_skill
        if proposed is None:
            return ActionResult(
                success=False,
                type=ResultType.SKILL_CREATION_FAILED,
                content="I couldn't figure out what kind of skill to create. Could you be more specific?",
            )

        if decision.confidence >= self.confidence_threshold:
            try:
                return await self.create_and_log(proposed, text, log_default_value)
            except SkillStoreError as e:
                logger.warning("Auto skill creation failed, asking instead: %s", e)

        return await self.propose(proposed, text, session_id, decision.confidence, log_default_value)

    async def propose(
        self,
        proposed: ProposedSkill,
        text: str,
        session_id: str,
        confidence: float,
        log_default_value: bool = False,
    ) -> ActionResult:
        stored = await self._confirmations.set(
            session_id,
            proposed,
            text,
            confidence=confidence,
            extra={LOG_DEFAULT_VALUE: log_default_value},
        )
        if not stored:
            logger.warning("Proposal for %s was not persisted", proposed.skill_id)

        return ActionResult(
            success=True,
            type=ResultType.SKILL_CREATION_PROPOSED,
            content=(
                "I don't have a skill for that yet. Would you like me to create one?\n\n"
                "**Proposed skill:**\n"
                f"- Name: {proposed.name}\n"
                f"- Type: {proposed.type}\n"
                f"- Description: {proposed.description or 'none'}\n"
                f"- Unit: {proposed.unit or 'none'}\n\n"
                'Reply "yes" or "create it" to confirm.'
            ),
            metadata={
                "awaiting_confirmation": True,
                "proposed_skill": proposed.model_dump(by_alias=True),
            },
        )

    async def confirm(self, pending: PendingConfirmation) -> ActionResult:
        """Execute a stored proposal after the user said yes."""
        try:
            return await self.create_and_log(
                pending.proposed_skill,
                pending.original_input,
                bool(pending.extra.get(LOG_DEFAULT_VALUE, False)),
            )
        except SkillStoreError as e:
            logger.error("Confirmed skill creation failed: %s", e)
            return ActionResult(
                success=False,
                type=ResultType.SKILL_CREATION_FAILED,
                content=f"I couldn't create {pending.proposed_skill.name}: {e}",
                metadata={"error": str(e)},
            )

    @staticmethod
    def cancel(pending: PendingConfirmation) -> ActionResult:
        return ActionResult(
            success=True,
            type=ResultType.SKILL_CREATION_CANCELLED,
            content=f"Okay, I won't create **{pending.proposed_skill.name}**.",
            metadata={"proposed_skill": pending.proposed_skill.model_dump(by_alias=True)},
        )

    async def create_and_log(
        self,
        proposed: ProposedSkill,
        original_input: str,
        log_default_value: bool = False,
    ) -> ActionResult:
        """Create the skill, then log the value from the original utterance.

        If a skill with the same id already exists the value goes there
        instead. A value is only logged when one was extracted, unless
        ``log_default_value`` is set.
        """
        matched = self._extractor.match(original_input)
        should_log = log_default_value or matched is not None
        value = matched if matched is not None else DEFAULT_VALUE

        existing = await self._store.get_skill(proposed.skill_id)
        if existing is not None:
            logger.info("Skill %s already exists, logging to it", existing.id)
            return await self._skill_actions.log(existing, value)

        skill = await self._store.create_skill(proposed.skill_id, proposed)
        metadata: dict[str, Any] = {
            "skill_id": skill.id,
            "proposed_skill": proposed.model_dump(by_alias=True),
        }

        if should_log:
            logged = await self._skill_actions.log(
                skill,
                value,
                result_type=ResultType.SKILL_CREATED_AND_LOGGED,
                content_prefix=(
                    f"✨ Created **{skill.name}** tracker and logged "
                    f"{format_amount(value.amount)}{skill.unit_suffix() or ' ' + value.unit}"
                ),
            )
            logged.metadata.update(metadata)
            return logged

        trigger = proposed.triggers[0] if proposed.triggers else proposed.name
        return ActionResult(
            success=True,
            type=ResultType.SKILL_CREATED,
            content=(
                f"✨ Created new skill: **{skill.name}**\n{proposed.description}\n\n"
                f'You can now track this with phrases like: "{trigger} [value]"'
            ),
            metadata=metadata,
        )


# =============================================================================
# Web search
# =============================================================================


class WebSearchHandler:
    """Answer with fresh information from the web lookup service."""

    def __init__(self, lookup: WebLookupService | None, enabled: bool = True) -> None:
        self._lookup = lookup
        self.enabled = enabled

    async def handle(self, decision: WebSearch, text: str) -> ActionResult:
        if not self.enabled or self._lookup is None:
            return ActionResult(
                success=False,
                type=ResultType.WEB_SEARCH_DISABLED,
                content="Web search is disabled. I can only answer from my knowledge.",
            )

        query = decision.search_query or text
        try:
            result = await self._lookup.research(query)
        except Exception as e:
            logger.warning("Web search failed for %r: %s", query, e)
            return ActionResult(
                success=False,
                type=ResultType.WEB_SEARCH_ERROR,
                content="Search failed. Try rephrasing your question.",
                metadata={"query": query, "error": str(e)},
            )

        if result.content:
            return ActionResult(
                success=True,
                type=ResultType.WEB_SEARCH,
                content=result.content,
                metadata={"query": query, "sources": result.sources},
            )
        return ActionResult(
            success=False,
            type=ResultType.WEB_SEARCH_NO_RESULTS,
            content=f'I couldn\'t find relevant information for: "{query}"',
            metadata={"query": query},
        )


# =============================================================================
# Conversation
# =============================================================================


class ChatHandler:
    """Conversational replies."""

    def __init__(
        self,
        completion: CompletionService | None,
        model: str = "",
        suggestion_confidence: float = 0.8,
        timeout_seconds: float = 20.0,
    ) -> None:
        self._completion = completion
        self.model = model
        self.suggestion_confidence = suggestion_confidence
        self.timeout_seconds = timeout_seconds

    async def handle(self, decision: Chat, text: str) -> ActionResult:
        if decision.suggested_response and decision.confidence > self.suggestion_confidence:
            return ActionResult(success=True, type=ResultType.CHAT, content=decision.suggested_response)

        try:
            content = await self.reply(text)
        except Exception as e:
            logger.warning("Chat reply failed: %s", e)
            return ActionResult(
                success=False,
                type=ResultType.CHAT_ERROR,
                content="I'm having trouble coming up with a reply right now.",
                metadata={"error": str(e)},
            )
        return ActionResult(success=True, type=ResultType.CHAT, content=content)

    async def reply(self, text: str) -> str:
        """Free-form reply from the completion service."""
        if self._completion is None:
            raise CompletionError("no completion service configured")
        messages = [
            {"role": "system", "content": CHAT_SYSTEM_PROMPT},
            {"role": "user", "content": text},
        ]
        try:
            response = await asyncio.wait_for(
                self._completion.complete(self.model, messages),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            raise CompletionError(
                f"chat reply timed out after {self.timeout_seconds:.1f}s"
            ) from e
        return response.text.strip() or "I'm not sure how to respond to that."
