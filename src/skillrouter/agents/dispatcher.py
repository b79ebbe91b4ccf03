"""Action Dispatcher - route one utterance to exactly one action.

Flow:
1. Pending confirmation: a yes/no reply settles the stored proposal
2. Deterministic path: Skill Matcher + Intent Classifier
   - matched skill: log on a log intent, summarize on a query
   - no match, log intent: synthesize a proposal from the skill type table
   - no match, query intent: neutral "nothing tracked yet" reply
3. Probabilistic path (unknown intent, or primary strategy): Decision
   Resolver, dispatched four ways

``route()`` never raises. Collaborator failures become an
``error_fallback`` result.
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import structlog

from skillrouter import __version__
from skillrouter.agents.classifier import ConfirmationReply, Intent, IntentClassifier
from skillrouter.agents.extraction import ValueExtractor
from skillrouter.agents.handlers import (
    ChatHandler,
    SkillActionHandler,
    SkillCreationHandler,
    WebSearchHandler,
)
from skillrouter.agents.matcher import SkillMatcher
from skillrouter.agents.resolver import DecisionResolver, ResolverConfig
from skillrouter.core.rule_registry import get_rule_registry
from skillrouter.models.decisions import (
    Chat,
    CreateSkill,
    ExtractedData,
    IntentDecision,
    ProposedSkill,
    SkillAction,
    UseSkill,
    WebSearch,
)
from skillrouter.models.results import ActionResult, ResultType
from skillrouter.services.confirmation import DEFAULT_SESSION, ConfirmationStore
from skillrouter.services.llm import OpenRouterClient
from skillrouter.services.metrics import init_metrics, record_decision, record_route
from skillrouter.services.skills import InMemorySkillStore

if TYPE_CHECKING:
    from collections.abc import Sequence

    from skillrouter.config import Settings
    from skillrouter.core.rule_registry import RuleRegistry
    from skillrouter.models.skills import Skill
    from skillrouter.services.llm import CompletionService
    from skillrouter.services.skills import SkillStore
    from skillrouter.services.web_lookup import WebLookupService

logger = logging.getLogger(__name__)

NOTHING_TRACKED = "I don't have any data tracked for that yet. Would you like to start tracking it?"
FALLBACK_REPLY = "I'm having trouble processing that. Could you try rephrasing?"

# Decision sources
SOURCE_CONFIRMATION = "confirmation"
SOURCE_DETERMINISTIC = "deterministic"
SOURCE_PROBABILISTIC = "probabilistic"


@dataclass
class RouteContext:
    """Context for a single utterance through the router."""

    text: str
    session_id: str = DEFAULT_SESSION
    conversation_history: list[dict[str, Any]] = field(default_factory=list)
    source: str = "unknown"
    request_id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])

    decision: IntentDecision | None = None
    decision_source: str = SOURCE_DETERMINISTIC


@dataclass
class DispatcherConfig:
    """Thresholds and feature flags for the dispatcher."""

    primary_strategy: str = "deterministic"
    creation_confidence_threshold: float = 0.85
    chat_suggestion_confidence: float = 0.8
    enable_auto_skill_creation: bool = True
    enable_web_search: bool = True
    chat_model: str = ""
    chat_timeout_seconds: float = 20.0

    @classmethod
    def from_settings(cls, settings: Settings) -> DispatcherConfig:
        router = settings.router
        return cls(
            primary_strategy=router.primary_strategy,
            creation_confidence_threshold=router.creation_confidence_threshold,
            chat_suggestion_confidence=router.chat_suggestion_confidence,
            enable_auto_skill_creation=router.enable_auto_skill_creation,
            enable_web_search=router.enable_web_search,
            chat_model=settings.llm.model,
            chat_timeout_seconds=settings.llm.timeout_seconds,
        )


class ActionDispatcher:
    """Top-level router for a personal tracking assistant."""

    def __init__(
        self,
        store: SkillStore | None = None,
        confirmations: ConfirmationStore | None = None,
        completion: CompletionService | None = None,
        web_lookup: WebLookupService | None = None,
        config: DispatcherConfig | None = None,
        resolver_config: ResolverConfig | None = None,
        registry: RuleRegistry | None = None,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            store: Skill store. Defaults to an empty in-memory store.
            confirmations: Pending confirmation store. Defaults to in-memory.
            completion: Completion service for decisions and chat replies.
            web_lookup: Web lookup service for web search decisions.
            config: Thresholds and feature flags.
            resolver_config: Prompt limits and timeout for the resolver.
            registry: Rule tables. Defaults to the global registry.
        """
        self.config = config or DispatcherConfig()
        self.store = store or InMemorySkillStore()
        self.confirmations = confirmations or ConfirmationStore()
        self._registry = registry or get_rule_registry()

        self.extractor = ValueExtractor(self._registry)
        self.matcher = SkillMatcher(self._registry)
        self.classifier = IntentClassifier(self._registry)
        self._completion = completion
        self.resolver = DecisionResolver(completion, resolver_config)

        self.skill_actions = SkillActionHandler(self.store, self.extractor)
        self.creation = SkillCreationHandler(
            self.store,
            self.confirmations,
            self.skill_actions,
            extractor=self.extractor,
            confidence_threshold=self.config.creation_confidence_threshold,
            enabled=self.config.enable_auto_skill_creation,
        )
        self.web_search = WebSearchHandler(web_lookup, enabled=self.config.enable_web_search)
        self.chat = ChatHandler(
            completion,
            model=self.config.chat_model,
            suggestion_confidence=self.config.chat_suggestion_confidence,
            timeout_seconds=self.config.chat_timeout_seconds,
        )

        self._initialized = False

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs: Any) -> ActionDispatcher:
        """Build a dispatcher whose defaults come from application settings."""
        kwargs.setdefault("config", DispatcherConfig.from_settings(settings))
        kwargs.setdefault("resolver_config", ResolverConfig.from_settings(settings))
        kwargs.setdefault("confirmations", ConfirmationStore.from_settings(settings))
        return cls(**kwargs)

    async def init(self) -> None:
        if self._initialized:
            return
        await self.confirmations.init()
        self._initialized = True
        logger.info(
            "ActionDispatcher initialized (primary strategy: %s)", self.config.primary_strategy
        )

    async def shutdown(self) -> None:
        await self.confirmations.shutdown()
        if isinstance(self._completion, OpenRouterClient):
            await self._completion.shutdown()
        self._initialized = False

    async def route(
        self,
        text: str,
        session_id: str = DEFAULT_SESSION,
        conversation_history: Sequence[dict[str, Any]] | None = None,
        source: str = "unknown",
    ) -> ActionResult:
        """Resolve one utterance into exactly one action result.

        Args:
            text: The user's utterance.
            session_id: Conversation session; scopes pending confirmations.
            conversation_history: Recent turns as {"role", "content"} dicts.
            source: Caller label copied into the result metadata.

        Returns:
            ActionResult. Never raises.
        """
        ctx = RouteContext(
            text=text,
            session_id=session_id or DEFAULT_SESSION,
            conversation_history=list(conversation_history or []),
            source=source,
        )
        start = time.perf_counter()

        with structlog.contextvars.bound_contextvars(
            session_id=ctx.session_id, request_id=ctx.request_id
        ):
            log = structlog.get_logger(__name__)
            try:
                if not self._initialized:
                    await self.init()
                result = await self._route(ctx)
            except Exception as e:
                log.exception("Routing failed", error=str(e))
                result = await self._error_fallback(ctx, e)

            duration = time.perf_counter() - start
            result.metadata.update(
                {
                    "decision": ctx.decision.model_dump(mode="json") if ctx.decision else None,
                    "decision_source": ctx.decision_source,
                    "duration_ms": round(duration * 1000, 2),
                    "source": ctx.source,
                    "request_id": ctx.request_id,
                }
            )
            record_route(result.type, result.success, duration)
            log.info(
                "Routed request",
                input_text=text[:80],
                result_type=result.type,
                success=result.success,
                decision_source=ctx.decision_source,
                duration_ms=round(duration * 1000, 1),
            )
        return result

    # =========================================================================
    # Pipeline
    # =========================================================================

    async def _route(self, ctx: RouteContext) -> ActionResult:
        # Stage 1: settle a pending proposal
        result = await self._handle_confirmation(ctx)
        if result is not None:
            return result

        skills = await self.store.list_skills()

        # Stage 2: deterministic
        if self.config.primary_strategy != SOURCE_PROBABILISTIC:
            result = await self._route_deterministic(ctx, skills)
            if result is not None:
                return result

        # Stage 3: probabilistic
        return await self._route_probabilistic(ctx, skills)

    async def _handle_confirmation(self, ctx: RouteContext) -> ActionResult | None:
        reply = self.classifier.confirmation_reply(ctx.text)
        if reply is None:
            return None

        pending = await self.confirmations.take(ctx.session_id)
        if pending is None:
            # A bare "yes" with nothing pending is ordinary input
            return None

        ctx.decision_source = SOURCE_CONFIRMATION
        self._set_decision(
            ctx,
            CreateSkill(
                proposed_skill=pending.proposed_skill,
                confidence=pending.confidence,
                reasoning=f"user replied {reply.value}",
            ),
        )
        if reply == ConfirmationReply.REJECT:
            return self.creation.cancel(pending)
        return await self.creation.confirm(pending)

    async def _route_deterministic(
        self, ctx: RouteContext, skills: Sequence[Skill]
    ) -> ActionResult | None:
        intent = self.classifier.classify(ctx.text)
        skill = self.matcher.find(ctx.text, skills)
        logger.debug("Deterministic intent %s, matched skill %s", intent.value, skill and skill.id)

        if skill is not None:
            if intent == Intent.QUERY:
                self._set_decision(
                    ctx,
                    UseSkill(
                        skill_id=skill.id,
                        skill_action=SkillAction.QUERY,
                        confidence=1.0,
                        reasoning="keyword match",
                    ),
                )
                return await self.skill_actions.summary(skill)
            if intent != Intent.LOG:
                # Ambiguous mention of a tracked skill
                return None

            value = self.extractor.extract(ctx.text)
            self._set_decision(
                ctx,
                UseSkill(
                    skill_id=skill.id,
                    skill_action=SkillAction.LOG,
                    extracted_data=ExtractedData(value=value.amount, unit=value.unit),
                    confidence=1.0,
                    reasoning="keyword match",
                ),
            )
            return await self.skill_actions.log(skill, value)

        if intent == Intent.LOG:
            decision = self.synthesize_proposal(ctx.text)
            self._set_decision(ctx, decision)
            return await self.creation.handle(
                decision, ctx.text, ctx.session_id, log_default_value=True
            )

        if intent == Intent.QUERY:
            self._set_decision(
                ctx,
                Chat(
                    confidence=1.0,
                    reasoning="query with no matching skill",
                    suggested_response=NOTHING_TRACKED,
                ),
            )
            return ActionResult(success=True, type=ResultType.CHAT, content=NOTHING_TRACKED)

        return None

    def synthesize_proposal(self, text: str) -> CreateSkill:
        """Build a CreateSkill decision from the skill type table."""
        row = self._registry.infer_skill_type(text)
        return CreateSkill(
            proposed_skill=ProposedSkill(
                name=row.name.capitalize(),
                type=row.skill_type,
                description=row.description,
                unit=row.unit,
                triggers=[row.name.lower()],
                daily_goal=row.daily_goal,
                icon=row.icon,
            ),
            confidence=row.confidence,
            reasoning=f"inferred {row.name} tracker",
        )

    async def _route_probabilistic(
        self, ctx: RouteContext, skills: Sequence[Skill]
    ) -> ActionResult:
        ctx.decision_source = SOURCE_PROBABILISTIC
        decision = await self.resolver.resolve(ctx.text, skills, ctx.conversation_history)
        self._set_decision(ctx, decision)

        if isinstance(decision, UseSkill):
            return await self.skill_actions.execute(decision, ctx.text)
        if isinstance(decision, CreateSkill):
            return await self.creation.handle(decision, ctx.text, ctx.session_id)
        if isinstance(decision, WebSearch):
            return await self.web_search.handle(decision, ctx.text)
        return await self.chat.handle(decision, ctx.text)

    def _set_decision(self, ctx: RouteContext, decision: IntentDecision) -> None:
        ctx.decision = decision
        record_decision(decision.action, ctx.decision_source)

    async def _error_fallback(self, ctx: RouteContext, error: Exception) -> ActionResult:
        try:
            content = await self.chat.reply(ctx.text)
        except Exception as e:
            logger.warning("Fallback reply failed: %s", e)
            content = FALLBACK_REPLY
        return ActionResult(
            success=False,
            type=ResultType.ERROR_FALLBACK,
            content=content,
            metadata={"error": str(error)},
        )


# Global dispatcher instance
_global_dispatcher: ActionDispatcher | None = None


def get_dispatcher() -> ActionDispatcher:
    """Get the global dispatcher, wired from application settings.

    The first call also configures logging and the static info metric.
    """
    global _global_dispatcher
    if _global_dispatcher is None:
        from skillrouter.config import get_settings
        from skillrouter.log_setup import setup_logging
        from skillrouter.services.web_lookup import SearxngLookup

        settings = get_settings()
        setup_logging(settings)
        init_metrics(version=__version__, env=settings.env)
        structlog.get_logger(__name__).info(
            "Starting skillrouter", version=__version__, env=settings.env
        )

        completion = OpenRouterClient.from_settings(settings.llm) if settings.llm.api_key else None
        _global_dispatcher = ActionDispatcher.from_settings(
            settings,
            completion=completion,
            web_lookup=SearxngLookup.from_settings(settings.web),
        )
    return _global_dispatcher


def reset_dispatcher() -> None:
    """Reset the global dispatcher instance.

    This is primarily useful for testing to ensure a clean state.
    """
    global _global_dispatcher
    _global_dispatcher = None


async def route_request(
    text: str,
    session_id: str = DEFAULT_SESSION,
    conversation_history: Sequence[dict[str, Any]] | None = None,
    source: str = "unknown",
) -> ActionResult:
    """Convenience function to route through the global dispatcher."""
    return await get_dispatcher().route(text, session_id, conversation_history, source)


__all__ = [
    "ActionDispatcher",
    "DispatcherConfig",
    "RouteContext",
    "get_dispatcher",
    "reset_dispatcher",
    "route_request",
]
