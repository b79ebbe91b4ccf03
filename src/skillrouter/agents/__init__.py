"""Routing components for skillrouter.

Contains the deterministic extractor/matcher/classifier, the decision
resolver, action handlers and the dispatcher that ties them together.
"""

from .classifier import ConfirmationReply, Intent, IntentClassifier, detect_intent
from .dispatcher import (
    ActionDispatcher,
    DispatcherConfig,
    RouteContext,
    get_dispatcher,
    reset_dispatcher,
    route_request,
)
from .extraction import ValueExtractor, extract_value
from .handlers import ChatHandler, SkillActionHandler, SkillCreationHandler, WebSearchHandler
from .matcher import SkillMatcher, SkillScore, find_matching_skill
from .resolver import DecisionResolver, ResolverConfig

__all__ = [
    "ActionDispatcher",
    "ChatHandler",
    "ConfirmationReply",
    "DecisionResolver",
    "DispatcherConfig",
    "Intent",
    "IntentClassifier",
    "ResolverConfig",
    "RouteContext",
    "SkillActionHandler",
    "SkillCreationHandler",
    "SkillMatcher",
    "SkillScore",
    "ValueExtractor",
    "WebSearchHandler",
    "detect_intent",
    "extract_value",
    "find_matching_skill",
    "get_dispatcher",
    "reset_dispatcher",
    "route_request",
]
