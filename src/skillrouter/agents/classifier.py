"""Deterministic Intent Classifier - query / log / unknown.

Patterns are loaded from the RuleRegistry and evaluated in a fixed order:
query patterns first, then log patterns. Confirmation replies ("yes",
"cancel") are recognized separately; whether they apply depends on a
pending confirmation, which is the dispatcher's concern.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import TYPE_CHECKING

from skillrouter.core.rule_registry import get_rule_registry
from skillrouter.exceptions import RuleConfigError

if TYPE_CHECKING:
    from skillrouter.core.rule_registry import IntentPatterns, RuleRegistry


class Intent(str, Enum):
    """Deterministic intent labels."""

    QUERY = "query"
    LOG = "log"
    UNKNOWN = "unknown"


class ConfirmationReply(str, Enum):
    """A yes/no answer to a pending proposal."""

    CONFIRM = "confirm"
    REJECT = "reject"


_TRAILING_PUNCTUATION = re.compile(r"[\s.!,]+$")


def _normalize_reply(text: str) -> str:
    return _TRAILING_PUNCTUATION.sub("", text.strip()).strip()


class IntentClassifier:
    """Keyword/pattern classifier."""

    def __init__(self, registry: RuleRegistry | None = None) -> None:
        self._registry = registry

    @property
    def patterns(self) -> IntentPatterns:
        if self._registry is None:
            self._registry = get_rule_registry()
        if self._registry.intents is None:
            raise RuleConfigError("rule registry is not loaded")
        return self._registry.intents

    def confirmation_reply(self, text: str) -> ConfirmationReply | None:
        """Whole-string yes/no detection. None for anything else."""
        reply = _normalize_reply(text)
        if self.patterns.confirm.fullmatch(reply):
            return ConfirmationReply.CONFIRM
        if self.patterns.reject.fullmatch(reply):
            return ConfirmationReply.REJECT
        return None

    def classify(self, text: str) -> Intent:
        """Label an utterance as query, log or unknown."""
        text = text.strip()
        patterns = self.patterns
        if any(p.search(text) for p in patterns.query):
            return Intent.QUERY
        if any(p.search(text) for p in patterns.log):
            return Intent.LOG
        return Intent.UNKNOWN


def detect_intent(text: str, registry: RuleRegistry | None = None) -> Intent:
    """Convenience wrapper around IntentClassifier."""
    return IntentClassifier(registry).classify(text)
