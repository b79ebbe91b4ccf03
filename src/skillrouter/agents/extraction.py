"""Value Extractor - numeric quantity and normalized unit from free text.

Rules come from the RuleRegistry and are tried in order; the first rule
whose pattern matches wins. Pure: no I/O, no randomness.
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING

from skillrouter.core.rule_registry import get_rule_registry
from skillrouter.models.skills import ExtractedValue

if TYPE_CHECKING:
    from skillrouter.core.rule_registry import RuleRegistry, ValueRule

DEFAULT_VALUE = ExtractedValue(amount=1, unit="count")


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class ValueExtractor:
    """Applies the ordered value rules to an utterance."""

    def __init__(self, registry: RuleRegistry | None = None) -> None:
        self._registry = registry

    @property
    def registry(self) -> RuleRegistry:
        if self._registry is None:
            self._registry = get_rule_registry()
        return self._registry

    def match(self, text: str) -> ExtractedValue | None:
        """Return the first rule's value, or None when nothing matches."""
        for rule in self.registry.value_rules:
            value = self._apply(rule, text)
            if value is not None:
                return value
        return None

    def extract(self, text: str) -> ExtractedValue:
        """Like match(), defaulting to 1 count."""
        value = self.match(text)
        return value if value is not None else DEFAULT_VALUE

    @staticmethod
    def _apply(rule: ValueRule, text: str) -> ExtractedValue | None:
        match = rule.compiled.search(text)
        if match is None:
            return None
        if rule.amount is not None:
            return ExtractedValue(amount=_round_half_up(rule.amount), unit=rule.unit)

        raw = float(match.group(1))
        token = match.group(2) if match.re.groups >= 2 else None
        return ExtractedValue(
            amount=_round_half_up(raw * rule.factor_for(token)),
            unit=rule.unit,
        )


def extract_value(text: str, registry: RuleRegistry | None = None) -> ExtractedValue:
    """Convenience wrapper around ValueExtractor."""
    return ValueExtractor(registry).extract(text)
