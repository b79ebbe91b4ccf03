"""Rule Registry - Storage and management of the router's decision tables.

All deterministic routing logic is data, not code. This includes value
extraction rules, purpose categories, mismatch penalties, intent patterns
and the skill type inference table.

The Rule Registry provides:
1. Loading tables from a YAML file (bundled default or an override path)
2. Reload when the file content changes
3. Version tracking (file version + content hash)
"""

from __future__ import annotations

import hashlib
import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from skillrouter.exceptions import RuleConfigError

logger = logging.getLogger(__name__)

DEFAULT_RULES_FILE = Path(__file__).resolve().parent.parent / "data" / "rules.yaml"

GENERAL_CATEGORY = "general"


@dataclass
class UnitConversion:
    """Scale factor applied when a captured unit token matches."""

    match: str
    factor: float

    _compiled: re.Pattern[str] | None = field(default=None, repr=False)

    @property
    def compiled(self) -> re.Pattern[str]:
        if self._compiled is None:
            self._compiled = re.compile(self.match, re.IGNORECASE)
        return self._compiled


@dataclass
class ValueRule:
    """A single value extraction rule."""

    name: str
    pattern: str
    unit: str
    conversions: list[UnitConversion] = field(default_factory=list)
    amount: float | None = None  # Fixed amount ("a glass") instead of a capture

    # Runtime compiled pattern (not serialized)
    _compiled: re.Pattern[str] | None = field(default=None, repr=False)

    @property
    def compiled(self) -> re.Pattern[str]:
        """Get compiled regex pattern."""
        if self._compiled is None:
            self._compiled = re.compile(self.pattern, re.IGNORECASE)
        return self._compiled

    def factor_for(self, token: str | None) -> float:
        """Return the conversion factor for a captured unit token."""
        if not token:
            return 1.0
        token = token.lower()
        for conversion in self.conversions:
            if conversion.compiled.search(token):
                return conversion.factor
        return 1.0


@dataclass
class PurposeCategory:
    """A coarse semantic bucket a skill belongs to."""

    category: str
    id_markers: list[str] = field(default_factory=list)
    keywords: list[str] = field(default_factory=list)

    def owns(self, skill_id: str) -> bool:
        skill_id = skill_id.lower()
        return any(marker in skill_id for marker in self.id_markers)

    def mentioned_in(self, text_lower: str) -> bool:
        return any(kw in text_lower for kw in self.keywords)


@dataclass
class MismatchRule:
    """Penalty for a skill whose category conflicts with the utterance."""

    category: str
    conflicts_with: str
    penalty: int = 20
    unless_any: list[str] = field(default_factory=list)
    keywords: list[str] = field(default_factory=list)

    def fires_on(self, text_lower: str) -> bool:
        """True when the utterance has a veto keyword and no escape word."""
        return any(kw in text_lower for kw in self.keywords) and not any(
            word in text_lower for word in self.unless_any
        )


@dataclass
class ScoringWeights:
    """Additive weights for skill scoring."""

    id_match: int = 10
    name_match: int = 10
    trigger_match: int = 5
    purpose_match: int = 8


@dataclass
class SkillTypeRule:
    """Row of the skill type inference table."""

    name: str
    pattern: str
    unit: str
    description: str
    skill_type: str = "number"
    daily_goal: float | None = None
    icon: str | None = None
    confidence: float = 0.9

    _compiled: re.Pattern[str] | None = field(default=None, repr=False)

    @property
    def compiled(self) -> re.Pattern[str]:
        if self._compiled is None:
            self._compiled = re.compile(self.pattern, re.IGNORECASE)
        return self._compiled


@dataclass
class IntentPatterns:
    """Compiled patterns for the deterministic intent classifier."""

    confirm: re.Pattern[str]
    reject: re.Pattern[str]
    query: list[re.Pattern[str]] = field(default_factory=list)
    log: list[re.Pattern[str]] = field(default_factory=list)


class RuleRegistry:
    """Registry for all data-driven router tables.

    Usage:
        registry = RuleRegistry()
        registry.load()

        for rule in registry.value_rules:
            ...
        category = registry.category_for_skill("water_intake")  # "hydration"
    """

    def __init__(self, rules_file: Path | str | None = None) -> None:
        """Initialize the Rule Registry.

        Args:
            rules_file: YAML file with the tables. Defaults to the bundled rules.
        """
        self.rules_file = Path(rules_file) if rules_file else DEFAULT_RULES_FILE

        self.value_rules: list[ValueRule] = []
        self.purpose_categories: list[PurposeCategory] = []
        self.mismatch_rules: list[MismatchRule] = []
        self.scoring = ScoringWeights()
        self.skill_types: list[SkillTypeRule] = []
        self.default_skill_type: SkillTypeRule | None = None
        self.intents: IntentPatterns | None = None

        self.version = "unknown"
        self.content_hash = ""
        self._loaded = False

    @property
    def loaded(self) -> bool:
        return self._loaded

    def load(self) -> None:
        """Load all tables from the rules file."""
        if self._loaded:
            return
        data = self._read()
        self._apply(data)
        self._loaded = True
        logger.info(
            "RuleRegistry loaded %s (version %s): %d value rules, %d categories, "
            "%d skill types",
            self.rules_file,
            self.version,
            len(self.value_rules),
            len(self.purpose_categories),
            len(self.skill_types),
        )

    def reload(self) -> bool:
        """Reload tables if the file changed. Returns True if reloaded."""
        data = self._read()
        new_hash = self._hash_content(data)
        if self._loaded and new_hash == self.content_hash:
            return False
        self._apply(data)
        self._loaded = True
        logger.info("RuleRegistry reloaded (version %s)", self.version)
        return True

    # =========================================================================
    # Lookups
    # =========================================================================

    def category(self, name: str) -> PurposeCategory | None:
        for category in self.purpose_categories:
            if category.category == name:
                return category
        return None

    def category_for_skill(self, skill_id: str) -> str:
        """Derive a skill's purpose category from its id."""
        for category in self.purpose_categories:
            if category.owns(skill_id):
                return category.category
        return GENERAL_CATEGORY

    def mismatch_rule(self, category: str) -> MismatchRule | None:
        for rule in self.mismatch_rules:
            if rule.category == category:
                return rule
        return None

    def infer_skill_type(self, text: str) -> SkillTypeRule:
        """First type row whose pattern matches, else the default row."""
        for skill_type in self.skill_types:
            if skill_type.compiled.search(text):
                return skill_type
        if self.default_skill_type is None:
            raise RuleConfigError("rule registry is not loaded")
        return self.default_skill_type

    # =========================================================================
    # Loading
    # =========================================================================

    def _read(self) -> dict[str, Any]:
        if not self.rules_file.exists():
            raise RuleConfigError(f"rules file not found: {self.rules_file}")
        try:
            with open(self.rules_file, encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise RuleConfigError(f"invalid YAML in {self.rules_file}: {e}") from e
        if not isinstance(data, dict):
            raise RuleConfigError(f"{self.rules_file} must contain a mapping")
        return data

    def _apply(self, data: dict[str, Any]) -> None:
        try:
            value_rules = [self._parse_value_rule(r) for r in data["value_rules"]]
            categories = [
                PurposeCategory(
                    category=c["category"],
                    id_markers=[m.lower() for m in c.get("id_markers", [])],
                    keywords=[k.lower() for k in c.get("keywords", [])],
                )
                for c in data["purpose_categories"]
            ]
            mismatch_rules = [
                MismatchRule(
                    category=m["category"],
                    conflicts_with=m["conflicts_with"],
                    penalty=int(m.get("penalty", 20)),
                    unless_any=[u.lower() for u in m.get("unless_any", [])],
                    keywords=[k.lower() for k in m.get("keywords", [])],
                )
                for m in data.get("mismatch_rules", [])
            ]
            scoring = ScoringWeights(**data.get("scoring", {}))
            skill_types = [self._parse_skill_type(s) for s in data.get("skill_types", [])]
            default_type = self._parse_skill_type(
                {"pattern": "", **data["default_skill_type"]}
            )
            confirmation = data["confirmation"]
            intents = IntentPatterns(
                confirm=re.compile(confirmation["confirm"], re.IGNORECASE),
                reject=re.compile(confirmation["reject"], re.IGNORECASE),
                query=[re.compile(p, re.IGNORECASE) for p in data.get("query_patterns", [])],
                log=[re.compile(p, re.IGNORECASE) for p in data.get("log_patterns", [])],
            )
            # Force compilation so a bad regex fails at load time
            for rule in value_rules:
                _ = rule.compiled
                for conversion in rule.conversions:
                    _ = conversion.compiled
            for skill_type in skill_types:
                _ = skill_type.compiled
        except (KeyError, TypeError, ValueError, re.error) as e:
            raise RuleConfigError(f"invalid rules table in {self.rules_file}: {e}") from e

        by_name = {c.category: c for c in categories}
        for rule in mismatch_rules:
            if rule.category not in by_name or rule.conflicts_with not in by_name:
                raise RuleConfigError(
                    f"mismatch rule references unknown category: "
                    f"{rule.category} -> {rule.conflicts_with}"
                )
            if not rule.keywords:
                # Default veto words: the conflicting category's keyword table
                rule.keywords = list(by_name[rule.conflicts_with].keywords)

        self.value_rules = value_rules
        self.purpose_categories = categories
        self.mismatch_rules = mismatch_rules
        self.scoring = scoring
        self.skill_types = skill_types
        self.default_skill_type = default_type
        self.intents = intents
        self.version = str(data.get("version", "unknown"))
        self.content_hash = self._hash_content(data)

    @staticmethod
    def _parse_value_rule(raw: dict[str, Any]) -> ValueRule:
        return ValueRule(
            name=raw["name"],
            pattern=raw["pattern"],
            unit=raw["unit"],
            conversions=[
                UnitConversion(match=c["match"], factor=float(c["factor"]))
                for c in raw.get("conversions", [])
            ],
            amount=float(raw["amount"]) if raw.get("amount") is not None else None,
        )

    @staticmethod
    def _parse_skill_type(raw: dict[str, Any]) -> SkillTypeRule:
        return SkillTypeRule(
            name=raw["name"],
            pattern=raw.get("pattern", ""),
            unit=raw["unit"],
            description=raw.get("description", ""),
            skill_type=raw.get("skill_type", "number"),
            daily_goal=raw.get("daily_goal"),
            icon=raw.get("icon"),
            confidence=float(raw.get("confidence", 0.9)),
        )

    @staticmethod
    def _hash_content(content: Any) -> str:
        """Generate hash of content for change detection."""
        serialized = json.dumps(content, sort_keys=True, default=str)
        return hashlib.sha256(serialized.encode()).hexdigest()[:16]


# Global registry instance
_rule_registry: RuleRegistry | None = None


def get_rule_registry(rules_file: Path | str | None = None) -> RuleRegistry:
    """Get the global rule registry, loading it on first use."""
    global _rule_registry
    if _rule_registry is None:
        if rules_file is None:
            from skillrouter.config import get_settings

            rules_file = get_settings().router.rules_file
        _rule_registry = RuleRegistry(rules_file)
        _rule_registry.load()
    return _rule_registry


def reset_rule_registry() -> None:
    """Reset the global registry (primarily for tests)."""
    global _rule_registry
    _rule_registry = None
