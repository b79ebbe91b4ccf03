"""Decision parser - turn completion text into an IntentDecision.

Completion output is "JSON-ish": usually a bare object, sometimes wrapped in
prose or code fences. Parsing is an ordered chain of pure stages; the first
stage that yields a JSON object wins. If none does, the caller gets the
fixed low-confidence chat fallback.

    parse_strict     whole text is a JSON object
    parse_bracketed  first balanced {...} substring is a JSON object
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from typing import Any

from pydantic import ValidationError

from skillrouter.models.decisions import (
    DecisionAction,
    ExtractedData,
    IntentDecision,
    ProposedSkill,
    fallback_decision,
    intent_decision_adapter,
)

logger = logging.getLogger(__name__)

ParseStage = Callable[[str], "dict[str, Any] | None"]

DEFAULT_CONFIDENCE = 0.5

_ACTIONS = {a.value for a in DecisionAction}


def _as_object(text: str) -> dict[str, Any] | None:
    try:
        value = json.loads(text)
    except (json.JSONDecodeError, TypeError, ValueError):
        return None
    return value if isinstance(value, dict) else None


def parse_strict(text: str) -> dict[str, Any] | None:
    """Stage 1: the full response is a JSON object."""
    return _as_object(text.strip())


def first_balanced_object(text: str) -> str | None:
    """Return the first balanced ``{...}`` substring, honoring JSON strings."""
    start = text.find("{")
    if start == -1:
        return None

    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start : i + 1]
    return None


def parse_bracketed(text: str) -> dict[str, Any] | None:
    """Stage 2: a JSON object embedded in surrounding prose."""
    candidate = first_balanced_object(text)
    if candidate is None:
        return None
    return _as_object(candidate)


PARSE_STAGES: tuple[ParseStage, ...] = (parse_strict, parse_bracketed)


def parse_payload(text: str, stages: tuple[ParseStage, ...] = PARSE_STAGES) -> dict[str, Any] | None:
    """Run the stages in order; None if every stage fails."""
    for stage in stages:
        payload = stage(text)
        if payload is not None:
            return payload
    return None


def _coerce_confidence(value: Any) -> float:
    if isinstance(value, bool) or value is None:
        return DEFAULT_CONFIDENCE
    try:
        confidence = float(value)
    except (TypeError, ValueError):
        return DEFAULT_CONFIDENCE
    if confidence != confidence:  # NaN
        return DEFAULT_CONFIDENCE
    return min(1.0, max(0.0, confidence))


def _optional_model(model: type[ProposedSkill] | type[ExtractedData], raw: Any) -> Any:
    if not isinstance(raw, dict):
        return None
    try:
        return model.model_validate(raw)
    except ValidationError as e:
        logger.debug("Dropping malformed %s: %s", model.__name__, e)
        return None


def normalize_decision(payload: dict[str, Any]) -> IntentDecision:
    """Apply defaults and drop unknown fields.

    ``action`` outside the four known values becomes ``chat``; a missing or
    non-numeric ``confidence`` becomes 0.5.
    """
    action = payload.get("action")
    action = action.strip().lower() if isinstance(action, str) else ""
    if action not in _ACTIONS:
        action = DecisionAction.CHAT.value

    reasoning = payload.get("reasoning")
    data: dict[str, Any] = {
        "action": action,
        "confidence": _coerce_confidence(payload.get("confidence")),
        "reasoning": reasoning if isinstance(reasoning, str) else "",
    }

    if action == DecisionAction.USE_SKILL.value:
        skill_id = payload.get("skillId", payload.get("skill_id"))
        data["skill_id"] = str(skill_id) if skill_id is not None else ""
        data["skill_action"] = payload.get("skillAction", payload.get("skill_action"))
        data["extracted_data"] = _optional_model(
            ExtractedData, payload.get("extractedData", payload.get("extracted_data"))
        )
    elif action == DecisionAction.CREATE_SKILL.value:
        data["proposed_skill"] = _optional_model(
            ProposedSkill, payload.get("proposedSkill", payload.get("proposed_skill"))
        )
    elif action == DecisionAction.WEB_SEARCH.value:
        query = payload.get("searchQuery", payload.get("search_query"))
        data["search_query"] = query if isinstance(query, str) and query.strip() else None
    else:
        suggested = payload.get("suggestedResponse", payload.get("suggested_response"))
        data["suggested_response"] = suggested if isinstance(suggested, str) else None

    return intent_decision_adapter.validate_python(data)


def parse_decision(text: str) -> IntentDecision:
    """Parse completion text into a decision, falling back on any failure."""
    payload = parse_payload(text)
    if payload is None:
        logger.warning("Could not parse completion output as JSON (%d chars)", len(text))
        return fallback_decision()
    try:
        return normalize_decision(payload)
    except ValidationError as e:
        logger.warning("Completion output failed decision validation: %s", e)
        return fallback_decision()
