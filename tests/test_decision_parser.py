"""Tests for completion-output parsing and decision normalization."""

from __future__ import annotations

import pytest

from skillrouter.agents.parsing import (
    first_balanced_object,
    normalize_decision,
    parse_bracketed,
    parse_decision,
    parse_payload,
    parse_strict,
)
from skillrouter.models.decisions import (
    Chat,
    CreateSkill,
    SkillAction,
    UseSkill,
    WebSearch,
    fallback_decision,
)

# =============================================================================
# Stages
# =============================================================================


class TestStages:
    def test_strict_accepts_bare_object(self):
        assert parse_strict('  {"action": "chat"}  ') == {"action": "chat"}

    def test_strict_rejects_prose(self):
        assert parse_strict('Sure! {"action": "chat"}') is None

    def test_strict_rejects_non_object(self):
        assert parse_strict("[1, 2, 3]") is None

    def test_bracketed_finds_embedded_object(self):
        text = 'Sure! {"action":"chat","confidence":0.9} hope that helps'
        assert parse_bracketed(text) == {"action": "chat", "confidence": 0.9}

    def test_bracketed_handles_code_fences(self):
        text = '```json\n{"action": "web_search", "searchQuery": "news"}\n```'
        assert parse_bracketed(text)["searchQuery"] == "news"

    def test_balanced_object_is_nesting_aware(self):
        text = 'x {"a": {"b": 1}} y {"c": 2}'
        assert first_balanced_object(text) == '{"a": {"b": 1}}'

    def test_balanced_object_ignores_braces_in_strings(self):
        text = 'note: {"reasoning": "use } and { freely", "action": "chat"} end'
        assert first_balanced_object(text) == '{"reasoning": "use } and { freely", "action": "chat"}'

    def test_balanced_object_handles_escaped_quotes(self):
        text = '{"reasoning": "he said \\"hi}\\"", "action": "chat"}'
        assert parse_bracketed(text)["action"] == "chat"

    def test_unbalanced_is_none(self):
        assert first_balanced_object('{"action": "chat"') is None
        assert first_balanced_object("no braces") is None

    def test_chain_order(self):
        assert parse_payload('{"action": "chat"}') == {"action": "chat"}
        assert parse_payload('ok: {"action": "chat"}') == {"action": "chat"}
        assert parse_payload("nothing here") is None

    def test_first_object_only(self):
        # The first balanced object is invalid JSON; later objects are not tried
        assert parse_payload("{not json} {\"action\": \"chat\"}") is None


# =============================================================================
# Normalization
# =============================================================================


class TestNormalize:
    def test_use_skill_camel_case(self):
        decision = normalize_decision(
            {
                "action": "use_skill",
                "confidence": 0.92,
                "reasoning": "water log",
                "skillId": "water",
                "skillAction": "log",
                "extractedData": {"value": 500, "unit": "ml"},
            }
        )
        assert isinstance(decision, UseSkill)
        assert decision.skill_id == "water"
        assert decision.skill_action == SkillAction.LOG
        assert decision.extracted_data.value == 500

    def test_unknown_skill_action_is_help(self):
        decision = normalize_decision({"action": "use_skill", "skillId": "water", "skillAction": "dance"})
        assert decision.skill_action == SkillAction.HELP

    def test_create_skill(self):
        decision = normalize_decision(
            {
                "action": "create_skill",
                "confidence": 0.7,
                "proposedSkill": {"name": "Meditation", "type": "duration", "unit": "minutes"},
            }
        )
        assert isinstance(decision, CreateSkill)
        assert decision.proposed_skill.skill_id == "meditation"

    def test_malformed_proposal_is_dropped(self):
        decision = normalize_decision({"action": "create_skill", "proposedSkill": {"name": ""}})
        assert isinstance(decision, CreateSkill)
        assert decision.proposed_skill is None

    def test_web_search(self):
        decision = normalize_decision({"action": "web_search", "searchQuery": "weather in Oslo"})
        assert isinstance(decision, WebSearch)
        assert decision.search_query == "weather in Oslo"

    @pytest.mark.parametrize("action", [None, "", "dance", 42])
    def test_invalid_action_defaults_to_chat(self, action):
        assert isinstance(normalize_decision({"action": action}), Chat)

    def test_action_is_case_insensitive(self):
        assert isinstance(normalize_decision({"action": "Web_Search"}), WebSearch)

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [(None, 0.5), ("high", 0.5), (True, 0.5), ("0.9", 0.9), (1.7, 1.0), (-3, 0.0), (0, 0.0)],
    )
    def test_confidence_defaults_and_clamps(self, raw, expected):
        payload = {"action": "chat"}
        if raw is not None:
            payload["confidence"] = raw
        assert normalize_decision(payload).confidence == expected

    def test_extra_fields_dropped(self):
        decision = normalize_decision({"action": "chat", "mood": "great", "suggestedResponse": "Hi!"})
        assert decision.suggested_response == "Hi!"
        assert not hasattr(decision, "mood")


# =============================================================================
# End to end
# =============================================================================


class TestParseDecision:
    def test_prose_wrapped_chat(self):
        decision = parse_decision('Sure! {"action":"chat","confidence":0.9}')
        assert isinstance(decision, Chat)
        assert decision.confidence == 0.9

    def test_unparseable_is_exact_fallback(self):
        decision = parse_decision("I think you should log water.")
        assert decision == Chat(confidence=0.3, reasoning="fallback due to analysis error")
        assert decision == fallback_decision()

    def test_empty_text_is_fallback(self):
        assert parse_decision("") == fallback_decision()
