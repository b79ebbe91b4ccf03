"""Tests for the action handlers."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from skillrouter.agents.extraction import ValueExtractor
from skillrouter.agents.handlers import (
    ChatHandler,
    SkillActionHandler,
    SkillCreationHandler,
    WebSearchHandler,
    format_amount,
)
from skillrouter.exceptions import CompletionError, SkillStoreError
from skillrouter.models.decisions import (
    Chat,
    CreateSkill,
    ExtractedData,
    ProposedSkill,
    SkillAction,
    UseSkill,
    WebSearch,
)
from skillrouter.models.results import ResultType
from skillrouter.services.confirmation import ConfirmationStore
from skillrouter.services.llm import ChatResponse
from skillrouter.services.skills import InMemorySkillStore
from skillrouter.services.web_lookup import LookupResult

# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def store(water_skill, calories_skill):
    return InMemorySkillStore([water_skill, calories_skill])


@pytest.fixture
def confirmations(clock):
    return ConfirmationStore(clock=clock)


@pytest.fixture
def skill_actions(store, registry):
    return SkillActionHandler(store, ValueExtractor(registry))


@pytest.fixture
def creation(store, confirmations, skill_actions, registry):
    return SkillCreationHandler(
        store, confirmations, skill_actions, extractor=ValueExtractor(registry)
    )


@pytest.fixture
def meditation():
    return ProposedSkill(
        name="Meditation",
        type="duration",
        description="Minutes of meditation",
        unit="minutes",
        triggers=["meditate", "meditated"],
    )


class TestFormatting:
    @pytest.mark.parametrize(
        ("value", "text"), [(500, "500"), (500.0, "500"), (1.25, "1.25"), (0.5, "0.5")]
    )
    def test_format_amount(self, value, text):
        assert format_amount(value) == text


# =============================================================================
# SkillActionHandler
# =============================================================================


class TestSkillActions:
    @pytest.mark.asyncio
    async def test_log_with_extracted_data(self, skill_actions, store):
        decision = UseSkill(
            skill_id="water",
            skill_action=SkillAction.LOG,
            extracted_data=ExtractedData(value=500, unit="ml", note="gym"),
        )
        result = await skill_actions.execute(decision, "drank half a litre")

        assert result.success
        assert result.type == ResultType.SKILL_LOG
        assert "Logged to **Water**: 500 ml" in result.content
        assert "Today's total: 500 ml (25% of 2000 goal)" in result.content
        assert store.entries[0].note == "gym"

    @pytest.mark.asyncio
    async def test_log_keeps_extracted_unit(self, skill_actions, store):
        decision = UseSkill(
            skill_id="water",
            skill_action=SkillAction.LOG,
            extracted_data=ExtractedData(value=16, unit="oz"),
        )
        await skill_actions.execute(decision, "16 oz of water")
        assert store.entries[0].unit == "oz"

    @pytest.mark.asyncio
    async def test_log_without_unit_uses_skill_unit(self, skill_actions, store):
        decision = UseSkill(
            skill_id="water",
            skill_action=SkillAction.LOG,
            extracted_data=ExtractedData(value=300),
        )
        await skill_actions.execute(decision, "some water")
        assert store.entries[0].unit == "ml"

    @pytest.mark.asyncio
    async def test_log_falls_back_to_extractor(self, skill_actions, store):
        decision = UseSkill(skill_id="water", skill_action=SkillAction.LOG)
        await skill_actions.execute(decision, "2 glasses")
        assert store.entries[0].amount == 500

    @pytest.mark.asyncio
    async def test_stats(self, skill_actions, store):
        await store.add_entry("water", 1000)
        decision = UseSkill(skill_id="water", skill_action=SkillAction.STATS)

        result = await skill_actions.execute(decision, "water stats")

        assert result.type == ResultType.SKILL_STATS
        assert "Today: 1000 ml (1 entries)" in result.content
        assert "This week: 1000 ml (1 entries)" in result.content
        assert "Daily goal: 50% complete" in result.content
        assert result.metadata["stats"]["week"] == {"sum": 1000, "count": 1}

    @pytest.mark.asyncio
    async def test_query_is_stats(self, skill_actions):
        decision = UseSkill(skill_id="calories", skill_action=SkillAction.QUERY)
        result = await skill_actions.execute(decision, "calories?")
        assert result.type == ResultType.SKILL_STATS

    @pytest.mark.asyncio
    async def test_help(self, skill_actions):
        decision = UseSkill(skill_id="water", skill_action=SkillAction.HELP)
        result = await skill_actions.execute(decision, "water?")
        assert result.type == ResultType.SKILL_HELP
        assert "Triggers: water, drank" in result.content
        assert "Examples: drank 2 glasses of water" in result.content

    @pytest.mark.asyncio
    async def test_unknown_skill_lists_available(self, skill_actions, store):
        decision = UseSkill(skill_id="coffee", skill_action=SkillAction.LOG)

        result = await skill_actions.execute(decision, "had a coffee")

        assert not result.success
        assert result.type == ResultType.SKILL_NOT_FOUND
        assert "water, calories" in result.content
        assert result.metadata["available_skills"] == ["water", "calories"]
        assert await store.get_skill("coffee") is None

    @pytest.mark.asyncio
    async def test_store_error_is_skill_error(self, water_skill):
        store = AsyncMock()
        store.get_skill = AsyncMock(return_value=water_skill)
        store.add_entry = AsyncMock(side_effect=SkillStoreError("disk full"))
        handler = SkillActionHandler(store)

        result = await handler.execute(
            UseSkill(skill_id="water", skill_action=SkillAction.LOG), "2 glasses"
        )

        assert result.type == ResultType.SKILL_ERROR
        assert "disk full" in result.content

    @pytest.mark.asyncio
    async def test_summary(self, skill_actions, store, water_skill):
        await store.add_entry("water", 500)
        result = await skill_actions.summary(water_skill)
        assert result.type == ResultType.SKILL_QUERY
        assert "Today: 500 ml (1 entries)" in result.content
        assert "Goal: 25% of 2000" in result.content


# =============================================================================
# SkillCreationHandler
# =============================================================================


class TestSkillCreation:
    @pytest.mark.asyncio
    async def test_below_threshold_asks(
        self, creation, store, confirmations, meditation
    ):
        decision = CreateSkill(proposed_skill=meditation, confidence=0.84)

        result = await creation.handle(decision, "meditated 20 minutes", "s1")

        assert result.type == ResultType.SKILL_CREATION_PROPOSED
        assert result.awaiting_confirmation
        assert "Name: Meditation" in result.content
        assert await store.get_skill("meditation") is None
        pending = await confirmations.get("s1")
        assert pending.proposed_skill == meditation
        assert pending.original_input == "meditated 20 minutes"

    @pytest.mark.asyncio
    async def test_at_threshold_creates(self, creation, store, confirmations, meditation):
        decision = CreateSkill(proposed_skill=meditation, confidence=0.85)

        result = await creation.handle(decision, "meditated 20 minutes", "s1")

        assert result.type == ResultType.SKILL_CREATED_AND_LOGGED
        assert not result.awaiting_confirmation
        assert "Created **Meditation** tracker and logged 20 minutes" in result.content
        assert (await store.get_daily_stats("meditation")).sum == 20
        assert await confirmations.get("s1") is None

    @pytest.mark.asyncio
    async def test_created_without_value(self, creation, store, meditation):
        decision = CreateSkill(proposed_skill=meditation, confidence=0.9)

        result = await creation.handle(decision, "I want to track meditation", "s1")

        assert result.type == ResultType.SKILL_CREATED
        assert '"meditate [value]"' in result.content
        assert store.entries == []

    @pytest.mark.asyncio
    async def test_log_default_value(self, creation, store):
        proposal = ProposedSkill(name="Custom", unit="count")
        decision = CreateSkill(proposed_skill=proposal, confidence=0.9)

        result = await creation.handle(decision, "I meditated", "s1", log_default_value=True)

        assert result.type == ResultType.SKILL_CREATED_AND_LOGGED
        assert store.entries[0].amount == 1

    @pytest.mark.asyncio
    async def test_existing_id_logs_there(self, creation, store):
        decision = CreateSkill(proposed_skill=ProposedSkill(name="Water"), confidence=0.95)

        result = await creation.handle(decision, "2 glasses of water", "s1")

        assert result.type == ResultType.SKILL_LOG
        assert (await store.get_daily_stats("water")).sum == 500

    @pytest.mark.asyncio
    async def test_creation_error_falls_back_to_proposal(
        self, confirmations, skill_actions, meditation
    ):
        store = AsyncMock()
        store.get_skill = AsyncMock(return_value=None)
        store.create_skill = AsyncMock(side_effect=SkillStoreError("read-only"))
        handler = SkillCreationHandler(store, confirmations, skill_actions)

        result = await handler.handle(
            CreateSkill(proposed_skill=meditation, confidence=0.95), "meditated", "s1"
        )

        assert result.type == ResultType.SKILL_CREATION_PROPOSED
        assert await confirmations.get("s1") is not None

    @pytest.mark.asyncio
    async def test_disabled(self, store, confirmations, skill_actions, meditation):
        handler = SkillCreationHandler(store, confirmations, skill_actions, enabled=False)
        result = await handler.handle(CreateSkill(proposed_skill=meditation, confidence=1.0), "x", "s1")
        assert not result.success
        assert result.type == ResultType.SKILL_CREATION_DISABLED

    @pytest.mark.asyncio
    async def test_missing_proposal(self, creation):
        result = await creation.handle(CreateSkill(confidence=0.9), "x", "s1")
        assert not result.success
        assert result.type == ResultType.SKILL_CREATION_FAILED

    @pytest.mark.asyncio
    async def test_confirm_and_cancel(self, creation, confirmations, store, meditation):
        await confirmations.set("s1", meditation, "meditated 15 minutes", confidence=0.6)
        pending = await confirmations.take("s1")

        result = await creation.confirm(pending)
        assert result.type == ResultType.SKILL_CREATED_AND_LOGGED
        assert (await store.get_daily_stats("meditation")).sum == 15

        cancelled = creation.cancel(pending)
        assert cancelled.type == ResultType.SKILL_CREATION_CANCELLED
        assert "Meditation" in cancelled.content

    @pytest.mark.asyncio
    async def test_confirm_failure(self, creation, confirmations, store, meditation):
        await store.create_skill("meditation", meditation)
        store.create_skill = AsyncMock(side_effect=SkillStoreError("taken"))
        store.get_skill = AsyncMock(return_value=None)
        await confirmations.set("s1", meditation, "x")

        result = await creation.confirm(await confirmations.take("s1"))

        assert not result.success
        assert result.type == ResultType.SKILL_CREATION_FAILED


# =============================================================================
# WebSearchHandler
# =============================================================================


class TestWebSearch:
    @pytest.mark.asyncio
    async def test_results(self):
        lookup = AsyncMock()
        lookup.research = AsyncMock(
            return_value=LookupResult(content="Sunny, 21C", sources=["https://example.org"])
        )
        handler = WebSearchHandler(lookup)

        result = await handler.handle(WebSearch(search_query="weather oslo"), "weather?")

        lookup.research.assert_awaited_once_with("weather oslo")
        assert result.type == ResultType.WEB_SEARCH
        assert result.metadata["sources"] == ["https://example.org"]

    @pytest.mark.asyncio
    async def test_query_defaults_to_input(self):
        lookup = AsyncMock()
        lookup.research = AsyncMock(return_value=LookupResult())
        result = await WebSearchHandler(lookup).handle(WebSearch(), "latest news")
        lookup.research.assert_awaited_once_with("latest news")
        assert result.type == ResultType.WEB_SEARCH_NO_RESULTS

    @pytest.mark.asyncio
    async def test_error(self):
        lookup = AsyncMock()
        lookup.research = AsyncMock(side_effect=RuntimeError("dns"))
        result = await WebSearchHandler(lookup).handle(WebSearch(search_query="q"), "q")
        assert not result.success
        assert result.type == ResultType.WEB_SEARCH_ERROR

    @pytest.mark.asyncio
    async def test_disabled(self):
        result = await WebSearchHandler(AsyncMock(), enabled=False).handle(WebSearch(), "q")
        assert result.type == ResultType.WEB_SEARCH_DISABLED

    @pytest.mark.asyncio
    async def test_no_backend_is_disabled(self):
        result = await WebSearchHandler(None).handle(WebSearch(), "q")
        assert result.type == ResultType.WEB_SEARCH_DISABLED


# =============================================================================
# ChatHandler
# =============================================================================


class TestChat:
    @pytest.mark.asyncio
    async def test_confident_suggestion_used(self):
        completion = AsyncMock()
        handler = ChatHandler(completion)

        result = await handler.handle(Chat(confidence=0.81, suggested_response="Hi there!"), "hi")

        assert result.content == "Hi there!"
        completion.complete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unconfident_suggestion_ignored(self):
        completion = AsyncMock()
        completion.complete = AsyncMock(return_value=ChatResponse(text=" Hello! "))
        handler = ChatHandler(completion, model="m")

        result = await handler.handle(Chat(confidence=0.8, suggested_response="Hi there!"), "hi")

        assert result.type == ResultType.CHAT
        assert result.content == "Hello!"
        model, messages = completion.complete.call_args.args
        assert model == "m"
        assert messages[-1] == {"role": "user", "content": "hi"}

    @pytest.mark.asyncio
    async def test_completion_error(self):
        completion = AsyncMock()
        completion.complete = AsyncMock(side_effect=CompletionError("503"))
        result = await ChatHandler(completion).handle(Chat(), "hi")
        assert not result.success
        assert result.type == ResultType.CHAT_ERROR

    @pytest.mark.asyncio
    async def test_no_service(self):
        result = await ChatHandler(None).handle(Chat(), "hi")
        assert result.type == ResultType.CHAT_ERROR

    @pytest.mark.asyncio
    async def test_hung_completion_times_out(self):
        async def hang(model, messages):
            await asyncio.sleep(30)

        completion = AsyncMock()
        completion.complete = AsyncMock(side_effect=hang)
        handler = ChatHandler(completion, timeout_seconds=0.05)

        result = await asyncio.wait_for(handler.handle(Chat(), "hi"), timeout=5)

        assert not result.success
        assert result.type == ResultType.CHAT_ERROR
        assert "timed out" in result.metadata["error"]
