"""Uniform output of every handler and of the dispatcher."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class ResultType:
    """Known ``ActionResult.type`` values."""

    SKILL_LOG = "skill_log"
    SKILL_STATS = "skill_stats"
    SKILL_QUERY = "skill_query"
    SKILL_HELP = "skill_help"
    SKILL_NOT_FOUND = "skill_not_found"
    SKILL_ERROR = "skill_error"
    SKILL_CREATED = "skill_created"
    SKILL_CREATED_AND_LOGGED = "skill_created_and_logged"
    SKILL_CREATION_PROPOSED = "skill_creation_proposed"
    SKILL_CREATION_CANCELLED = "skill_creation_cancelled"
    SKILL_CREATION_FAILED = "skill_creation_failed"
    SKILL_CREATION_DISABLED = "skill_creation_disabled"
    WEB_SEARCH = "web_search"
    WEB_SEARCH_NO_RESULTS = "web_search_no_results"
    WEB_SEARCH_ERROR = "web_search_error"
    WEB_SEARCH_DISABLED = "web_search_disabled"
    CHAT = "chat"
    CHAT_ERROR = "chat_error"
    ERROR_FALLBACK = "error_fallback"


class ActionResult(BaseModel):
    """Result of routing one utterance."""

    success: bool
    type: str
    content: str
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def awaiting_confirmation(self) -> bool:
        return bool(self.metadata.get("awaiting_confirmation", False))
