"""Web lookup service used by the web search handler.

``SearxngLookup`` queries a self-hosted SearxNG instance's JSON API.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

import httpx
from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from skillrouter.config import WebLookupSettings

logger = logging.getLogger(__name__)


class LookupResult(BaseModel):
    """Research output: a readable summary plus source URLs."""

    content: str = ""
    sources: list[str] = Field(default_factory=list)


class WebLookupService(ABC):
    """Anything that can research a query."""

    @abstractmethod
    async def research(self, query: str) -> LookupResult:
        """Return findings for ``query``; empty content means no results."""


class SearxngLookup(WebLookupService):
    """SearxNG metasearch client."""

    def __init__(
        self,
        base_url: str,
        max_results: int = 5,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.max_results = max_results
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: WebLookupSettings) -> SearxngLookup | None:
        if not settings.searxng_url:
            return None
        return cls(
            settings.searxng_url,
            max_results=settings.max_results,
            timeout=settings.timeout_seconds,
        )

    async def research(self, query: str) -> LookupResult:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            resp = await client.get(
                f"{self.base_url}/search",
                params={"q": query, "format": "json", "categories": "general"},
            )
            resp.raise_for_status()
            data = resp.json()

        results = (data.get("results") or [])[: self.max_results]
        lines = []
        sources = []
        for r in results:
            title = r.get("title") or ""
            snippet = r.get("content") or ""
            if title or snippet:
                lines.append(f"- **{title}**: {snippet}".rstrip(": "))
            if r.get("url"):
                sources.append(r["url"])

        answers = [a for a in data.get("answers") or [] if isinstance(a, str)]
        content = "\n".join(answers + lines)
        logger.debug("SearxNG returned %d results for %r", len(results), query)
        return LookupResult(content=content, sources=sources)
