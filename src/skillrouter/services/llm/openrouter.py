"""OpenRouter API client for skillrouter.

Default Completion Service: one non-streaming chat completion per call,
over an httpx AsyncClient. Anything that implements ``complete(model,
messages)`` can stand in for it.
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Protocol, runtime_checkable

import httpx
from pydantic import BaseModel

from skillrouter.exceptions import CompletionError
from skillrouter.services.metrics import completion_duration_seconds

if TYPE_CHECKING:
    from skillrouter.config import LLMSettings

logger = logging.getLogger(__name__)


class ModelConfig(BaseModel):
    """Sampling parameters for completion calls."""

    model: str
    temperature: float = 0.2
    max_tokens: int = 600


class ChatMessage(BaseModel):
    """A single message in a chat conversation."""

    role: str  # system, user, assistant
    content: str


class ChatResponse(BaseModel):
    """Response from a chat completion."""

    text: str
    model: str = ""
    input_tokens: int = 0
    output_tokens: int = 0
    finish_reason: str = "unknown"
    latency_ms: float = 0.0


@runtime_checkable
class CompletionService(Protocol):
    """Anything that can turn a message list into completion text."""

    async def complete(
        self, model: str, messages: list[ChatMessage] | list[dict[str, str]]
    ) -> ChatResponse: ...


def _to_dicts(messages: list[ChatMessage] | list[dict[str, str]]) -> list[dict[str, str]]:
    msg_dicts = []
    for msg in messages:
        if isinstance(msg, ChatMessage):
            msg_dicts.append({"role": msg.role, "content": msg.content})
        else:
            msg_dicts.append(dict(msg))
    return msg_dicts


class OpenRouterClient:
    """OpenRouter-compatible chat completion client."""

    BASE_URL = "https://openrouter.ai/api/v1"

    def __init__(
        self,
        api_key: str,
        model_config: ModelConfig | None = None,
        base_url: str | None = None,
        timeout: float = 60.0,
        site_name: str = "skillrouter",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key
        self.model_config = model_config or ModelConfig(model="openai/gpt-4o-mini")
        self.base_url = base_url or self.BASE_URL
        self.timeout = timeout
        self.site_name = site_name
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def from_settings(cls, settings: LLMSettings, **kwargs: object) -> OpenRouterClient:
        """Create a client from application settings."""
        return cls(
            api_key=settings.api_key or "",
            model_config=ModelConfig(
                model=settings.model,
                temperature=settings.temperature,
                max_tokens=settings.max_tokens,
            ),
            base_url=settings.base_url,
            timeout=settings.timeout_seconds,
            **kwargs,  # type: ignore[arg-type]
        )

    async def init(self) -> None:
        """Initialize the HTTP client."""
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "X-Title": self.site_name,
                "Content-Type": "application/json",
            },
            timeout=self.timeout,
            transport=self._transport,
        )
        logger.info("OpenRouter client initialized")

    async def shutdown(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None
        logger.info("OpenRouter client shutdown")

    async def complete(
        self,
        model: str,
        messages: list[ChatMessage] | list[dict[str, str]],
    ) -> ChatResponse:
        """Send one chat completion request.

        Raises:
            CompletionError: on HTTP failure or a malformed response body.
        """
        if self._client is None:
            await self.init()
        assert self._client is not None

        actual_model = model or self.model_config.model
        payload = {
            "model": actual_model,
            "messages": _to_dicts(messages),
            "temperature": self.model_config.temperature,
            "max_tokens": self.model_config.max_tokens,
        }

        start_time = time.perf_counter()
        try:
            response = await self._client.post("/chat/completions", json=payload)
            response.raise_for_status()
            data = response.json()
            choice = data["choices"][0]
            text = choice["message"]["content"] or ""
        except httpx.HTTPStatusError as e:
            logger.error("OpenRouter HTTP error: %s", e)
            raise CompletionError(f"completion request failed: {e}") from e
        except httpx.RequestError as e:
            logger.error("OpenRouter request error: %s", e)
            raise CompletionError(f"completion request failed: {e}") from e
        except (KeyError, IndexError, TypeError, ValueError) as e:
            logger.error("OpenRouter returned an unexpected body: %s", e)
            raise CompletionError("malformed completion response") from e
        finally:
            completion_duration_seconds.observe(time.perf_counter() - start_time)

        usage = data.get("usage") or {}
        return ChatResponse(
            text=text,
            model=data.get("model", actual_model),
            input_tokens=usage.get("prompt_tokens", 0),
            output_tokens=usage.get("completion_tokens", 0),
            finish_reason=choice.get("finish_reason") or "unknown",
            latency_ms=(time.perf_counter() - start_time) * 1000,
        )
