"""Completion service clients."""

from skillrouter.services.llm.openrouter import (
    ChatMessage,
    ChatResponse,
    CompletionService,
    ModelConfig,
    OpenRouterClient,
)

__all__ = [
    "ChatMessage",
    "ChatResponse",
    "CompletionService",
    "ModelConfig",
    "OpenRouterClient",
]
