"""Abstract LLM provider interface for the model gateway."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from ..models import LLMResponse, Message


class LLMProvider(ABC):
    """
    Abstract LLM provider. Each backend owns its request/response translation.

    The loop only depends on this interface; add a backend by adding a subclass
    and registering it in ``agent_engine.llm``.
    """

    name: str = ""

    @abstractmethod
    async def chat(
        self,
        messages: list[Message],
        *,
        model: str,
        tools: list[dict[str, Any]] | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        """
        One non-streaming request/response call.

        ``tools`` are OpenAI-style function schemas and are passed through
        without validation. Raises ProviderError or ConfigurationError.
        """
        ...
