"""OpenAI LLM provider implementation for the model gateway."""

from __future__ import annotations

import logging
import os
from typing import Any

import openai
from dotenv import load_dotenv
from openai import AsyncOpenAI

from ..errors import ConfigurationError, ProviderError
from ..models import LLMResponse, Message, ToolCall
from .base import LLMProvider

load_dotenv()

logger = logging.getLogger(__name__)


class OpenAIProvider(LLMProvider):
    """OpenAI-backed LLM provider using the Chat Completions API."""

    name = "openai"

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
    ) -> None:
        self.api_key = api_key or os.getenv("OPENAI_API_KEY") or ""
        self.base_url = base_url or os.getenv("OPENAI_BASE_URL")
        self._client: AsyncOpenAI | None = None

    def _get_client(self) -> AsyncOpenAI:
        if not self.api_key:
            raise ConfigurationError("OPENAI_API_KEY is not configured")
        if not self._client:
            kwargs: dict[str, Any] = {"api_key": self.api_key}
            if self.base_url:
                kwargs["base_url"] = self.base_url
            self._client = AsyncOpenAI(**kwargs)
        return self._client

    @staticmethod
    def _to_openai_messages(messages: list[Message]) -> list[dict[str, Any]]:
        """Convert canonical messages into OpenAI chat message dicts."""
        out: list[dict[str, Any]] = []
        for m in messages:
            if m.role == "tool":
                out.append(
                    {
                        "role": "tool",
                        "content": m.content or "",
                        "tool_call_id": m.tool_call_id or "",
                    }
                )
            elif m.role == "assistant" and m.tool_calls:
                out.append(
                    {
                        "role": "assistant",
                        "content": m.content or None,
                        "tool_calls": [
                            {
                                "id": tc.id,
                                "type": "function",
                                "function": {"name": tc.name, "arguments": tc.arguments},
                            }
                            for tc in m.tool_calls
                        ],
                    }
                )
            else:
                out.append({"role": m.role, "content": m.content or ""})
        return out

    @staticmethod
    def _parse_tool_calls(choice_message: Any) -> list[ToolCall]:
        """Map OpenAI tool_calls to ToolCall, keeping the raw argument string."""
        tool_calls: list[ToolCall] = []
        for tc in getattr(choice_message, "tool_calls", None) or []:
            fn = getattr(tc, "function", None)
            if fn is None:
                continue
            tool_calls.append(
                ToolCall(
                    id=getattr(tc, "id", "") or "",
                    name=getattr(fn, "name", "") or "",
                    arguments=getattr(fn, "arguments", "") or "",
                )
            )
        return tool_calls

    async def chat(
        self,
        messages: list[Message],
        *,
        model: str,
        tools: list[dict[str, Any]] | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        """Non-streaming chat using OpenAI Chat Completions."""
        client = self._get_client()
        params: dict[str, Any] = {
            "model": model,
            "messages": self._to_openai_messages(messages),
        }
        if temperature is not None:
            params["temperature"] = temperature
        if max_tokens is not None:
            params["max_tokens"] = max_tokens
        if tools:
            params["tools"] = tools

        logger.debug("OpenAI request: model=%s messages=%d", model, len(messages))
        try:
            resp = await client.chat.completions.create(**params)
        except openai.OpenAIError as exc:
            raise ProviderError(self.name, str(exc)) from exc

        if not resp.choices:
            raise ProviderError(self.name, "No response choices returned")

        choice = resp.choices[0]
        usage = getattr(resp, "usage", None)
        return LLMResponse(
            content=choice.message.content or "",
            tool_calls=self._parse_tool_calls(choice.message),
            tokens_used=getattr(usage, "total_tokens", 0) or 0,
            finish_reason=choice.finish_reason or "stop",
        )
