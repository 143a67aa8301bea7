"""Ollama LLM provider implementation."""

from __future__ import annotations

import json
import logging
import os
import uuid
from typing import Any

import httpx
from ollama import AsyncClient, ResponseError

from ..errors import ConfigurationError, ProviderError
from ..models import LLMResponse, Message, ToolCall
from .base import LLMProvider

logger = logging.getLogger(__name__)


def _message_to_chat(m: Message) -> dict[str, Any]:
    """Convert a canonical Message to Ollama chat format."""
    out: dict[str, Any] = {"role": m.role, "content": m.content or ""}
    if m.tool_calls:
        out["tool_calls"] = [
            {
                "function": {
                    "name": tc.name,
                    "arguments": tc.parsed_arguments(),
                },
            }
            for tc in m.tool_calls
        ]
    if m.role == "tool" and m.name:
        out["tool_name"] = m.name
    return out


def _tool_schema_to_ollama(tool: dict[str, Any]) -> dict[str, Any]:
    """Normalize tool def to Ollama/OpenAI format."""
    if "function" in tool:
        return tool
    return {
        "type": "function",
        "function": {
            "name": tool.get("name", ""),
            "description": tool.get("description", ""),
            "parameters": tool.get("parameters", {"type": "object", "properties": {}}),
        },
    }


class OllamaProvider(LLMProvider):
    """Ollama-backed LLM provider.

    Ollama does not issue tool-call ids, so ids are minted here; replayed tool
    results are matched to calls by tool name and order.
    """

    name = "ollama"

    def __init__(self, base_url: str | None = None):
        self.base_url = base_url or os.getenv("OLLAMA_HOST") or "http://localhost:11434"
        self._client: AsyncClient | None = None

    def _get_client(self) -> AsyncClient:
        if not self.base_url:
            raise ConfigurationError("Ollama host is not configured")
        if not self._client:
            self._client = AsyncClient(host=self.base_url)
        return self._client

    async def chat(
        self,
        messages: list[Message],
        *,
        model: str,
        tools: list[dict[str, Any]] | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        client = self._get_client()
        options: dict[str, Any] = {}
        if temperature is not None:
            options["temperature"] = temperature
        if max_tokens is not None:
            options["num_predict"] = max_tokens

        logger.debug("Ollama request: model=%s messages=%d", model, len(messages))
        try:
            resp = await client.chat(
                model=model,
                messages=[_message_to_chat(m) for m in messages],
                tools=[_tool_schema_to_ollama(t) for t in tools] if tools else None,
                options=options or None,
            )
        except (ResponseError, ConnectionError, httpx.HTTPError) as exc:
            raise ProviderError(self.name, str(exc)) from exc

        msg = getattr(resp, "message", None)
        if msg is None:
            raise ProviderError(self.name, "Response contained no message")

        tool_calls: list[ToolCall] = []
        for tc in getattr(msg, "tool_calls", None) or []:
            fn = getattr(tc, "function", None)
            if fn is None:
                continue
            args = getattr(fn, "arguments", None)
            if not isinstance(args, str):
                args = json.dumps(dict(args) if args else {})
            tool_calls.append(
                ToolCall(id=f"call_{uuid.uuid4().hex[:12]}", name=fn.name or "", arguments=args)
            )

        tokens = (getattr(resp, "prompt_eval_count", 0) or 0) + (getattr(resp, "eval_count", 0) or 0)
        return LLMResponse(
            content=getattr(msg, "content", "") or "",
            tool_calls=tool_calls,
            tokens_used=tokens,
            finish_reason=getattr(resp, "done_reason", None) or "stop",
        )
