"""Google Gemini LLM provider implementation for the model gateway."""

from __future__ import annotations

import json
import logging
import os
import uuid
from typing import Any

from dotenv import load_dotenv
from google import genai
from google.genai import errors as genai_errors
from google.genai import types as genai_types

from ..errors import ConfigurationError, ProviderError
from ..models import LLMResponse, Message, ToolCall
from .base import LLMProvider

load_dotenv()

logger = logging.getLogger(__name__)


class GeminiProvider(LLMProvider):
    """Gemini provider using the google-genai SDK.

    Gemini takes the system prompt out-of-band as a system instruction, and
    tool calls/results travel as function_call/function_response parts. Call
    ids are carried on both parts so a result can be matched to its call.
    """

    name = "gemini"

    def __init__(self, api_key: str | None = None) -> None:
        self.api_key = api_key or os.getenv("GOOGLE_API_KEY") or os.getenv(
            "GEMINI_API_KEY",
            "",
        )
        self._client: genai.Client | None = None

    def _get_client(self) -> genai.Client:
        if not self.api_key:
            raise ConfigurationError("GOOGLE_API_KEY not configured")
        if not self._client:
            self._client = genai.Client(
                api_key=self.api_key,
                http_options={"api_version": "v1beta"},
            )
        return self._client

    @staticmethod
    def _to_gemini_contents(
        messages: list[Message],
    ) -> tuple[list[genai_types.Content], str | None]:
        """Convert canonical messages into Gemini contents and a system instruction."""
        contents: list[genai_types.Content] = []
        system_parts: list[str] = []
        # Consecutive tool results are grouped into one user turn.
        in_tool_results = False

        for m in messages:
            if m.role == "system":
                if (m.content or "").strip():
                    system_parts.append(m.content.strip())
                continue

            if m.role == "tool":
                part = genai_types.Part(
                    function_response=genai_types.FunctionResponse(
                        id=m.tool_call_id,
                        name=m.name or "",
                        response={"result": m.content or ""},
                    )
                )
                if in_tool_results:
                    contents[-1].parts.append(part)
                else:
                    contents.append(genai_types.Content(role="user", parts=[part]))
                    in_tool_results = True
                continue

            in_tool_results = False
            role = "model" if m.role == "assistant" else "user"
            parts: list[genai_types.Part] = []
            if m.content:
                parts.append(genai_types.Part(text=m.content))
            for tc in m.tool_calls or []:
                parts.append(
                    genai_types.Part(
                        function_call=genai_types.FunctionCall(
                            id=tc.id,
                            name=tc.name,
                            args=tc.parsed_arguments(),
                        )
                    )
                )
            if parts:
                contents.append(genai_types.Content(role=role, parts=parts))

        system_instruction = "\n\n".join(system_parts) or None
        return contents, system_instruction

    @staticmethod
    def _to_gemini_tools(tools: list[dict[str, Any]] | None) -> list[genai_types.Tool] | None:
        """Convert function tools into Gemini Tool declarations."""
        if not tools:
            return None
        function_declarations: list[genai_types.FunctionDeclaration] = []
        for t in tools:
            fn = t.get("function") if "function" in t else t
            name = fn.get("name")
            if not name:
                continue
            function_declarations.append(
                genai_types.FunctionDeclaration(
                    name=name,
                    description=fn.get("description", ""),
                    parameters=fn.get("parameters") or None,
                )
            )
        if not function_declarations:
            return None
        return [genai_types.Tool(function_declarations=function_declarations)]

    @staticmethod
    def _parse_response(resp: Any) -> LLMResponse:
        candidates = getattr(resp, "candidates", None) or []
        if not candidates:
            raise ProviderError("gemini", "No candidates returned")

        text_parts: list[str] = []
        tool_calls: list[ToolCall] = []
        content = getattr(candidates[0], "content", None)
        for part in getattr(content, "parts", None) or []:
            fc = getattr(part, "function_call", None)
            if fc:
                tool_calls.append(
                    ToolCall(
                        id=getattr(fc, "id", None) or f"call_{uuid.uuid4().hex[:12]}",
                        name=fc.name or "",
                        arguments=json.dumps(dict(fc.args) if fc.args else {}),
                    )
                )
            elif getattr(part, "text", None):
                text_parts.append(part.text)

        finish = getattr(candidates[0], "finish_reason", None)
        usage = getattr(resp, "usage_metadata", None)
        return LLMResponse(
            content="".join(text_parts),
            tool_calls=tool_calls,
            tokens_used=getattr(usage, "total_token_count", 0) or 0,
            finish_reason=getattr(finish, "name", None) or str(finish or "STOP"),
        )

    async def chat(
        self,
        messages: list[Message],
        *,
        model: str,
        tools: list[dict[str, Any]] | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        """Non-streaming chat using Gemini generate_content."""
        client = self._get_client()
        contents, system_instruction = self._to_gemini_contents(messages)

        config_args: dict[str, Any] = {}
        gemini_tools = self._to_gemini_tools(tools)
        if gemini_tools:
            config_args["tools"] = gemini_tools
            config_args["tool_config"] = genai_types.ToolConfig(
                function_calling_config=genai_types.FunctionCallingConfig(
                    mode=genai_types.FunctionCallingConfigMode.AUTO
                )
            )
        if system_instruction:
            config_args["system_instruction"] = system_instruction
        if temperature is not None:
            config_args["temperature"] = temperature
        if max_tokens is not None:
            config_args["max_output_tokens"] = max_tokens

        logger.debug("Gemini request: model=%s contents=%d", model, len(contents))
        try:
            resp = await client.aio.models.generate_content(
                model=model,
                contents=contents,
                config=genai_types.GenerateContentConfig(**config_args),
            )
        except genai_errors.APIError as exc:
            raise ProviderError(self.name, str(exc)) from exc
        return self._parse_response(resp)
