"""Tool dispatch: resolve a model tool call against the agent's tools and run it."""

from __future__ import annotations

import json
import logging
from typing import Any

import httpx

from .config import PLANNING_TOOL_NAME, TOOL_BASE_URL, TOOL_HTTP_TIMEOUT
from .models import ToolCall, ToolDescriptor, ToolResult

logger = logging.getLogger(__name__)

# Builtin tool names and the HTTP endpoints that back them.
BUILTIN_TOOL_ENDPOINTS: dict[str, str] = {
    "get_weather": "/api/tools/weather",
    "web_search": "/api/tools/web-search",
    "list_files": "/api/tools/files",
    "read_file": "/api/tools/files",
    "create_file": "/api/tools/files",
    "delete_file": "/api/tools/files",
    PLANNING_TOOL_NAME: "/api/tools/plan",
}

# The files endpoint serves four tools; the action is implied by the tool name.
FILE_TOOL_ACTIONS: dict[str, str] = {
    "list_files": "list",
    "read_file": "read",
    "create_file": "create",
    "delete_file": "delete",
}


def build_tool_input(
    tool_name: str, arguments: dict[str, Any], session_id: str | None = None
) -> dict[str, Any]:
    """Add the implicit parameters a builtin endpoint needs to the model's arguments."""
    payload = dict(arguments)
    if tool_name in FILE_TOOL_ACTIONS:
        payload["action"] = FILE_TOOL_ACTIONS[tool_name]
    if tool_name == PLANNING_TOOL_NAME and session_id:
        payload["session_id"] = session_id
    return payload


def _render_result(result: Any) -> str:
    if isinstance(result, str):
        return result
    return json.dumps(result, indent=2, default=str)


class ToolDispatcher:
    """Executes tool calls. Failures come back as ToolResult data, never as exceptions."""

    def __init__(
        self,
        base_url: str | None = None,
        *,
        timeout: float = TOOL_HTTP_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or TOOL_BASE_URL).rstrip("/")
        self.timeout = timeout
        self._transport = transport

    async def execute(
        self,
        tool_call: ToolCall,
        available_tools: list[ToolDescriptor],
        auth_token: str = "",
        session_id: str | None = None,
    ) -> ToolResult:
        tool = next((t for t in available_tools if t.name == tool_call.name), None)
        if tool is None:
            return ToolResult(success=False, result=f"Tool not found: {tool_call.name}")

        if tool.tool_type == "builtin":
            return await self._execute_builtin(tool_call, auth_token, session_id)

        if tool.tool_type == "external_server":
            return ToolResult(
                success=False,
                result="External tool server execution not yet implemented.",
            )

        return ToolResult(success=False, result=f"Unsupported tool type: {tool.tool_type}")

    async def _execute_builtin(
        self, tool_call: ToolCall, auth_token: str, session_id: str | None
    ) -> ToolResult:
        endpoint = BUILTIN_TOOL_ENDPOINTS.get(tool_call.name)
        if not endpoint:
            return ToolResult(
                success=False,
                result=f"Builtin tool endpoint not configured: {tool_call.name}",
            )

        payload = build_tool_input(tool_call.name, tool_call.parsed_arguments(), session_id)
        headers = {"Content-Type": "application/json"}
        if auth_token:
            headers["Authorization"] = f"Bearer {auth_token}"

        try:
            async with httpx.AsyncClient(
                base_url=self.base_url, timeout=self.timeout, transport=self._transport
            ) as client:
                resp = await client.post(endpoint, json=payload, headers=headers)
            data = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Builtin tool %s failed: %s", tool_call.name, exc)
            return ToolResult(success=False, result=f"Tool execution error: {exc}")

        if not isinstance(data, dict):
            return ToolResult(success=False, result="Tool execution failed")
        if data.get("success") and data.get("result") is not None:
            return ToolResult(success=True, result=_render_result(data["result"]))

        error = data.get("error") or "Tool execution failed"
        logger.warning("Builtin tool %s returned error (HTTP %s): %s", tool_call.name, resp.status_code, error)
        return ToolResult(success=False, result=str(error))
