"""Unit tests for the tool dispatcher (HTTP-backed builtin tools faked with httpx.MockTransport)."""
from __future__ import annotations

import json
import unittest

import httpx

from src.agent_engine.models import ToolCall, ToolDescriptor
from src.agent_engine.tools import ToolDispatcher, build_tool_input


def _tool(name: str, tool_type: str = "builtin") -> ToolDescriptor:
    return ToolDescriptor(tool_id=f"id-{name}", name=name, description=name, tool_type=tool_type)


class TestBuildToolInput(unittest.TestCase):
    def test_file_tools_get_an_action(self) -> None:
        self.assertEqual(
            build_tool_input("read_file", {"path": "a.txt"}),
            {"path": "a.txt", "action": "read"},
        )

    def test_planning_tool_gets_the_session(self) -> None:
        self.assertEqual(
            build_tool_input("update_plan", {"action": "complete"}, "s1"),
            {"action": "complete", "session_id": "s1"},
        )

    def test_other_tools_pass_through(self) -> None:
        args = {"city": "Paris"}
        self.assertEqual(build_tool_input("get_weather", args, "s1"), args)


class TestToolCallArguments(unittest.TestCase):
    def test_malformed_arguments_are_kept_raw(self) -> None:
        self.assertEqual(ToolCall(id="1", name="x", arguments="{oops").parsed_arguments(), {"raw": "{oops"})
        self.assertEqual(ToolCall(id="1", name="x", arguments="[1]").parsed_arguments(), {"raw": "[1]"})
        self.assertEqual(ToolCall(id="1", name="x", arguments="").parsed_arguments(), {})


class TestToolDispatcher(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.requests: list[httpx.Request] = []
        self.reply = httpx.Response(200, json={"success": True, "result": "ok"})

    def _handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.reply

    def _dispatcher(self, handler=None) -> ToolDispatcher:
        return ToolDispatcher(
            "http://tools.test/", transport=httpx.MockTransport(handler or self._handler)
        )

    async def test_unknown_tool(self) -> None:
        result = await self._dispatcher().execute(ToolCall(id="1", name="nope"), [_tool("web_search")])
        self.assertFalse(result.success)
        self.assertEqual(result.result, "Tool not found: nope")
        self.assertEqual(self.requests, [])

    async def test_external_server_tools_are_not_executed(self) -> None:
        result = await self._dispatcher().execute(
            ToolCall(id="1", name="crm"), [_tool("crm", "external_server")]
        )
        self.assertFalse(result.success)
        self.assertIn("not yet implemented", result.result)

    async def test_builtin_without_endpoint(self) -> None:
        result = await self._dispatcher().execute(ToolCall(id="1", name="custom"), [_tool("custom")])
        self.assertFalse(result.success)
        self.assertIn("not configured", result.result)

    async def test_builtin_request_shape(self) -> None:
        call = ToolCall.from_params("1", "create_file", {"path": "notes.md", "content": "hi"})
        result = await self._dispatcher().execute(
            call, [_tool("create_file")], auth_token="tok", session_id="s1"
        )

        self.assertTrue(result.success)
        self.assertEqual(result.result, "ok")
        request = self.requests[0]
        self.assertEqual(request.url, "http://tools.test/api/tools/files")
        self.assertEqual(request.headers["Authorization"], "Bearer tok")
        self.assertEqual(
            json.loads(request.content), {"path": "notes.md", "content": "hi", "action": "create"}
        )

    async def test_no_auth_header_without_token(self) -> None:
        await self._dispatcher().execute(ToolCall(id="1", name="web_search"), [_tool("web_search")])
        self.assertNotIn("Authorization", self.requests[0].headers)

    async def test_structured_result_rendered_as_json(self) -> None:
        self.reply = httpx.Response(200, json={"success": True, "result": {"temp_c": 21}})
        result = await self._dispatcher().execute(ToolCall(id="1", name="get_weather"), [_tool("get_weather")])
        self.assertEqual(result.result, '{\n  "temp_c": 21\n}')

    async def test_error_envelope(self) -> None:
        self.reply = httpx.Response(400, json={"success": False, "error": "city is required"})
        result = await self._dispatcher().execute(ToolCall(id="1", name="get_weather"), [_tool("get_weather")])
        self.assertFalse(result.success)
        self.assertEqual(result.result, "city is required")

    async def test_missing_result_is_a_failure(self) -> None:
        self.reply = httpx.Response(200, json={"success": True})
        result = await self._dispatcher().execute(ToolCall(id="1", name="web_search"), [_tool("web_search")])
        self.assertFalse(result.success)
        self.assertEqual(result.result, "Tool execution failed")

    async def test_transport_error_becomes_data(self) -> None:
        def boom(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        result = await self._dispatcher(boom).execute(ToolCall(id="1", name="web_search"), [_tool("web_search")])
        self.assertFalse(result.success)
        self.assertTrue(result.result.startswith("Tool execution error:"))

    async def test_non_json_body_becomes_data(self) -> None:
        self.reply = httpx.Response(502, text="<html>Bad gateway</html>")
        result = await self._dispatcher().execute(ToolCall(id="1", name="web_search"), [_tool("web_search")])
        self.assertFalse(result.success)
        self.assertTrue(result.result.startswith("Tool execution error:"))


if __name__ == "__main__":
    unittest.main()
