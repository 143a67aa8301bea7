"""Unit tests for conversation assembly: system prompt, plan section and history replay."""
from __future__ import annotations

import unittest

from src.agent_engine.context import (
    build_messages,
    build_system_prompt,
    format_plan_steps,
    history_to_messages,
)
from src.agent_engine.models import (
    Agent,
    ExecutionPlan,
    ExecutionPlanStep,
    MemoryItem,
    SessionMessage,
    ToolCall,
)

AGENT = Agent(
    agent_id="a1",
    tenant_id="t1",
    user_id="u1",
    name="researcher",
    goal="Write a short report",
    system_prompt="You are a careful researcher.",
    model_provider="openai",
    model_name="gpt-4o-mini",
)


def _plan(*statuses: str, status: str = "executing") -> ExecutionPlan:
    return ExecutionPlan(
        goal="Write a short report",
        status=status,
        steps=[
            ExecutionPlanStep(step_number=i, description=f"Task {i}", status=s)
            for i, s in enumerate(statuses, start=1)
        ],
    )


def _stored(step: int, role: str, content: str = "", **fields) -> SessionMessage:
    return SessionMessage(
        message_id=f"m{step}", session_id="s1", step_number=step, role=role, content=content, **fields
    )


class TestBuildSystemPrompt(unittest.TestCase):
    def test_base_sections(self) -> None:
        memories = [
            MemoryItem(memory_id="m1", agent_id="a1", content="Prefers bullet points", memory_type="preference"),
            MemoryItem(memory_id="m2", agent_id="a1", content="Works in finance"),
        ]
        prompt = build_system_prompt(AGENT, memories)

        self.assertTrue(prompt.startswith("You are a careful researcher."))
        self.assertIn("## Your Goal\nWrite a short report", prompt)
        self.assertIn("- [preference] Prefers bullet points\n- [fact] Works in finance", prompt)
        self.assertIn('"GOAL_COMPLETE"', prompt)
        self.assertNotIn("Execution Plan", prompt)

    def test_no_memories_section_when_empty(self) -> None:
        self.assertNotIn("Relevant Memories", build_system_prompt(AGENT, []))

    def test_planning_agent_without_plan_must_create_one(self) -> None:
        prompt = build_system_prompt(AGENT, [], None, has_planning_tool=True)
        self.assertIn("There is no active plan", prompt)
        self.assertIn('action="create"', prompt)
        self.assertIn("## Execution Model", prompt)

    def test_finished_plan_is_not_active(self) -> None:
        prompt = build_system_prompt(AGENT, [], _plan("completed", status="completed"), True)
        self.assertIn("There is no active plan", prompt)
        self.assertIn("status: completed", prompt)

    def test_in_progress_step_is_resumed(self) -> None:
        prompt = build_system_prompt(AGENT, [], _plan("completed", "in_progress", "pending"), True)
        self.assertIn("## Execution Plan (active)", prompt)
        self.assertIn("2. [IN_PROGRESS] Task 2", prompt)
        self.assertIn("Resume step 2", prompt)
        self.assertIn("Do NOT call `update_plan` with action=\"create\" again", prompt)

    def test_next_pending_step_is_started(self) -> None:
        prompt = build_system_prompt(AGENT, [], _plan("completed", "pending"), True)
        self.assertIn("Start step 2", prompt)

    def test_all_steps_finished_asks_for_completion(self) -> None:
        prompt = build_system_prompt(AGENT, [], _plan("completed", "skipped"), True)
        self.assertIn("All steps are finished", prompt)
        self.assertIn('action="complete"', prompt)


class TestFormatPlanSteps(unittest.TestCase):
    def test_result_line(self) -> None:
        plan = _plan("completed", "pending")
        plan.steps[0].result = "Collected 3 sources"
        self.assertEqual(
            format_plan_steps(plan),
            "1. [COMPLETED] Task 1\n   Result: Collected 3 sources\n2. [PENDING] Task 2",
        )


class TestHistoryReplay(unittest.TestCase):
    def test_replays_calls_and_results(self) -> None:
        call = ToolCall.from_params("call_1", "web_search", {"q": "rates"})
        stored = [
            _stored(1, "user", "Find rates"),
            _stored(2, "assistant", "", tool_calls=[call]),
            _stored(3, "tool", "5%", tool_name="web_search", tool_call_id="call_1"),
            _stored(4, "assistant", "Rates are 5%."),
        ]
        messages = history_to_messages(stored)

        self.assertEqual([m.role for m in messages], ["user", "assistant", "tool", "assistant"])
        self.assertEqual(messages[1].tool_calls[0].id, "call_1")
        self.assertEqual(messages[2].tool_call_id, "call_1")
        self.assertEqual(messages[2].name, "web_search")

    def test_unanswered_calls_are_dropped(self) -> None:
        answered = ToolCall.from_params("a", "web_search", {})
        orphan = ToolCall.from_params("b", "read_file", {})
        stored = [
            _stored(1, "user", "Go"),
            _stored(2, "assistant", "Working", tool_calls=[answered, orphan]),
            _stored(3, "tool", "ok", tool_name="web_search", tool_call_id="a"),
        ]
        messages = history_to_messages(stored)
        self.assertEqual([tc.id for tc in messages[1].tool_calls], ["a"])

    def test_legacy_tool_rows_use_tool_name_as_id(self) -> None:
        call = ToolCall(id="web_search", name="web_search")
        stored = [
            _stored(1, "assistant", "", tool_calls=[call]),
            _stored(2, "tool", "ok", tool_name="web_search"),
        ]
        messages = history_to_messages(stored)
        self.assertEqual(messages[1].tool_call_id, "web_search")
        self.assertEqual(len(messages[0].tool_calls), 1)

    def test_build_messages_prepends_system(self) -> None:
        history = history_to_messages([_stored(1, "user", "Hi")])
        messages = build_messages("SYS", history)
        self.assertEqual([m.role for m in messages], ["system", "user"])
        self.assertEqual(messages[0].content, "SYS")


if __name__ == "__main__":
    unittest.main()
