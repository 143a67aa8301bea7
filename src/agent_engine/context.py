"""Conversation assembly: system prompt, plan status and replayed history."""

from __future__ import annotations

from .config import GOAL_COMPLETE_SENTINEL, PLANNING_TOOL_NAME
from .models import Agent, ExecutionPlan, MemoryItem, Message, SessionMessage
from .system_prompt_loader import get_planning_guide


def format_plan_steps(plan: ExecutionPlan) -> str:
    lines = []
    for step in plan.steps:
        line = f"{step.step_number}. [{step.status.upper()}] {step.description}"
        if step.result:
            line += f"\n   Result: {step.result}"
        lines.append(line)
    return "\n".join(lines)


def _next_action(plan: ExecutionPlan) -> str:
    current = plan.in_progress_step()
    if current is not None:
        return (
            f"Resume step {current.step_number} ({current.description}). It is already "
            "in progress: perform the work now with your tools. Do not mark it again."
        )
    pending = plan.next_pending_step()
    if pending is not None:
        return (
            f"Start step {pending.step_number} ({pending.description}). Mark it in_progress "
            f"with `{PLANNING_TOOL_NAME}`, then perform the work with your tools."
        )
    return (
        f'All steps are finished. Call `{PLANNING_TOOL_NAME}` with action="complete", then '
        f"reply starting with {GOAL_COMPLETE_SENTINEL}."
    )


def _plan_section(plan: ExecutionPlan | None) -> str:
    if plan is None or plan.status != "executing":
        section = (
            "\n\n## Execution Plan\n"
            "There is no active plan. Before doing anything else you MUST call "
            f'`{PLANNING_TOOL_NAME}` with action="create" to plan this task.'
        )
        if plan is not None:
            section += f"\n(The previous plan ended with status: {plan.status}.)"
        return section

    return (
        "\n\n## Execution Plan (active)\n"
        f"Goal: {plan.goal}\n\n"
        f"{format_plan_steps(plan)}\n\n"
        f'The plan already exists. Do NOT call `{PLANNING_TOOL_NAME}` with action="create" again.\n'
        f"Next action: {_next_action(plan)}"
    )


def build_system_prompt(
    agent: Agent,
    memories: list[MemoryItem],
    plan: ExecutionPlan | None = None,
    has_planning_tool: bool = False,
) -> str:
    """Base prompt, goal, memories, instructions and (for planning agents) plan status."""
    prompt = agent.system_prompt
    prompt += f"\n\n## Your Goal\n{agent.goal}"

    if memories:
        prompt += "\n\n## Relevant Memories\n"
        prompt += "\n".join(f"- [{m.memory_type}] {m.content}" for m in memories)

    prompt += (
        "\n\n## Instructions\n"
        "- Work towards completing the goal step by step\n"
        "- Use available tools when needed\n"
        f'- When you believe the goal is complete, respond with "{GOAL_COMPLETE_SENTINEL}" '
        "at the start of your message\n"
        "- If you cannot complete the goal, explain why"
    )

    if has_planning_tool:
        guide = get_planning_guide()
        if guide:
            prompt += f"\n\n{guide}"
        prompt += _plan_section(plan)
    return prompt


def history_to_messages(stored: list[SessionMessage]) -> list[Message]:
    """Replay persisted steps as chat messages.

    Tool calls that never got a persisted result are dropped from their
    assistant message so every replayed call is followed by its result.
    """
    answered = {m.tool_call_id or m.tool_name for m in stored if m.role == "tool"}
    messages: list[Message] = []
    for m in stored:
        if m.role == "user":
            messages.append(Message(role="user", content=m.content))
        elif m.role == "assistant":
            calls = [tc for tc in m.tool_calls or [] if tc.id in answered]
            messages.append(
                Message(role="assistant", content=m.content, tool_calls=calls or None)
            )
        elif m.role == "tool" and m.tool_name:
            messages.append(
                Message(
                    role="tool",
                    content=m.content,
                    tool_call_id=m.tool_call_id or m.tool_name,
                    name=m.tool_name,
                )
            )
    return messages


def append_user(history: list[Message], text: str) -> list[Message]:
    return [*history, Message(role="user", content=text)]


def build_messages(system_prompt: str, history: list[Message]) -> list[Message]:
    return [Message(role="system", content=system_prompt), *history]
