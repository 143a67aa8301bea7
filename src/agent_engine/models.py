"""Data models for agents, sessions, messages, plans and tools."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Literal

from pydantic import BaseModel, Field

ModelProvider = Literal["openai", "gemini", "ollama"]
SessionStatus = Literal["active", "completed", "failed", "cancelled"]
MessageRole = Literal["user", "assistant", "tool"]
MemoryType = Literal["fact", "preference", "learned", "user_provided"]
ToolType = Literal["builtin", "external_server"]
PlanStatus = Literal["executing", "waiting_for_user", "completed", "failed"]
StepStatus = Literal["pending", "in_progress", "completed", "failed", "skipped"]

TERMINAL_SESSION_STATUSES: frozenset[str] = frozenset({"completed", "failed", "cancelled"})
# Steps in these states no longer hold up the plan.
CLOSED_STEP_STATUSES: frozenset[str] = frozenset({"completed", "skipped"})


# ---------------------------------------------------------------------------
# Chat messages (canonical shape passed to the model gateway)
# ---------------------------------------------------------------------------


class ToolCall(BaseModel):
    """A tool invocation requested by the model.

    ``arguments`` keeps the raw JSON text the model produced; nothing here
    validates it against the tool schema.
    """

    id: str
    name: str
    arguments: str = "{}"

    @classmethod
    def from_params(cls, call_id: str, name: str, params: dict[str, Any] | None) -> ToolCall:
        return cls(id=call_id, name=name, arguments=json.dumps(params or {}))

    def parsed_arguments(self) -> dict[str, Any]:
        """Decode arguments; malformed JSON falls back to ``{"raw": text}``."""
        if not self.arguments or not self.arguments.strip():
            return {}
        try:
            value = json.loads(self.arguments)
        except (TypeError, ValueError):
            return {"raw": self.arguments}
        if not isinstance(value, dict):
            return {"raw": self.arguments}
        return value


class Message(BaseModel):
    """A single message in a conversation."""

    role: str  # "system" | "user" | "assistant" | "tool"
    content: str = ""
    tool_calls: list[ToolCall] | None = None
    tool_call_id: str | None = None
    name: str | None = None


@dataclass
class LLMResponse:
    """Normalized result of one model invocation."""

    content: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    tokens_used: int = 0
    finish_reason: str = "stop"


@dataclass
class InvocationOptions:
    provider: str
    model: str
    temperature: float = 0.7
    max_tokens: int | None = None


# ---------------------------------------------------------------------------
# Agents, tools, memories
# ---------------------------------------------------------------------------


class Agent(BaseModel):
    agent_id: str
    tenant_id: str
    user_id: str
    name: str
    description: str | None = None
    goal: str
    system_prompt: str
    model_provider: ModelProvider
    model_name: str
    max_steps: int = Field(default=10, ge=1, le=100)
    temperature: float = Field(default=0.7, ge=0, le=2)
    is_active: bool = True
    created_at: str = ""
    updated_at: str = ""


class ToolDescriptor(BaseModel):
    """A tool an agent may call."""

    tool_id: str
    name: str
    description: str
    tool_type: ToolType
    input_schema: dict[str, Any] = Field(default_factory=lambda: {"type": "object", "properties": {}})
    is_active: bool = True

    def to_tool_schema(self) -> dict[str, Any]:
        """Standard function-calling schema (OpenAI-style) for any LLM provider."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.input_schema,
            },
        }


class MemoryItem(BaseModel):
    """Long-term fact or preference attached to an agent."""

    memory_id: str
    agent_id: str
    tenant_id: str = ""
    memory_type: MemoryType = "fact"
    content: str
    importance: int = Field(default=5, ge=1, le=10)
    last_accessed_at: str | None = None
    is_active: bool = True
    created_at: str = ""


@dataclass
class ToolResult:
    """Result of a single tool execution."""

    success: bool
    result: str

    def to_output(self) -> dict[str, Any]:
        return {"success": self.success, "result": self.result}


# ---------------------------------------------------------------------------
# Sessions and persisted messages
# ---------------------------------------------------------------------------


class Session(BaseModel):
    session_id: str
    agent_id: str
    user_id: str
    tenant_id: str
    title: str | None = None
    status: SessionStatus = "active"
    current_step: int = Field(default=0, ge=0)
    goal_met: bool = False
    started_at: str = ""
    ended_at: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_SESSION_STATUSES


class SessionMessage(BaseModel):
    """A persisted, immutable step of a session."""

    message_id: str
    session_id: str
    step_number: int
    role: MessageRole
    content: str
    tool_name: str | None = None
    tool_input: dict[str, Any] | None = None
    tool_output: dict[str, Any] | None = None
    tool_calls: list[ToolCall] | None = None
    tool_call_id: str | None = None
    tokens_used: int | None = None
    created_at: str = ""


# ---------------------------------------------------------------------------
# Execution plan
# ---------------------------------------------------------------------------


class ExecutionPlanStep(BaseModel):
    step_number: int
    description: str
    status: StepStatus = "pending"
    result: str | None = None
    completed_at: str | None = None


class ExecutionPlan(BaseModel):
    """Model-authored plan stored as session memory under ``execution_plan``."""

    goal: str = Field(min_length=1)
    steps: list[ExecutionPlanStep]
    status: PlanStatus = "executing"
    current_step_index: int = 0
    created_at: str = ""
    updated_at: str = ""

    def in_progress_step(self) -> ExecutionPlanStep | None:
        for step in self.steps:
            if step.status == "in_progress":
                return step
        return None

    def next_pending_step(self) -> ExecutionPlanStep | None:
        for step in self.steps:
            if step.status == "pending":
                return step
        return None

    def first_open_index(self) -> int:
        """Index of the first step not yet closed, or len(steps) when all are."""
        for i, step in enumerate(self.steps):
            if step.status not in CLOSED_STEP_STATUSES:
                return i
        return len(self.steps)

    def has_unfinished_steps(self) -> bool:
        return any(s.status in ("pending", "in_progress") for s in self.steps)


# ---------------------------------------------------------------------------
# Loop result
# ---------------------------------------------------------------------------


@dataclass
class SendMessageResult:
    """Outcome of one user turn driven through the loop."""

    session_id: str
    assistant_text: str
    tokens_used: int
    session_status: str
    goal_met: bool
    should_continue: bool
    current_step: int
