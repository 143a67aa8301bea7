"""Agent engine: goal-directed LLM loop with tools, execution plans and persisted sessions."""

from .db import AgentStore
from .errors import (
    AgentEngineError,
    AgentInactiveError,
    AgentNotFoundError,
    ConfigurationError,
    PlanActionError,
    ProviderError,
    SessionNotActiveError,
    SessionNotFoundError,
)
from .llm import get_provider, invoke, set_provider
from .loop import AgentLoop, LoopOptions, run_loop
from .models import (
    Agent,
    ExecutionPlan,
    LLMResponse,
    Message,
    SendMessageResult,
    Session,
    SessionMessage,
    ToolCall,
    ToolDescriptor,
    ToolResult,
)
from .plan_tracker import PlanTracker
from .providers import LLMProvider
from .tools import ToolDispatcher

__all__ = [
    "AgentLoop",
    "LoopOptions",
    "run_loop",
    "AgentStore",
    "PlanTracker",
    "ToolDispatcher",
    "get_provider",
    "set_provider",
    "invoke",
    "LLMProvider",
    "Agent",
    "ExecutionPlan",
    "LLMResponse",
    "Message",
    "SendMessageResult",
    "Session",
    "SessionMessage",
    "ToolCall",
    "ToolDescriptor",
    "ToolResult",
    "AgentEngineError",
    "AgentInactiveError",
    "AgentNotFoundError",
    "ConfigurationError",
    "PlanActionError",
    "ProviderError",
    "SessionNotActiveError",
    "SessionNotFoundError",
]
