"""Exceptions raised by the agent engine.

Tool failures are not represented here: they are returned as ``ToolResult``
data so they can be persisted and shown to the model.
"""

from __future__ import annotations


class AgentEngineError(Exception):
    """Base class for engine errors surfaced to callers."""


class ConfigurationError(AgentEngineError):
    """Required credentials, endpoints or provider settings are missing."""


class ProviderError(AgentEngineError):
    """The model backend call failed or returned no usable choice."""

    def __init__(self, provider: str, message: str) -> None:
        super().__init__(f"{provider}: {message}")
        self.provider = provider


class SessionNotFoundError(AgentEngineError):
    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session not found: {session_id}")
        self.session_id = session_id


class SessionNotActiveError(AgentEngineError):
    """The session is terminal and accepts no further steps."""

    def __init__(self, session_id: str, status: str) -> None:
        super().__init__(f"Session {session_id} is not active (status={status})")
        self.session_id = session_id
        self.status = status


class AgentNotFoundError(AgentEngineError):
    def __init__(self, agent_id: str) -> None:
        super().__init__(f"Agent not found: {agent_id}")
        self.agent_id = agent_id


class AgentInactiveError(AgentEngineError):
    def __init__(self, agent_id: str) -> None:
        super().__init__(f"Agent is inactive: {agent_id}")
        self.agent_id = agent_id


class PlanActionError(AgentEngineError):
    """Invalid input to the planning tool (bad action, missing fields)."""

    def __init__(self, message: str, status_code: int = 400) -> None:
        super().__init__(message)
        self.status_code = status_code
