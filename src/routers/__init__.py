"""HTTP routers for the agent engine."""

from .agents import router as agents_router
from .plan_tool import router as plan_tool_router

__all__ = ["agents_router", "plan_tool_router"]
