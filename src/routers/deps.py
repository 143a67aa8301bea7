"""Shared FastAPI dependencies for the agent routers."""

from __future__ import annotations

from functools import lru_cache

from fastapi import Depends

from src.agent_engine.db import AgentStore
from src.agent_engine.loop import AgentLoop


@lru_cache(maxsize=1)
def get_store() -> AgentStore:
    return AgentStore()


def get_agent_loop(store: AgentStore = Depends(get_store)) -> AgentLoop:
    return AgentLoop(store)


def bearer_token(authorization: str | None) -> str:
    """Strip the scheme from an Authorization header; builtin tools get the bare token."""
    if not authorization:
        return ""
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() == "bearer" and token:
        return token.strip()
    return authorization.strip()
