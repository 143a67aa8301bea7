"""Agents router: session lifecycle and the agent loop endpoint."""

from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, Depends, Header, HTTPException
from pydantic import BaseModel, Field

from src.agent_engine.db import AgentStore
from src.agent_engine.errors import (
    AgentEngineError,
    AgentInactiveError,
    AgentNotFoundError,
    ProviderError,
    SessionNotActiveError,
    SessionNotFoundError,
)
from src.agent_engine.loop import AgentLoop
from src.agent_engine.models import ExecutionPlan, Session, SessionMessage
from src.agent_engine.plan_tracker import PlanTracker
from src.routers.deps import bearer_token, get_agent_loop, get_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/agents", tags=["agents"])


class CreateSessionRequest(BaseModel):
    """Request body for POST /agents/{agent_id}/sessions."""

    user_id: str = Field(..., description="User identifier")
    tenant_id: str = Field(..., description="Tenant identifier")
    title: str | None = Field(None, description="Optional session title")


class SendMessageRequest(BaseModel):
    """Request body for POST /agents/sessions/{session_id}/messages."""

    message: str = Field(..., min_length=1, description="User message")


class SendMessageResponse(BaseModel):
    """Response for POST /agents/sessions/{session_id}/messages."""

    session_id: str
    reply: str
    tokens_used: int = 0
    session_status: str
    goal_met: bool = False
    should_continue: bool = False
    current_step: int = 0


def _to_http_error(exc: AgentEngineError) -> HTTPException:
    if isinstance(exc, (SessionNotFoundError, AgentNotFoundError)):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, (SessionNotActiveError, AgentInactiveError)):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, ProviderError):
        return HTTPException(status_code=502, detail=str(exc))
    # ConfigurationError and anything else unexpected.
    return HTTPException(status_code=500, detail=str(exc))


async def _require_session(store: AgentStore, session_id: str) -> Session:
    session = await asyncio.to_thread(store.get_session, session_id)
    if session is None:
        raise HTTPException(status_code=404, detail=f"Session not found: {session_id}")
    return session


@router.post("/{agent_id}/sessions", response_model=Session, status_code=201)
async def create_session(
    agent_id: str,
    request: CreateSessionRequest,
    store: AgentStore = Depends(get_store),
) -> Session:
    """Open a new active session for an agent."""
    agent = await asyncio.to_thread(store.get_agent, agent_id)
    if agent is None:
        raise HTTPException(status_code=404, detail=f"Agent not found: {agent_id}")
    if not agent.is_active:
        raise HTTPException(status_code=409, detail=f"Agent is inactive: {agent_id}")
    return await asyncio.to_thread(
        store.create_session, agent_id, request.user_id, request.tenant_id, request.title
    )


@router.get("/sessions/{session_id}", response_model=Session)
async def get_session(session_id: str, store: AgentStore = Depends(get_store)) -> Session:
    return await _require_session(store, session_id)


@router.get("/sessions/{session_id}/messages", response_model=list[SessionMessage])
async def list_messages(
    session_id: str, store: AgentStore = Depends(get_store)
) -> list[SessionMessage]:
    await _require_session(store, session_id)
    return await asyncio.to_thread(store.list_messages, session_id)


@router.get("/sessions/{session_id}/plan", response_model=ExecutionPlan | None)
async def get_plan(
    session_id: str, store: AgentStore = Depends(get_store)
) -> ExecutionPlan | None:
    await _require_session(store, session_id)
    return await asyncio.to_thread(PlanTracker(store).get, session_id)


@router.post("/sessions/{session_id}/messages", response_model=SendMessageResponse)
async def send_message(
    session_id: str,
    request: SendMessageRequest,
    loop: AgentLoop = Depends(get_agent_loop),
    authorization: str | None = Header(None),
) -> SendMessageResponse:
    """Run the agent loop for one user message and return the final reply."""
    try:
        result = await loop.send_message(
            session_id, request.message, auth_token=bearer_token(authorization)
        )
    except AgentEngineError as e:
        logger.warning("send_message failed for session %s: %s", session_id, e)
        raise _to_http_error(e) from e
    return SendMessageResponse(
        session_id=result.session_id,
        reply=result.assistant_text,
        tokens_used=result.tokens_used,
        session_status=result.session_status,
        goal_met=result.goal_met,
        should_continue=result.should_continue,
        current_step=result.current_step,
    )


@router.post("/sessions/{session_id}/cancel", response_model=Session)
async def cancel_session(session_id: str, store: AgentStore = Depends(get_store)) -> Session:
    """Cancel an active session. An in-flight loop stops at its next step."""
    session = await _require_session(store, session_id)
    if session.status != "active":
        raise HTTPException(
            status_code=409,
            detail=f"Session {session_id} is not active (status={session.status})",
        )
    await asyncio.to_thread(store.cancel_session, session_id)
    return await _require_session(store, session_id)
