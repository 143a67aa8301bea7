"""Builtin tool endpoint backing ``update_plan``."""

from __future__ import annotations

import asyncio
from typing import Any

from fastapi import APIRouter, Body, Depends
from fastapi.responses import JSONResponse

from src.agent_engine.db import AgentStore
from src.agent_engine.errors import PlanActionError
from src.agent_engine.plan_tracker import PlanTracker
from src.routers.deps import get_store

router = APIRouter(prefix="/api/tools", tags=["tools"])


@router.post("/plan")
async def update_plan(
    body: dict[str, Any] = Body(...),
    store: AgentStore = Depends(get_store),
) -> JSONResponse:
    """Apply a planning action. Responds with the ``{success, result | error}`` tool envelope."""
    session_id = body.get("session_id")
    if not session_id:
        return JSONResponse(status_code=400, content={"success": False, "error": "session_id is required"})
    if await asyncio.to_thread(store.get_session, session_id) is None:
        return JSONResponse(status_code=404, content={"success": False, "error": "Session not found"})

    try:
        result = await asyncio.to_thread(PlanTracker(store).apply_action, session_id, body)
    except PlanActionError as e:
        return JSONResponse(status_code=e.status_code, content={"success": False, "error": str(e)})
    return JSONResponse(content={"success": True, "result": result})
