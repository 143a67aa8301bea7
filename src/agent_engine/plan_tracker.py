"""Execution plan stored as session memory: read, auto-advance and planning-tool actions."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from pydantic import ValidationError

from .config import EXECUTION_PLAN_KEY, MAX_PLAN_STEPS
from .db import AgentStore
from .errors import PlanActionError
from .models import ExecutionPlan, ExecutionPlanStep

logger = logging.getLogger(__name__)

VALID_ACTIONS = ("create", "update_step", "complete", "fail", "wait_for_user")
VALID_STEP_STATUSES = ("in_progress", "completed", "failed", "skipped")

_STATUS_FOR_ACTION = {
    "complete": "completed",
    "fail": "failed",
    "wait_for_user": "waiting_for_user",
}


def _iso_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def parse_plan(raw: Any) -> ExecutionPlan | None:
    """Validate a stored plan document; anything malformed counts as no plan."""
    if raw is None:
        return None
    if not isinstance(raw, dict):
        logger.warning("Ignoring execution plan of type %s", type(raw).__name__)
        return None
    try:
        return ExecutionPlan.model_validate(raw)
    except ValidationError as exc:
        logger.warning("Ignoring invalid execution plan: %s", exc.errors()[:1])
        return None


def should_continue(plan: ExecutionPlan | None) -> bool:
    """True when the plan is still executing and has steps left to work on."""
    if plan is None:
        return False
    if plan.status in ("waiting_for_user", "completed", "failed"):
        return False
    return plan.has_unfinished_steps()


class PlanTracker:
    """Reads and mutates the ``execution_plan`` session-memory document."""

    def __init__(self, store: AgentStore) -> None:
        self._store = store

    def get(self, session_id: str) -> ExecutionPlan | None:
        return parse_plan(self._store.get_session_memory(session_id, EXECUTION_PLAN_KEY))

    def save(self, session_id: str, plan: ExecutionPlan) -> None:
        plan.updated_at = _iso_now()
        self._store.put_session_memory(session_id, EXECUTION_PLAN_KEY, plan.model_dump())

    def auto_complete_in_progress_step(
        self, session_id: str, tool_name: str
    ) -> ExecutionPlanStep | None:
        """Close the step the model left in progress after a work tool succeeded.

        Completes at most one step, and only on an executing plan. Returns the
        completed step, or None when nothing changed.
        """
        plan = self.get(session_id)
        if plan is None or plan.status != "executing":
            return None
        step = plan.in_progress_step()
        if step is None:
            return None
        step.status = "completed"
        step.result = step.result or f"Completed via {tool_name}"
        step.completed_at = _iso_now()
        plan.current_step_index = plan.first_open_index()
        self.save(session_id, plan)
        logger.info(
            "Auto-completed plan step %s for session %s after %s",
            step.step_number,
            session_id,
            tool_name,
        )
        return step

    # ------------------------------------------------------------------
    # Planning-tool back end
    # ------------------------------------------------------------------

    def apply_action(self, session_id: str, body: dict[str, Any]) -> dict[str, Any]:
        """Execute one ``update_plan`` action and return its result payload.

        Raises PlanActionError with an HTTP-style status code on bad input.
        """
        action = body.get("action")
        if action not in VALID_ACTIONS:
            raise PlanActionError(f"Invalid action. Must be one of: {', '.join(VALID_ACTIONS)}")
        if action == "create":
            return self._create(session_id, body)
        if action == "update_step":
            return self._update_step(session_id, body)
        return self._change_status(session_id, _STATUS_FOR_ACTION[action], body.get("reason"))

    def _create(self, session_id: str, body: dict[str, Any]) -> dict[str, Any]:
        goal = body.get("goal")
        if not isinstance(goal, str) or not goal.strip():
            raise PlanActionError("goal is required for create action")
        steps = body.get("steps")
        if not isinstance(steps, list) or not steps:
            raise PlanActionError("steps array is required for create action")
        if len(steps) > MAX_PLAN_STEPS:
            raise PlanActionError(f"Maximum {MAX_PLAN_STEPS} steps allowed")

        plan_steps: list[ExecutionPlanStep] = []
        for step in steps:
            if not isinstance(step, dict):
                raise PlanActionError("Each step must have step_number and description")
            number = step.get("step_number")
            description = step.get("description")
            if isinstance(number, bool) or not isinstance(number, int) or not description:
                raise PlanActionError("Each step must have step_number and description")
            plan_steps.append(ExecutionPlanStep(step_number=number, description=str(description)))

        now = _iso_now()
        plan = ExecutionPlan(
            goal=goal.strip(),
            steps=plan_steps,
            status="executing",
            current_step_index=0,
            created_at=now,
            updated_at=now,
        )
        self.save(session_id, plan)
        logger.info("Plan created for session %s with %d steps", session_id, len(plan_steps))
        return {"action": "created", "plan_status": plan.status, "step_count": len(plan_steps)}

    def _require_plan(self, session_id: str) -> ExecutionPlan:
        plan = self.get(session_id)
        if plan is None:
            raise PlanActionError("No plan found for this session", status_code=404)
        return plan

    def _update_step(self, session_id: str, body: dict[str, Any]) -> dict[str, Any]:
        number = body.get("step_number")
        if isinstance(number, bool) or not isinstance(number, int):
            raise PlanActionError("step_number is required for update_step action")
        status = body.get("step_status")
        if status not in VALID_STEP_STATUSES:
            raise PlanActionError(
                f"step_status must be one of: {', '.join(VALID_STEP_STATUSES)}"
            )

        plan = self._require_plan(session_id)
        step = next((s for s in plan.steps if s.step_number == number), None)
        if step is None:
            raise PlanActionError(f"Step {number} not found in plan", status_code=404)

        step.status = status
        if body.get("step_result") is not None:
            step.result = str(body["step_result"])
        if status == "completed":
            step.completed_at = _iso_now()
        plan.current_step_index = plan.first_open_index()
        self.save(session_id, plan)
        return {"action": "step_updated", "step_number": number, "step_status": status}

    def _change_status(self, session_id: str, status: str, reason: Any) -> dict[str, Any]:
        plan = self._require_plan(session_id)
        plan.status = status
        self.save(session_id, plan)
        logger.info("Plan status for session %s changed to %s", session_id, status)
        return {"action": "status_changed", "plan_status": status, "reason": reason}
