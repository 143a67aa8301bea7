"""Unit tests for the execution plan tracker and the planning-tool actions."""
from __future__ import annotations

import tempfile
import unittest
from pathlib import Path

from src.agent_engine.config import EXECUTION_PLAN_KEY
from src.agent_engine.db import AgentStore
from src.agent_engine.errors import PlanActionError
from src.agent_engine.models import ExecutionPlan, ExecutionPlanStep
from src.agent_engine.plan_tracker import PlanTracker, parse_plan, should_continue


def _steps(n: int) -> list[dict]:
    return [{"step_number": i, "description": f"Step {i}"} for i in range(1, n + 1)]


class TestShouldContinue(unittest.TestCase):
    def _plan(self, status: str = "executing", *step_statuses: str) -> ExecutionPlan:
        return ExecutionPlan(
            goal="g",
            status=status,
            steps=[
                ExecutionPlanStep(step_number=i, description="d", status=s)
                for i, s in enumerate(step_statuses, start=1)
            ],
        )

    def test_no_plan(self) -> None:
        self.assertFalse(should_continue(None))

    def test_pending_or_in_progress_steps_continue(self) -> None:
        self.assertTrue(should_continue(self._plan("executing", "completed", "pending")))
        self.assertTrue(should_continue(self._plan("executing", "in_progress")))

    def test_finished_steps_stop(self) -> None:
        self.assertFalse(should_continue(self._plan("executing", "completed", "skipped", "failed")))

    def test_non_executing_status_stops(self) -> None:
        for status in ("waiting_for_user", "completed", "failed"):
            self.assertFalse(should_continue(self._plan(status, "pending")))


class TestParsePlan(unittest.TestCase):
    def test_malformed_documents_read_as_no_plan(self) -> None:
        self.assertIsNone(parse_plan(None))
        self.assertIsNone(parse_plan(["not", "a", "plan"]))
        self.assertIsNone(parse_plan({"goal": "", "steps": []}))
        self.assertIsNone(parse_plan({"goal": "g", "steps": [{"description": "no number"}]}))

    def test_valid_document(self) -> None:
        plan = parse_plan({"goal": "g", "steps": [{"step_number": 1, "description": "d"}]})
        self.assertEqual(plan.status, "executing")
        self.assertEqual(plan.steps[0].status, "pending")


class TestPlanTracker(unittest.TestCase):
    def setUp(self) -> None:
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        self.store = AgentStore(Path(tmp.name) / "agents.db")
        self.addCleanup(self.store.close)
        self.tracker = PlanTracker(self.store)
        self.sid = "session-1"

    def _create(self, n: int = 3) -> dict:
        return self.tracker.apply_action(
            self.sid, {"action": "create", "goal": "Do things", "steps": _steps(n)}
        )

    def test_create(self) -> None:
        result = self._create(3)
        self.assertEqual(result, {"action": "created", "plan_status": "executing", "step_count": 3})
        plan = self.tracker.get(self.sid)
        self.assertEqual(plan.goal, "Do things")
        self.assertEqual([s.status for s in plan.steps], ["pending"] * 3)
        self.assertEqual(plan.current_step_index, 0)
        self.assertTrue(plan.created_at)

    def test_create_replaces_existing_plan(self) -> None:
        self._create(3)
        self.tracker.apply_action(
            self.sid, {"action": "update_step", "step_number": 1, "step_status": "completed"}
        )
        self._create(2)
        plan = self.tracker.get(self.sid)
        self.assertEqual(len(plan.steps), 2)
        self.assertEqual(plan.steps[0].status, "pending")

    def test_create_validation(self) -> None:
        bad_bodies = [
            {"action": "create", "steps": _steps(1)},
            {"action": "create", "goal": "g"},
            {"action": "create", "goal": "g", "steps": []},
            {"action": "create", "goal": "g", "steps": _steps(11)},
            {"action": "create", "goal": "g", "steps": [{"step_number": 1}]},
            {"action": "create", "goal": "g", "steps": [{"step_number": "1", "description": "d"}]},
        ]
        for body in bad_bodies:
            with self.subTest(body=body):
                with self.assertRaises(PlanActionError) as ctx:
                    self.tracker.apply_action(self.sid, body)
                self.assertEqual(ctx.exception.status_code, 400)
        self.assertIsNone(self.tracker.get(self.sid))

    def test_create_accepts_ten_steps(self) -> None:
        self.assertEqual(self._create(10)["step_count"], 10)

    def test_invalid_action(self) -> None:
        with self.assertRaises(PlanActionError):
            self.tracker.apply_action(self.sid, {"action": "delete"})

    def test_update_step_moves_index(self) -> None:
        self._create(3)
        self.tracker.apply_action(
            self.sid, {"action": "update_step", "step_number": 1, "step_status": "in_progress"}
        )
        self.assertEqual(self.tracker.get(self.sid).current_step_index, 0)

        result = self.tracker.apply_action(
            self.sid,
            {
                "action": "update_step",
                "step_number": 1,
                "step_status": "completed",
                "step_result": "Found it",
            },
        )
        self.assertEqual(result["action"], "step_updated")
        plan = self.tracker.get(self.sid)
        self.assertEqual(plan.steps[0].result, "Found it")
        self.assertIsNotNone(plan.steps[0].completed_at)
        self.assertEqual(plan.current_step_index, 1)

        self.tracker.apply_action(
            self.sid, {"action": "update_step", "step_number": 2, "step_status": "skipped"}
        )
        self.assertEqual(self.tracker.get(self.sid).current_step_index, 2)

    def test_failed_step_holds_the_index(self) -> None:
        self._create(2)
        self.tracker.apply_action(
            self.sid, {"action": "update_step", "step_number": 1, "step_status": "failed"}
        )
        self.assertEqual(self.tracker.get(self.sid).current_step_index, 0)

    def test_update_step_errors(self) -> None:
        with self.assertRaises(PlanActionError) as ctx:
            self.tracker.apply_action(
                self.sid, {"action": "update_step", "step_number": 1, "step_status": "completed"}
            )
        self.assertEqual(ctx.exception.status_code, 404)

        self._create(2)
        with self.assertRaises(PlanActionError) as ctx:
            self.tracker.apply_action(
                self.sid, {"action": "update_step", "step_number": 9, "step_status": "completed"}
            )
        self.assertEqual(ctx.exception.status_code, 404)

        with self.assertRaises(PlanActionError) as ctx:
            self.tracker.apply_action(
                self.sid, {"action": "update_step", "step_number": 1, "step_status": "pending"}
            )
        self.assertEqual(ctx.exception.status_code, 400)

    def test_status_actions(self) -> None:
        self._create(2)
        result = self.tracker.apply_action(
            self.sid, {"action": "wait_for_user", "reason": "Need a city"}
        )
        self.assertEqual(
            result, {"action": "status_changed", "plan_status": "waiting_for_user", "reason": "Need a city"}
        )
        self.assertFalse(should_continue(self.tracker.get(self.sid)))

        self.tracker.apply_action(self.sid, {"action": "complete"})
        self.assertEqual(self.tracker.get(self.sid).status, "completed")

    def test_status_action_without_plan(self) -> None:
        with self.assertRaises(PlanActionError) as ctx:
            self.tracker.apply_action(self.sid, {"action": "fail", "reason": "x"})
        self.assertEqual(ctx.exception.status_code, 404)

    def test_auto_complete_in_progress_step(self) -> None:
        self._create(2)
        self.tracker.apply_action(
            self.sid, {"action": "update_step", "step_number": 1, "step_status": "in_progress"}
        )

        step = self.tracker.auto_complete_in_progress_step(self.sid, "web_search")

        self.assertEqual(step.step_number, 1)
        plan = self.tracker.get(self.sid)
        self.assertEqual(plan.steps[0].status, "completed")
        self.assertEqual(plan.steps[0].result, "Completed via web_search")
        self.assertEqual(plan.current_step_index, 1)
        self.assertEqual(plan.steps[1].status, "pending")

    def test_auto_complete_closes_only_the_first_in_progress_step(self) -> None:
        self._create(3)
        for number in (1, 2):
            self.tracker.apply_action(
                self.sid, {"action": "update_step", "step_number": number, "step_status": "in_progress"}
            )

        step = self.tracker.auto_complete_in_progress_step(self.sid, "web_search")

        self.assertEqual(step.step_number, 1)
        plan = self.tracker.get(self.sid)
        self.assertEqual([s.status for s in plan.steps], ["completed", "in_progress", "pending"])
        self.assertIsNone(plan.steps[1].completed_at)
        self.assertEqual(plan.current_step_index, 1)

    def test_auto_complete_keeps_existing_result(self) -> None:
        self._create(1)
        self.tracker.apply_action(
            self.sid,
            {
                "action": "update_step",
                "step_number": 1,
                "step_status": "in_progress",
                "step_result": "Partial notes",
            },
        )
        self.tracker.auto_complete_in_progress_step(self.sid, "read_file")
        self.assertEqual(self.tracker.get(self.sid).steps[0].result, "Partial notes")

    def test_auto_complete_is_a_noop_without_in_progress_step(self) -> None:
        self.assertIsNone(self.tracker.auto_complete_in_progress_step(self.sid, "web_search"))
        self._create(2)
        self.assertIsNone(self.tracker.auto_complete_in_progress_step(self.sid, "web_search"))
        self.assertEqual([s.status for s in self.tracker.get(self.sid).steps], ["pending", "pending"])

    def test_auto_complete_ignores_non_executing_plan(self) -> None:
        self._create(1)
        self.tracker.apply_action(
            self.sid, {"action": "update_step", "step_number": 1, "step_status": "in_progress"}
        )
        self.tracker.apply_action(self.sid, {"action": "wait_for_user"})
        self.assertIsNone(self.tracker.auto_complete_in_progress_step(self.sid, "web_search"))

    def test_corrupt_stored_plan_reads_as_none(self) -> None:
        self.store.put_session_memory(self.sid, EXECUTION_PLAN_KEY, {"steps": "nope"})
        self.assertIsNone(self.tracker.get(self.sid))


if __name__ == "__main__":
    unittest.main()
