"""Agent execution loop: model turns, tool calls, plan tracking and autonomy policy."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

from . import llm
from .config import (
    DEFAULT_MAX_AUTONOMOUS_CONTINUATIONS,
    DEFAULT_MAX_TOKENS,
    DEFAULT_MEMORY_LIMIT,
    GOAL_COMPLETE_SENTINEL,
    PLANNING_TOOL_NAME,
)
from .context import append_user, build_messages, build_system_prompt, history_to_messages
from .db import AgentStore
from .errors import (
    AgentInactiveError,
    AgentNotFoundError,
    SessionNotActiveError,
    SessionNotFoundError,
)
from .models import (
    Agent,
    InvocationOptions,
    LLMResponse,
    MemoryItem,
    Message,
    SendMessageResult,
    ToolDescriptor,
)
from .plan_tracker import PlanTracker, should_continue
from .providers import LLMProvider
from .tools import ToolDispatcher

logger = logging.getLogger(__name__)

WORK_REMINDER = (
    "You only updated the plan in your last turn and did not perform any work. "
    "Do not update the plan again yet: call the tools needed to carry out the "
    "current step now."
)


@dataclass
class LoopOptions:
    """Options for the agent loop."""

    max_autonomous_continuations: int = DEFAULT_MAX_AUTONOMOUS_CONTINUATIONS
    enforce_work_after_plan_update: bool = True
    memory_limit: int = DEFAULT_MEMORY_LIMIT
    max_tokens: int | None = DEFAULT_MAX_TOKENS
    llm_provider: LLMProvider | None = None


@dataclass
class _Turn:
    """Mutable state for one send_message call."""

    session_id: str
    agent: Agent
    tools: list[ToolDescriptor]
    step: int
    history: list[Message]
    auth_token: str = ""
    tokens_used: int = 0
    assistant_text: str = ""
    memories: list[MemoryItem] = field(default_factory=list)

    @property
    def has_planning_tool(self) -> bool:
        return any(t.name == PLANNING_TOOL_NAME for t in self.tools)


class AgentLoop:
    """Drives one session forward for each incoming user message.

    Model and tool calls are awaited one at a time; tool calls within a turn
    run in the order the model returned them. Every step is persisted before
    the next one is attempted.
    """

    def __init__(
        self,
        store: AgentStore,
        dispatcher: ToolDispatcher | None = None,
        options: LoopOptions | None = None,
    ) -> None:
        self.store = store
        self.dispatcher = dispatcher or ToolDispatcher()
        self.options = options or LoopOptions()
        self.plans = PlanTracker(store)

    async def send_message(
        self, session_id: str, user_message: str, auth_token: str = ""
    ) -> SendMessageResult:
        """Run one user turn, including any autonomous continuations.

        Raises SessionNotFoundError / SessionNotActiveError for bad sessions,
        AgentNotFoundError (after marking the session failed) or
        AgentInactiveError for bad agents, and lets ProviderError,
        ConfigurationError and persistence errors propagate with the session
        left active.
        """
        turn = await self._start_turn(session_id, auth_token)
        if not await self._persist(turn, "user", user_message):
            return await self._result(turn)
        turn.history = append_user(turn.history, user_message)

        opts = self.options
        max_steps = turn.agent.max_steps
        iterations = 0
        autonomous = 0
        force_turn = False
        # At most one forced turn may run past the budget.
        over_budget = False
        outcome: str | None = None

        while iterations < max_steps or (force_turn and not over_budget):
            over_budget = iterations >= max_steps
            iterations += 1
            force_turn = False

            status = await asyncio.to_thread(self.store.get_session_status, session_id)
            if status != "active":
                logger.info("Session %s is %s; stopping loop", session_id, status)
                outcome = "stopped"
                break

            response = await self._call_model(turn)

            if response.content.startswith(GOAL_COMPLETE_SENTINEL):
                if not await self._persist(
                    turn, "assistant", response.content, tokens_used=response.tokens_used
                ):
                    outcome = "stopped"
                    break
                turn.assistant_text = response.content
                await asyncio.to_thread(self.store.end_session, session_id, "completed", True)
                logger.info("Session %s goal met at step %d", session_id, turn.step)
                outcome = "goal_met"
                break

            if response.tool_calls:
                if not await self._run_tool_calls(turn, response):
                    outcome = "stopped"
                    break
                autonomous = 0
                if opts.enforce_work_after_plan_update and all(
                    tc.name == PLANNING_TOOL_NAME for tc in response.tool_calls
                ):
                    # Context only; the reminder is not a user step.
                    turn.history = append_user(turn.history, WORK_REMINDER)
                    force_turn = True
                    logger.info("Session %s: plan-only turn, forcing a work turn", session_id)
                continue

            if not await self._persist(
                turn, "assistant", response.content, tokens_used=response.tokens_used
            ):
                outcome = "stopped"
                break
            turn.history.append(Message(role="assistant", content=response.content))
            turn.assistant_text = response.content

            plan = await asyncio.to_thread(self.plans.get, session_id)
            if should_continue(plan) and autonomous < opts.max_autonomous_continuations:
                autonomous += 1
                logger.info(
                    "Session %s continuing on plan (%d/%d)",
                    session_id,
                    autonomous,
                    opts.max_autonomous_continuations,
                )
                continue

            outcome = "awaiting_user"
            break

        if outcome in (None, "awaiting_user") and iterations >= max_steps:
            await asyncio.to_thread(self.store.end_session, session_id, "completed", False)
            logger.info("Session %s exhausted its step budget (%d)", session_id, max_steps)

        return await self._result(turn)

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    async def _start_turn(self, session_id: str, auth_token: str) -> _Turn:
        session = await asyncio.to_thread(self.store.get_session, session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        if session.status != "active":
            raise SessionNotActiveError(session_id, session.status)

        agent = await asyncio.to_thread(self.store.get_agent, session.agent_id)
        if agent is None:
            await asyncio.to_thread(self.store.end_session, session_id, "failed")
            raise AgentNotFoundError(session.agent_id)
        if not agent.is_active:
            raise AgentInactiveError(agent.agent_id)

        memories = await asyncio.to_thread(
            self.store.get_relevant_memories, agent.agent_id, self.options.memory_limit
        )
        tools = await asyncio.to_thread(self.store.get_agent_tools, agent.agent_id)
        stored = await asyncio.to_thread(self.store.list_messages, session_id)

        return _Turn(
            session_id=session_id,
            agent=agent,
            tools=tools,
            step=session.current_step,
            history=history_to_messages(stored),
            auth_token=auth_token,
            memories=memories,
        )

    async def _call_model(self, turn: _Turn) -> LLMResponse:
        plan = None
        if turn.has_planning_tool:
            plan = await asyncio.to_thread(self.plans.get, turn.session_id)
        system_prompt = build_system_prompt(
            turn.agent, turn.memories, plan, turn.has_planning_tool
        )
        options = InvocationOptions(
            provider=turn.agent.model_provider,
            model=turn.agent.model_name,
            temperature=turn.agent.temperature,
            max_tokens=self.options.max_tokens,
        )
        response = await llm.invoke(
            build_messages(system_prompt, turn.history),
            turn.tools,
            options,
            provider=self.options.llm_provider,
        )
        turn.tokens_used += response.tokens_used
        response.content = response.content or ""
        return response

    async def _run_tool_calls(self, turn: _Turn, response: LLMResponse) -> bool:
        """Persist the assistant's calls, then execute and persist each result in order."""
        if not await self._persist(
            turn,
            "assistant",
            response.content,
            tool_calls=response.tool_calls,
            tokens_used=response.tokens_used,
        ):
            return False
        turn.history.append(
            Message(role="assistant", content=response.content, tool_calls=response.tool_calls)
        )

        for tc in response.tool_calls:
            result = await self.dispatcher.execute(
                tc, turn.tools, auth_token=turn.auth_token, session_id=turn.session_id
            )
            if not await self._persist(
                turn,
                "tool",
                result.result,
                tool_name=tc.name,
                tool_input=tc.parsed_arguments(),
                tool_output=result.to_output(),
                tool_call_id=tc.id,
            ):
                return False
            turn.history.append(
                Message(role="tool", content=result.result, tool_call_id=tc.id, name=tc.name)
            )
            if not result.success:
                logger.warning("Tool %s failed in session %s: %s", tc.name, turn.session_id, result.result)
            elif tc.name != PLANNING_TOOL_NAME:
                await asyncio.to_thread(
                    self.plans.auto_complete_in_progress_step, turn.session_id, tc.name
                )
        return True

    async def _persist(self, turn: _Turn, role: str, content: str, **fields: Any) -> bool:
        """Append the next step. Returns False if the session was cancelled underneath us."""
        try:
            await asyncio.to_thread(
                self.store.append_message,
                turn.session_id,
                turn.step + 1,
                role,
                content,
                **fields,
            )
        except SessionNotActiveError as exc:
            if exc.status == "cancelled":
                logger.info("Session %s cancelled; dropping %s step", turn.session_id, role)
                return False
            raise
        turn.step += 1
        return True

    async def _result(self, turn: _Turn) -> SendMessageResult:
        session = await asyncio.to_thread(self.store.get_session, turn.session_id)
        if session is None:
            raise SessionNotFoundError(turn.session_id)
        plan = await asyncio.to_thread(self.plans.get, turn.session_id)
        return SendMessageResult(
            session_id=session.session_id,
            assistant_text=turn.assistant_text,
            tokens_used=turn.tokens_used,
            session_status=session.status,
            goal_met=session.goal_met,
            should_continue=session.status == "active" and should_continue(plan),
            current_step=session.current_step,
        )


async def run_loop(
    session_id: str,
    user_message: str,
    store: AgentStore,
    dispatcher: ToolDispatcher | None = None,
    options: LoopOptions | None = None,
    auth_token: str = "",
) -> SendMessageResult:
    """Run one user turn for a session; see AgentLoop.send_message."""
    loop = AgentLoop(store, dispatcher=dispatcher, options=options)
    return await loop.send_message(session_id, user_message, auth_token=auth_token)
