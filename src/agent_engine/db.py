"""SQLite persistence for agents, tools, memories, sessions, messages and session memory."""

from __future__ import annotations

import json
import sqlite3
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .config import AGENT_DB_PATH, DEFAULT_MAX_STEPS, DEFAULT_TEMPERATURE, ensure_dirs
from .errors import SessionNotActiveError, SessionNotFoundError
from .models import (
    TERMINAL_SESSION_STATUSES,
    Agent,
    MemoryItem,
    Session,
    SessionMessage,
    ToolCall,
    ToolDescriptor,
)


def _iso_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _new_id() -> str:
    return str(uuid.uuid4())


def _dumps(value: Any) -> str | None:
    if value is None:
        return None
    return json.dumps(value, default=str)


def _loads(raw: str | None) -> Any:
    if raw is None:
        return None
    return json.loads(raw)


_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS agents (
        agent_id       TEXT PRIMARY KEY,
        tenant_id      TEXT NOT NULL,
        user_id        TEXT NOT NULL,
        name           TEXT NOT NULL,
        description    TEXT,
        goal           TEXT NOT NULL,
        system_prompt  TEXT NOT NULL,
        model_provider TEXT NOT NULL,
        model_name     TEXT NOT NULL,
        max_steps      INTEGER NOT NULL DEFAULT 10,
        temperature    REAL NOT NULL DEFAULT 0.7,
        is_active      INTEGER NOT NULL DEFAULT 1,
        created_at     TEXT NOT NULL,
        updated_at     TEXT NOT NULL,
        UNIQUE (tenant_id, name)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS agent_tools (
        tool_id      TEXT PRIMARY KEY,
        tenant_id    TEXT NOT NULL,
        name         TEXT NOT NULL,
        description  TEXT NOT NULL,
        tool_type    TEXT NOT NULL,
        input_schema TEXT NOT NULL,
        is_active    INTEGER NOT NULL DEFAULT 1,
        created_at   TEXT NOT NULL,
        UNIQUE (tenant_id, name)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS agent_tool_assignments (
        agent_id TEXT NOT NULL,
        tool_id  TEXT NOT NULL,
        PRIMARY KEY (agent_id, tool_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS agent_long_term_memory (
        memory_id        TEXT PRIMARY KEY,
        agent_id         TEXT NOT NULL,
        tenant_id        TEXT NOT NULL,
        memory_type      TEXT NOT NULL DEFAULT 'fact',
        content          TEXT NOT NULL,
        importance       INTEGER NOT NULL DEFAULT 5,
        last_accessed_at TEXT,
        is_active        INTEGER NOT NULL DEFAULT 1,
        created_at       TEXT NOT NULL
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_long_term_memory_importance
    ON agent_long_term_memory (agent_id, importance DESC)
    """,
    """
    CREATE TABLE IF NOT EXISTS agent_sessions (
        session_id   TEXT PRIMARY KEY,
        agent_id     TEXT NOT NULL,
        user_id      TEXT NOT NULL,
        tenant_id    TEXT NOT NULL,
        title        TEXT,
        status       TEXT NOT NULL DEFAULT 'active',
        current_step INTEGER NOT NULL DEFAULT 0,
        goal_met     INTEGER NOT NULL DEFAULT 0,
        started_at   TEXT NOT NULL,
        ended_at     TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS agent_session_messages (
        message_id   TEXT PRIMARY KEY,
        session_id   TEXT NOT NULL,
        step_number  INTEGER NOT NULL,
        role         TEXT NOT NULL,
        content      TEXT NOT NULL,
        tool_name    TEXT,
        tool_input   TEXT,
        tool_output  TEXT,
        tool_calls   TEXT,
        tool_call_id TEXT,
        tokens_used  INTEGER,
        created_at   TEXT NOT NULL,
        UNIQUE (session_id, step_number)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS agent_session_memory (
        session_id   TEXT NOT NULL,
        memory_key   TEXT NOT NULL,
        memory_value TEXT NOT NULL,
        created_at   TEXT NOT NULL,
        updated_at   TEXT NOT NULL,
        PRIMARY KEY (session_id, memory_key)
    )
    """,
)


class AgentStore:
    """SQLite-backed store for everything the agent loop reads and writes.

    Messages are append-only. ``append_message`` advances the session's
    ``current_step`` in the same transaction and refuses terminal sessions, so
    a session that has ended can never grow.
    """

    def __init__(self, db_path: Path | None = None) -> None:
        if db_path is None:
            ensure_dirs()
            db_path = AGENT_DB_PATH
        db_path.parent.mkdir(parents=True, exist_ok=True)
        self.db_path = str(db_path)

        self._lock = threading.Lock()
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL;")
        self._conn.execute("PRAGMA synchronous=NORMAL;")
        self._create_schema()

    def _create_schema(self) -> None:
        with self._lock:
            cur = self._conn.cursor()
            for statement in _SCHEMA:
                cur.execute(statement)
            self._conn.commit()

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    # ------------------------------------------------------------------
    # Agents
    # ------------------------------------------------------------------

    def create_agent(
        self,
        tenant_id: str,
        user_id: str,
        name: str,
        goal: str,
        system_prompt: str,
        model_provider: str,
        model_name: str,
        description: str | None = None,
        max_steps: int = DEFAULT_MAX_STEPS,
        temperature: float = DEFAULT_TEMPERATURE,
        is_active: bool = True,
    ) -> Agent:
        now = _iso_now()
        agent = Agent(
            agent_id=_new_id(),
            tenant_id=tenant_id,
            user_id=user_id,
            name=name,
            description=description,
            goal=goal,
            system_prompt=system_prompt,
            model_provider=model_provider,
            model_name=model_name,
            max_steps=max_steps,
            temperature=temperature,
            is_active=is_active,
            created_at=now,
            updated_at=now,
        )
        with self._lock:
            self._conn.execute(
                """
                INSERT INTO agents (
                    agent_id, tenant_id, user_id, name, description, goal, system_prompt,
                    model_provider, model_name, max_steps, temperature, is_active,
                    created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    agent.agent_id,
                    agent.tenant_id,
                    agent.user_id,
                    agent.name,
                    agent.description,
                    agent.goal,
                    agent.system_prompt,
                    agent.model_provider,
                    agent.model_name,
                    agent.max_steps,
                    agent.temperature,
                    int(agent.is_active),
                    now,
                    now,
                ),
            )
            self._conn.commit()
        return agent

    def get_agent(self, agent_id: str) -> Agent | None:
        with self._lock:
            row = self._conn.execute(
                "SELECT * FROM agents WHERE agent_id = ?", (agent_id,)
            ).fetchone()
        if not row:
            return None
        data = dict(row)
        data["is_active"] = bool(data["is_active"])
        return Agent(**data)

    # ------------------------------------------------------------------
    # Tools
    # ------------------------------------------------------------------

    def create_tool(
        self,
        tenant_id: str,
        name: str,
        description: str,
        tool_type: str,
        input_schema: dict[str, Any] | None = None,
        is_active: bool = True,
    ) -> ToolDescriptor:
        tool = ToolDescriptor(
            tool_id=_new_id(),
            name=name,
            description=description,
            tool_type=tool_type,
            input_schema=input_schema or {"type": "object", "properties": {}},
            is_active=is_active,
        )
        with self._lock:
            self._conn.execute(
                """
                INSERT INTO agent_tools (
                    tool_id, tenant_id, name, description, tool_type, input_schema, is_active, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    tool.tool_id,
                    tenant_id,
                    tool.name,
                    tool.description,
                    tool.tool_type,
                    json.dumps(tool.input_schema),
                    int(tool.is_active),
                    _iso_now(),
                ),
            )
            self._conn.commit()
        return tool

    def assign_tool(self, agent_id: str, tool_id: str) -> None:
        with self._lock:
            self._conn.execute(
                "INSERT OR IGNORE INTO agent_tool_assignments (agent_id, tool_id) VALUES (?, ?)",
                (agent_id, tool_id),
            )
            self._conn.commit()

    def get_agent_tools(self, agent_id: str) -> list[ToolDescriptor]:
        """Active tools assigned to an agent."""
        with self._lock:
            rows = self._conn.execute(
                """
                SELECT t.tool_id, t.name, t.description, t.tool_type, t.input_schema, t.is_active
                FROM agent_tools t
                JOIN agent_tool_assignments a ON t.tool_id = a.tool_id
                WHERE a.agent_id = ? AND t.is_active = 1
                ORDER BY t.name
                """,
                (agent_id,),
            ).fetchall()
        return [
            ToolDescriptor(
                tool_id=r["tool_id"],
                name=r["name"],
                description=r["description"],
                tool_type=r["tool_type"],
                input_schema=json.loads(r["input_schema"]),
                is_active=bool(r["is_active"]),
            )
            for r in rows
        ]

    # ------------------------------------------------------------------
    # Long-term memory
    # ------------------------------------------------------------------

    def add_memory(
        self,
        agent_id: str,
        content: str,
        memory_type: str = "fact",
        importance: int = 5,
        tenant_id: str = "",
        last_accessed_at: str | None = None,
        is_active: bool = True,
    ) -> MemoryItem:
        item = MemoryItem(
            memory_id=_new_id(),
            agent_id=agent_id,
            tenant_id=tenant_id,
            memory_type=memory_type,
            content=content,
            importance=importance,
            last_accessed_at=last_accessed_at,
            is_active=is_active,
            created_at=_iso_now(),
        )
        with self._lock:
            self._conn.execute(
                """
                INSERT INTO agent_long_term_memory (
                    memory_id, agent_id, tenant_id, memory_type, content, importance,
                    last_accessed_at, is_active, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    item.memory_id,
                    item.agent_id,
                    item.tenant_id,
                    item.memory_type,
                    item.content,
                    item.importance,
                    item.last_accessed_at,
                    int(item.is_active),
                    item.created_at,
                ),
            )
            self._conn.commit()
        return item

    def get_relevant_memories(self, agent_id: str, limit: int = 10) -> list[MemoryItem]:
        """Active memories ranked by importance, then most recently accessed (never-accessed last)."""
        with self._lock:
            rows = self._conn.execute(
                """
                SELECT * FROM agent_long_term_memory
                WHERE agent_id = ? AND is_active = 1
                ORDER BY importance DESC,
                         last_accessed_at IS NULL,
                         last_accessed_at DESC
                LIMIT ?
                """,
                (agent_id, limit),
            ).fetchall()
        out: list[MemoryItem] = []
        for r in rows:
            data = dict(r)
            data["is_active"] = bool(data["is_active"])
            out.append(MemoryItem(**data))
        return out

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def create_session(
        self,
        agent_id: str,
        user_id: str,
        tenant_id: str,
        title: str | None = None,
    ) -> Session:
        session = Session(
            session_id=_new_id(),
            agent_id=agent_id,
            user_id=user_id,
            tenant_id=tenant_id,
            title=title,
            started_at=_iso_now(),
        )
        with self._lock:
            self._conn.execute(
                """
                INSERT INTO agent_sessions (
                    session_id, agent_id, user_id, tenant_id, title, status, current_step,
                    goal_met, started_at
                ) VALUES (?, ?, ?, ?, ?, 'active', 0, 0, ?)
                """,
                (
                    session.session_id,
                    agent_id,
                    user_id,
                    tenant_id,
                    title,
                    session.started_at,
                ),
            )
            self._conn.commit()
        return session

    def get_session(self, session_id: str) -> Session | None:
        with self._lock:
            row = self._conn.execute(
                "SELECT * FROM agent_sessions WHERE session_id = ?", (session_id,)
            ).fetchone()
        if not row:
            return None
        data = dict(row)
        data["goal_met"] = bool(data["goal_met"])
        return Session(**data)

    def get_session_status(self, session_id: str) -> str | None:
        with self._lock:
            row = self._conn.execute(
                "SELECT status FROM agent_sessions WHERE session_id = ?", (session_id,)
            ).fetchone()
        return row["status"] if row else None

    def end_session(self, session_id: str, status: str, goal_met: bool = False) -> bool:
        """Move an active session to a terminal status.

        Returns False when the session was already terminal (or missing);
        terminal sessions never change again.
        """
        if status not in TERMINAL_SESSION_STATUSES:
            raise ValueError(f"Not a terminal session status: {status}")
        with self._lock:
            cur = self._conn.execute(
                """
                UPDATE agent_sessions
                SET status = ?, goal_met = ?, ended_at = ?
                WHERE session_id = ? AND status = 'active'
                """,
                (status, int(goal_met), _iso_now(), session_id),
            )
            self._conn.commit()
            return cur.rowcount > 0

    def cancel_session(self, session_id: str) -> bool:
        return self.end_session(session_id, "cancelled")

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    def append_message(
        self,
        session_id: str,
        step_number: int,
        role: str,
        content: str,
        *,
        tool_name: str | None = None,
        tool_input: dict[str, Any] | None = None,
        tool_output: dict[str, Any] | None = None,
        tool_calls: list[ToolCall] | None = None,
        tool_call_id: str | None = None,
        tokens_used: int | None = None,
    ) -> SessionMessage:
        """Append one step and advance the session's step counter atomically."""
        message = SessionMessage(
            message_id=_new_id(),
            session_id=session_id,
            step_number=step_number,
            role=role,
            content=content,
            tool_name=tool_name,
            tool_input=tool_input,
            tool_output=tool_output,
            tool_calls=tool_calls,
            tool_call_id=tool_call_id,
            tokens_used=tokens_used,
            created_at=_iso_now(),
        )
        calls_json = _dumps([tc.model_dump() for tc in tool_calls]) if tool_calls else None
        with self._lock:
            row = self._conn.execute(
                "SELECT status, current_step FROM agent_sessions WHERE session_id = ?",
                (session_id,),
            ).fetchone()
            if row is None:
                raise SessionNotFoundError(session_id)
            if row["status"] != "active":
                raise SessionNotActiveError(session_id, row["status"])
            if step_number <= row["current_step"]:
                raise ValueError(
                    f"Step {step_number} does not advance session {session_id} "
                    f"(current_step={row['current_step']})"
                )
            with self._conn:
                self._conn.execute(
                    """
                    INSERT INTO agent_session_messages (
                        message_id, session_id, step_number, role, content, tool_name,
                        tool_input, tool_output, tool_calls, tool_call_id, tokens_used, created_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        message.message_id,
                        session_id,
                        step_number,
                        role,
                        content,
                        tool_name,
                        _dumps(tool_input),
                        _dumps(tool_output),
                        calls_json,
                        tool_call_id,
                        tokens_used,
                        message.created_at,
                    ),
                )
                self._conn.execute(
                    "UPDATE agent_sessions SET current_step = ? WHERE session_id = ?",
                    (step_number, session_id),
                )
        return message

    def list_messages(self, session_id: str) -> list[SessionMessage]:
        with self._lock:
            rows = self._conn.execute(
                """
                SELECT * FROM agent_session_messages
                WHERE session_id = ?
                ORDER BY step_number, created_at
                """,
                (session_id,),
            ).fetchall()
        out: list[SessionMessage] = []
        for r in rows:
            raw_calls = _loads(r["tool_calls"])
            out.append(
                SessionMessage(
                    message_id=r["message_id"],
                    session_id=r["session_id"],
                    step_number=r["step_number"],
                    role=r["role"],
                    content=r["content"],
                    tool_name=r["tool_name"],
                    tool_input=_loads(r["tool_input"]),
                    tool_output=_loads(r["tool_output"]),
                    tool_calls=[ToolCall(**tc) for tc in raw_calls] if raw_calls else None,
                    tool_call_id=r["tool_call_id"],
                    tokens_used=r["tokens_used"],
                    created_at=r["created_at"],
                )
            )
        return out

    # ------------------------------------------------------------------
    # Session memory (keyed JSON documents, e.g. the execution plan)
    # ------------------------------------------------------------------

    def get_session_memory(self, session_id: str, key: str) -> Any:
        """Return the decoded value for a key, or None. Undecodable values read as None."""
        with self._lock:
            row = self._conn.execute(
                "SELECT memory_value FROM agent_session_memory WHERE session_id = ? AND memory_key = ?",
                (session_id, key),
            ).fetchone()
        if not row:
            return None
        try:
            return json.loads(row["memory_value"])
        except ValueError:
            return None

    def put_session_memory(self, session_id: str, key: str, value: Any) -> None:
        now = _iso_now()
        with self._lock:
            self._conn.execute(
                """
                INSERT INTO agent_session_memory (session_id, memory_key, memory_value, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(session_id, memory_key) DO UPDATE SET
                    memory_value = excluded.memory_value,
                    updated_at = excluded.updated_at
                """,
                (session_id, key, json.dumps(value, default=str), now, now),
            )
            self._conn.commit()
