"""Engine configuration: paths and defaults."""

from __future__ import annotations

import os
from pathlib import Path

from main_config import (
    AGENT_DB_PATH as _AGENT_DB_PATH,
    DB_DIR as _DB_DIR,
    PLANNING_PROMPT_PATH as _PLANNING_PROMPT_PATH,
)

# Path objects for use in this package (main_config uses os.path strings)
DB_DIR = Path(_DB_DIR)
AGENT_DB_PATH = Path(_AGENT_DB_PATH)
PLANNING_PROMPT_PATH = Path(_PLANNING_PROMPT_PATH)

DEFAULT_MAX_STEPS = 10
DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 4096
DEFAULT_MEMORY_LIMIT = 10
DEFAULT_MAX_AUTONOMOUS_CONTINUATIONS = 3

GOAL_COMPLETE_SENTINEL = "GOAL_COMPLETE"
PLANNING_TOOL_NAME = "update_plan"
EXECUTION_PLAN_KEY = "execution_plan"
MAX_PLAN_STEPS = 10

# Builtin tools are served by HTTP endpoints under this base URL.
TOOL_BASE_URL = os.getenv("URL", "http://localhost:8888")
TOOL_HTTP_TIMEOUT = float(os.getenv("TOOL_HTTP_TIMEOUT", "60"))


def ensure_dirs() -> None:
    """Create the db directory if it does not exist."""
    DB_DIR.mkdir(parents=True, exist_ok=True)
