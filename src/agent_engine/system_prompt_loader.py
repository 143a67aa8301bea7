"""Utilities for loading the planning guide appended to planning agents' prompts."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from .config import PLANNING_PROMPT_PATH

_cached_guide: Optional[str] = None


def _read_file(path: Path) -> str:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError:
        return ""
    return text.strip()


def get_planning_guide() -> str:
    """Return the planning guide text, cached after first read.

    If the prompt file does not exist or cannot be read, returns an empty string.
    """
    global _cached_guide
    if _cached_guide is None:
        _cached_guide = _read_file(PLANNING_PROMPT_PATH)
    return _cached_guide
