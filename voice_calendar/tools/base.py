"""Shared shapes for tool handlers.

Every handler returns a plain JSON-serialisable dict with at least
``success`` and ``message``; failures may add an ``error`` code.  The
dict is what gets serialised back to the assistant as the tool output.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class ToolContext:
    """Per-turn facts every handler may need besides its own arguments."""

    user_id: str
    calendar_token: str | None = None
    timezone: str = "UTC"
    raw_input: str = ""


def tool_success(message: str, **payload: Any) -> dict[str, Any]:
    return {"success": True, "message": message, **payload}


def tool_failure(message: str, error: str | None = None, **payload: Any) -> dict[str, Any]:
    result: dict[str, Any] = {"success": False, "message": message, **payload}
    if error:
        result["error"] = error
    return result


def plural(count: int, noun: str) -> str:
    return f"{count} {noun}" if count == 1 else f"{count} {noun}s"
