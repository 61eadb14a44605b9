"""Built-in agent tools: file analyzer, system info, calculator, history."""

from __future__ import annotations

import asyncio
import logging
import os
import platform
import sys
import time
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import Field

from conduit.tools.base import ToolParams, ToolResult
from conduit.tools.calculator import CalculationError, evaluate
from conduit.tools.registry import registry

if TYPE_CHECKING:
    from conduit.context import RequestContext
    from conduit.storage.conversations import ConversationStore

logger = logging.getLogger(__name__)

_STARTED_AT = time.monotonic()

# Overridable via configure_file_analyzer() at startup.
_preview_chars = 200
_max_bytes = 5 * 1024 * 1024

# Set by init_history_tool() during service startup.
_conversations: ConversationStore | None = None
_history_default_limit = 5


def configure_file_analyzer(*, preview_chars: int, max_bytes: int) -> None:
    global _preview_chars, _max_bytes  # noqa: PLW0603
    _preview_chars = preview_chars
    _max_bytes = max_bytes


def init_history_tool(store: ConversationStore | None, *, default_limit: int = 5) -> None:
    """Wire the conversation store into the history tool.

    Called once during service startup, after the store is constructed.
    """
    global _conversations, _history_default_limit  # noqa: PLW0603
    _conversations = store
    _history_default_limit = default_limit


# ---------------------------------------------------------------------------
# file_analyzer
# ---------------------------------------------------------------------------


class FileAnalyzerParams(ToolParams):
    path: str = Field(description="Path of the file to analyze")


def _analyze_file(path: Path) -> dict[str, Any]:
    size = path.stat().st_size
    if size > _max_bytes:
        msg = f"File is {size} bytes; the limit is {_max_bytes}"
        raise ValueError(msg)
    content = path.read_text(encoding="utf-8", errors="replace")
    return {
        "path": str(path),
        "size": size,
        "lines": len(content.split("\n")),
        "type": path.suffix,
        "preview": content[:_preview_chars],
    }


@registry.tool(
    name="file_analyzer",
    description="Analyze a file: size in bytes, line count, extension and a short preview.",
    category="inspection",
    params_model=FileAnalyzerParams,
)
async def file_analyzer(path: str) -> ToolResult:
    try:
        data = await asyncio.to_thread(_analyze_file, Path(path).expanduser())
    except (OSError, ValueError) as exc:
        return ToolResult(error=str(exc))
    return ToolResult(data=data)


# ---------------------------------------------------------------------------
# system_info
# ---------------------------------------------------------------------------


def _peak_rss_bytes() -> int | None:
    """Peak resident set size of this process, where the platform reports it."""
    if sys.platform == "win32":
        return None
    import resource

    peak = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
    # Linux reports KiB, macOS reports bytes
    return peak if sys.platform == "darwin" else peak * 1024


@registry.tool(
    name="system_info",
    description="Get information about the host running the agent: platform, "
    "architecture, Python version, memory usage and uptime.",
    category="system",
)
async def system_info() -> ToolResult:
    return ToolResult(
        data={
            "platform": sys.platform,
            "arch": platform.machine(),
            "python_version": platform.python_version(),
            "pid": os.getpid(),
            "memory": {"peak_rss_bytes": _peak_rss_bytes()},
            "uptime_seconds": round(time.monotonic() - _STARTED_AT, 3),
        }
    )


# ---------------------------------------------------------------------------
# calculator
# ---------------------------------------------------------------------------


class CalculatorParams(ToolParams):
    expression: str = Field(
        description="Arithmetic expression using numbers, + - * / // % ** and parentheses"
    )


@registry.tool(
    name="calculator",
    description="Evaluate an arithmetic expression and return the numeric result.",
    category="math",
    params_model=CalculatorParams,
)
async def calculator(expression: str) -> ToolResult:
    try:
        result = evaluate(expression)
    except CalculationError as exc:
        return ToolResult(error=f"Calculation failed: {exc}")
    return ToolResult(data={"expression": expression, "result": result})


# ---------------------------------------------------------------------------
# conversation_history
# ---------------------------------------------------------------------------


class ConversationHistoryParams(ToolParams):
    limit: int | None = Field(
        default=None,
        ge=1,
        le=100,
        description="How many recent exchanges to return (default 5)",
    )


@registry.tool(
    name="conversation_history",
    description="Retrieve the current user's most recent conversations with the agent.",
    category="memory",
    params_model=ConversationHistoryParams,
)
async def conversation_history(
    limit: int | None = None, context: RequestContext | None = None
) -> ToolResult:
    if _conversations is None:
        return ToolResult(error="Conversation history is not available")
    if context is None:
        return ToolResult(error="No user context for this request")

    try:
        entries, total = await _conversations.history(
            context.user_id, limit or _history_default_limit
        )
    except Exception as exc:
        logger.exception("History lookup failed for %s", context.user_id)
        return ToolResult(error=f"History lookup failed: {exc}")

    return ToolResult(
        data={
            "conversations": [e.model_dump() for e in entries],
            "total": total,
        }
    )
