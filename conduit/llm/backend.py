"""InferenceBackend protocol and the hook types of the tool loop."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from conduit.context import RequestContext
    from conduit.tools.registry import ToolRegistry


class BackendError(Exception):
    """The inference backend failed or did not answer in time."""


@dataclass
class ToolCall:
    """A tool invocation the model asked for, before it runs."""

    name: str
    arguments: dict[str, Any]
    turn: int


@dataclass
class ToolOutcome:
    """A finished tool invocation and the payload handed back to the model."""

    name: str
    result: dict[str, Any]
    success: bool
    turn: int


@dataclass
class ActHooks:
    """Callbacks the backend awaits while it drives the tool loop.

    Hooks are awaited in order, so anything they publish is ordered the
    same way the tool invocations happened.
    """

    on_message: Callable[[str], Awaitable[None]] | None = None
    on_tool_call: Callable[[ToolCall], Awaitable[None]] | None = None
    on_tool_result: Callable[[ToolOutcome], Awaitable[None]] | None = None


@dataclass
class SamplingParams:
    temperature: float = 0.7
    max_tokens: int = 1000
    system: str | None = None


@runtime_checkable
class InferenceBackend(Protocol):
    """What the orchestrator needs from a model server."""

    @property
    def model_name(self) -> str: ...

    async def verify(self) -> None:
        """Check the backend is reachable. Raises BackendError otherwise."""
        ...

    async def generate(self, prompt: str, params: SamplingParams) -> str:
        """Single-shot completion, no tools."""
        ...

    async def act(
        self,
        prompt: str,
        tools: ToolRegistry,
        params: SamplingParams,
        hooks: ActHooks,
        context: RequestContext | None = None,
    ) -> str:
        """Run the tool-calling loop until the model gives a final answer."""
        ...

    async def close(self) -> None: ...
