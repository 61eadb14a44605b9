"""Agentic orchestrator: routes a request to direct generation or the tool loop.

Per request the flow is::

    Received -> ModeSelected -> DirectGeneration | ToolLoop(round=1..k) -> result

Any fault on the way raises; the service turns it into an error envelope.
Round counting is purely observational: the backend bounds the loop, the
orchestrator only counts what the hooks report.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from conduit.context import RequestContext
from conduit.llm.backend import ActHooks, BackendError, SamplingParams
from conduit.models import AgentMode, RoundEvent

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from conduit.llm.backend import InferenceBackend, ToolCall, ToolOutcome
    from conduit.models import Request
    from conduit.storage.models import SessionRecord
    from conduit.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)

EMPTY_RESPONSE_TEXT = "No response generated"


@dataclass
class AgentResult:
    """Raw outcome of one request, before envelope assembly."""

    text: str
    mode: AgentMode
    rounds: int = 0
    tools_used: list[str] = field(default_factory=list)


@dataclass
class _RoundTracker:
    """Accumulates round state from the backend hooks for one request."""

    request_id: str
    publish: Callable[[str, RoundEvent], Awaitable[None]] | None
    rounds: int = 0
    completed: int = 0
    tools_used: list[str] = field(default_factory=list)

    async def on_message(self, text: str) -> None:
        logger.info("Agent message for %s: %.120s", self.request_id, text)

    async def on_tool_call(self, call: ToolCall) -> None:
        self.rounds += 1
        if call.name not in self.tools_used:
            self.tools_used.append(call.name)
        logger.info("Request %s round %d: calling %s", self.request_id, self.rounds, call.name)
        await self._emit(RoundEvent(tool_name=call.name, round=self.rounds, status="executing"))

    async def on_tool_result(self, outcome: ToolOutcome) -> None:
        self.completed += 1
        logger.info(
            "Request %s round %d: %s %s",
            self.request_id,
            self.rounds,
            outcome.name,
            "completed" if outcome.success else "returned an error",
        )
        await self._emit(
            RoundEvent(
                tool_name=outcome.name,
                round=self.rounds,
                status="completed",
                result=outcome.result,
            )
        )

    async def _emit(self, event: RoundEvent) -> None:
        if self.publish is None:
            return
        # Activity is best-effort; a failed publish must not abort the round
        try:
            await self.publish(self.request_id, event)
        except Exception:
            logger.exception("Failed to publish round event for %s", self.request_id)

    def hooks(self) -> ActHooks:
        return ActHooks(
            on_message=self.on_message,
            on_tool_call=self.on_tool_call,
            on_tool_result=self.on_tool_result,
        )


class AgentOrchestrator:
    """Decides how to answer a request and drives the backend accordingly.

    Args:
        backend: The inference backend.
        tools: Registry handed to the backend in autonomous mode.
        publish_round: Awaited with ``(request_id, event)`` for every round
            event, as soon as it happens.
        trigger_words: Lowercase words that switch an unspecified mode to
            autonomous.
        timeout: Seconds allowed for each backend call.
    """

    def __init__(
        self,
        backend: InferenceBackend,
        tools: ToolRegistry,
        *,
        publish_round: Callable[[str, RoundEvent], Awaitable[None]] | None = None,
        trigger_words: list[str] | None = None,
        timeout: float = 30.0,
    ) -> None:
        self._backend = backend
        self._tools = tools
        self._publish_round = publish_round
        self._trigger_words = [w.lower() for w in (trigger_words or [])]
        self._timeout = timeout

    @property
    def backend(self) -> InferenceBackend:
        return self._backend

    def select_mode(self, request: Request) -> AgentMode:
        """Explicit mode wins; otherwise trigger words pick autonomous."""
        if request.explicit_mode:
            return request.agent_mode
        text = request.message.lower()
        if any(word in text for word in self._trigger_words):
            return AgentMode.AUTONOMOUS
        return AgentMode.STANDARD

    async def run(self, request: Request, session: SessionRecord | None = None) -> AgentResult:
        """Process *request* and return the raw result.

        Raises:
            BackendError: the backend failed or exceeded the timeout.
        """
        mode = self.select_mode(request)
        context = request.context or (session.context if session else "") or None
        params = SamplingParams(
            temperature=request.temperature,
            max_tokens=request.max_tokens,
            system=context,
        )
        logger.info("Processing request %s in %s mode", request.id, mode.value)

        if mode == AgentMode.AUTONOMOUS:
            tracker = _RoundTracker(request_id=request.id, publish=self._publish_round)
            text = await self._call(
                self._backend.act(
                    request.message,
                    self._tools,
                    params,
                    tracker.hooks(),
                    context=RequestContext(request_id=request.id, user_id=request.user),
                )
            )
            return AgentResult(
                text=text or EMPTY_RESPONSE_TEXT,
                mode=mode,
                rounds=tracker.completed,
                tools_used=list(tracker.tools_used),
            )

        text = await self._call(self._backend.generate(request.message, params))
        return AgentResult(text=text or EMPTY_RESPONSE_TEXT, mode=mode)

    async def _call(self, call: Awaitable[str]) -> str:
        try:
            async with asyncio.timeout(self._timeout):
                return await call
        except TimeoutError as exc:
            msg = f"Inference backend timed out after {self._timeout:g}s"
            raise BackendError(msg) from exc
