"""Shared test fixtures."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

import pytest

from conduit.bus.gateway import BusGateway
from conduit.bus.local_bus import LocalBus
from conduit.config import Settings
from conduit.llm.backend import ToolCall, ToolOutcome
from conduit.service import ConduitService
from conduit.storage.kv import MemoryKeyValueStore
from conduit.tools import registry
from conduit.tools.builtin import init_history_tool


class FakeClock:
    """Controllable monotonic clock for expiry tests."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeBackend:
    """Scripted InferenceBackend.

    ``generate`` returns *reply*.  ``act`` performs each ``(tool, args)`` in
    *tool_calls* through the real registry, firing the hooks the way a real
    backend would, then returns ``final(results)``.
    """

    model_name = "fake-model"

    def __init__(
        self,
        reply: str = "Hello from the model",
        tool_calls: list[tuple[str, dict[str, Any]]] | None = None,
        final: Callable[[list[dict[str, Any]]], str] | None = None,
        delay: float = 0.0,
        error: Exception | None = None,
    ) -> None:
        self.reply = reply
        self.tool_calls = tool_calls or []
        self.final = final or (lambda results: reply)
        self.delay = delay
        self.error = error
        self.generate_calls: list[tuple[str, Any]] = []
        self.act_calls: list[tuple[str, Any]] = []
        self.closed = False

    async def verify(self) -> None:
        return None

    async def generate(self, prompt, params) -> str:
        self.generate_calls.append((prompt, params))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return self.reply

    async def act(self, prompt, tools, params, hooks, context=None) -> str:
        self.act_calls.append((prompt, params))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        results: list[dict[str, Any]] = []
        for turn, (name, arguments) in enumerate(self.tool_calls, start=1):
            if hooks.on_tool_call:
                await hooks.on_tool_call(ToolCall(name=name, arguments=arguments, turn=turn))
            result = await tools.execute(name, arguments, context=context)
            if hooks.on_tool_result:
                await hooks.on_tool_result(
                    ToolOutcome(
                        name=name,
                        result=result.to_payload(),
                        success=result.success,
                        turn=turn,
                    )
                )
            results.append(result.to_payload())
        if hooks.on_message:
            await hooks.on_message("thinking out loud")
        return self.final(results)

    async def close(self) -> None:
        self.closed = True


async def _collect(messages, count: int, timeout: float = 1.0) -> list[str]:
    async def _take() -> list[str]:
        out: list[str] = []
        async for raw in messages:
            out.append(raw)
            if len(out) == count:
                break
        return out

    return await asyncio.wait_for(_take(), timeout=timeout)


@pytest.fixture
def collect():
    """Read *count* payloads from a subscription iterator, with a timeout."""
    return _collect


@pytest.fixture
def fake_backend() -> type[FakeBackend]:
    """Factory for scripted backends; subclass it for custom behavior."""
    return FakeBackend


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def kv(clock: FakeClock) -> MemoryKeyValueStore:
    return MemoryKeyValueStore(clock=clock)


@pytest.fixture
def bus() -> LocalBus:
    return LocalBus()


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        bus_backend="local",
        store_backend="memory",
        verify_backend_on_start=False,
        llm_timeout_seconds=1.0,
        shutdown_grace_seconds=1.0,
    )


@pytest.fixture
def gateway(bus: LocalBus, test_settings: Settings) -> BusGateway:
    return BusGateway(
        bus,
        request_channel=test_settings.request_channel,
        response_channel=test_settings.response_channel,
        status_channel=test_settings.status_channel,
        activity_channel=test_settings.activity_channel,
        resubscribe_delay=0.01,
    )


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def make_service(test_settings, gateway, kv):
    """Factory building a ConduitService around a given backend."""

    def _make(backend_: FakeBackend, **overrides: Any) -> ConduitService:
        cfg = test_settings.model_copy(update=overrides) if overrides else test_settings
        return ConduitService(
            settings=cfg, gateway=gateway, kv=kv, backend=backend_, tools=registry
        )

    return _make


@pytest.fixture(autouse=True)
def _reset_history_tool():
    init_history_tool(None)
    yield
    init_history_tool(None)
