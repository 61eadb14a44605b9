"""Tests for request ingestion and outbound publishing."""

import asyncio
import json

import pytest

from conduit.bus.gateway import BusGateway, parse_request
from conduit.bus.local_bus import LocalBus
from conduit.models import Request


async def _ended():
    return
    yield


class _FlakyBus(LocalBus):
    """First subscription ends immediately; later ones are live."""

    def __init__(self) -> None:
        super().__init__()
        self.subscribe_calls = 0

    async def subscribe(self, channel: str):
        self.subscribe_calls += 1
        if self.subscribe_calls == 1:
            return _ended()
        return await super().subscribe(channel)


class TestParseRequest:
    def test_valid(self):
        req = parse_request('{"id": "r1", "user": "u1", "message": "hi"}')
        assert req.id == "r1"
        assert req.message == "hi"

    def test_bytes_payload(self):
        assert parse_request(b'{"message": "hi"}').message == "hi"

    @pytest.mark.parametrize(
        "raw",
        [
            "not json",
            "[1, 2, 3]",
            '"just a string"',
            '{"id": "r1"}',
            b"\xff\xfe",
        ],
    )
    def test_malformed_returns_none(self, raw):
        assert parse_request(raw) is None

    def test_bad_optional_fields_use_defaults(self):
        req = parse_request(
            '{"id": "r1", "message": "hi", "agent_mode": "turbo", "max_tokens": 0}'
        )
        assert req.id == "r1"
        assert req.agent_mode is None
        assert req.max_tokens == 1000


async def test_dispatches_requests_to_handler(gateway, bus):
    received: list[Request] = []
    done = asyncio.Event()

    async def handler(request: Request) -> None:
        received.append(request)
        done.set()

    await gateway.connect()
    await gateway.start(handler)
    await bus.publish("whispermind:request", json.dumps({"id": "r1", "message": "hi"}))
    await asyncio.wait_for(done.wait(), timeout=1.0)
    await gateway.stop(grace_seconds=1.0)

    assert [r.id for r in received] == ["r1"]


async def test_malformed_request_is_dropped(gateway):
    calls = []

    async def handler(request: Request) -> None:
        calls.append(request)

    assert gateway.dispatch("{broken", handler) is None
    assert gateway.pending_tasks == 0
    assert calls == []


async def test_requests_run_concurrently(gateway):
    release = asyncio.Event()
    started: list[str] = []

    async def handler(request: Request) -> None:
        started.append(request.id)
        await release.wait()

    for i in range(3):
        gateway.dispatch(json.dumps({"id": f"r{i}", "message": "hi"}), handler)
    await asyncio.sleep(0.01)

    assert sorted(started) == ["r0", "r1", "r2"]
    assert gateway.pending_tasks == 3
    release.set()
    await gateway.stop(grace_seconds=1.0)
    assert gateway.pending_tasks == 0


async def test_stop_waits_for_in_flight(gateway):
    finished = []

    async def handler(request: Request) -> None:
        await asyncio.sleep(0.05)
        finished.append(request.id)

    gateway.dispatch(json.dumps({"id": "slow", "message": "hi"}), handler)
    await gateway.stop(grace_seconds=1.0)

    assert finished == ["slow"]


async def test_stop_cancels_after_grace(gateway):
    cancelled = asyncio.Event()

    async def handler(request: Request) -> None:
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            cancelled.set()
            raise

    gateway.dispatch(json.dumps({"id": "stuck", "message": "hi"}), handler)
    await asyncio.sleep(0)
    await gateway.stop(grace_seconds=0.01)

    assert cancelled.is_set()
    assert gateway.pending_tasks == 0


async def test_handler_exception_is_contained(gateway):
    async def handler(request: Request) -> None:
        raise RuntimeError("boom")

    task = gateway.dispatch(json.dumps({"message": "hi"}), handler)
    with pytest.raises(RuntimeError):
        await task
    await asyncio.sleep(0)
    assert gateway.pending_tasks == 0


async def test_resubscribes_when_subscription_ends(test_settings):
    bus = _FlakyBus()
    gateway = BusGateway(
        bus,
        request_channel=test_settings.request_channel,
        response_channel=test_settings.response_channel,
        status_channel=test_settings.status_channel,
        activity_channel=test_settings.activity_channel,
        resubscribe_delay=0.01,
    )
    received = asyncio.Queue()

    async def handler(request: Request) -> None:
        received.put_nowait(request.id)

    await gateway.start(handler)
    while bus.subscribe_calls < 2:
        await asyncio.sleep(0.01)

    await bus.publish("whispermind:request", json.dumps({"id": "after", "message": "hi"}))
    assert await asyncio.wait_for(received.get(), timeout=1.0) == "after"
    await gateway.stop(grace_seconds=1.0)


@pytest.mark.parametrize(
    ("method", "channel"),
    [
        ("publish_response", "whispermind:response"),
        ("publish_status", "whispermind:status"),
        ("publish_activity", "whispermind:agent"),
    ],
)
async def test_outbound_channels(gateway, bus, collect, method, channel):
    messages = await bus.subscribe(channel)

    receivers = await getattr(gateway, method)('{"ok": true}')

    assert receivers == 1
    assert await collect(messages, 1) == ['{"ok": true}']


async def test_publish_model_is_serialized(gateway, bus, collect):
    messages = await bus.subscribe("whispermind:response")
    await gateway.publish_response(Request(id="r1", message="hi"))
    [raw] = await collect(messages, 1)
    assert json.loads(raw)["id"] == "r1"
