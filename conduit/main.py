"""Conduit entry point."""

from __future__ import annotations

import asyncio
import logging
import signal
import sys

import redis.asyncio as redis

from conduit.bus.gateway import BusGateway
from conduit.bus.local_bus import LocalBus
from conduit.bus.redis_bus import RedisBus
from conduit.config import Settings, settings
from conduit.llm.client import AnthropicBackend
from conduit.service import ConduitService
from conduit.storage.kv import MemoryKeyValueStore
from conduit.storage.redis_kv import RedisKeyValueStore

logger = logging.getLogger(__name__)


def build_service(cfg: Settings) -> ConduitService:
    """Assemble a service from configuration."""
    client = None
    if "redis" in (cfg.bus_backend, cfg.store_backend):
        client = redis.from_url(cfg.redis_url, decode_responses=True)

    if cfg.bus_backend == "redis":
        bus = RedisBus(client)
    elif cfg.bus_backend == "local":
        bus = LocalBus()
    else:
        msg = f"Unknown BUS_BACKEND: {cfg.bus_backend!r}"
        raise ValueError(msg)

    if cfg.store_backend == "redis":
        kv = RedisKeyValueStore(client)
    elif cfg.store_backend == "memory":
        kv = MemoryKeyValueStore()
    else:
        msg = f"Unknown STORE_BACKEND: {cfg.store_backend!r}"
        raise ValueError(msg)

    gateway = BusGateway(
        bus,
        request_channel=cfg.request_channel,
        response_channel=cfg.response_channel,
        status_channel=cfg.status_channel,
        activity_channel=cfg.activity_channel,
    )
    backend = AnthropicBackend(
        model=cfg.llm_model,
        api_key=cfg.llm_api_key,
        base_url=cfg.llm_base_url,
        timeout=cfg.llm_timeout_seconds,
        max_rounds=cfg.max_tool_rounds,
    )
    return ConduitService(settings=cfg, gateway=gateway, kv=kv, backend=backend)


def install_signal_handlers(
    loop: asyncio.AbstractEventLoop, service: ConduitService, stop: asyncio.Event
) -> None:
    """Route SIGINT/SIGTERM to *stop* for the given *service*."""

    def _on_signal(sig: signal.Signals) -> None:
        logger.info("Received %s, shutting down %s", sig.name, type(service).__name__)
        stop.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _on_signal, sig)
        except NotImplementedError:
            # Windows event loops have no add_signal_handler
            signal.signal(
                sig, lambda s, _f: loop.call_soon_threadsafe(_on_signal, signal.Signals(s))
            )


async def run(service: ConduitService) -> int:
    """Run *service* until a shutdown signal arrives. Returns the exit code."""
    stop = asyncio.Event()
    install_signal_handlers(asyncio.get_running_loop(), service, stop)

    try:
        await service.start()
    except Exception:
        logger.exception("Failed to start service")
        await service.close()
        return 1

    try:
        await stop.wait()
    finally:
        await service.stop()
    return 0


def main() -> None:
    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
    )

    service = build_service(settings)
    sys.exit(asyncio.run(run(service)))


if __name__ == "__main__":
    main()
