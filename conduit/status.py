"""Status reporting: publish service health and mirror it into the store."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import TYPE_CHECKING, Literal

from conduit.models import StatusPayload

if TYPE_CHECKING:
    from collections.abc import Callable

    from conduit.bus.gateway import BusGateway
    from conduit.storage.kv import KeyValueStore

logger = logging.getLogger(__name__)


class StatusReporter:
    """Publishes status on the status channel and under a well-known key.

    Late subscribers poll the key; live ones get the push.
    """

    def __init__(
        self,
        gateway: BusGateway,
        kv: KeyValueStore,
        *,
        service: str,
        version: str,
        model: str,
        madness_level: str,
        status_key: str,
        in_flight: Callable[[], int],
        tools: Callable[[], list[str]] | None = None,
        tool_categories: Callable[[], dict[str, list[str]]] | None = None,
    ) -> None:
        self._gateway = gateway
        self._kv = kv
        self._service = service
        self._version = version
        self._model = model
        self._madness_level = madness_level
        self._status_key = status_key
        self._in_flight = in_flight
        self._tools = tools or list
        self._tool_categories = tool_categories or dict
        self._heartbeat: asyncio.Task | None = None

    def snapshot(self, state: Literal["ONLINE", "OFFLINE"], message: str) -> StatusPayload:
        return StatusPayload(
            service=self._service,
            version=self._version,
            status=state,
            message=message,
            processing_queue_size=self._in_flight(),
            madness_level=self._madness_level,
            model=self._model,
            tools=self._tools(),
            tool_categories=self._tool_categories(),
        )

    async def publish(
        self, state: Literal["ONLINE", "OFFLINE"], message: str
    ) -> StatusPayload:
        """Publish and persist a status payload. Failures are logged, not raised."""
        payload = self.snapshot(state, message)
        body = payload.model_dump_json()
        try:
            await self._gateway.publish_status(body)
        except Exception:
            logger.exception("Failed to publish %s status", state)
        try:
            await self._kv.set(self._status_key, body)
        except Exception:
            logger.exception("Failed to store %s status", state)
        logger.info("Status %s: %s (in flight: %d)", state, message, payload.processing_queue_size)
        return payload

    # -- Heartbeat ---------------------------------------------------------------

    async def heartbeat_loop(self, interval: float) -> None:
        """Republish ONLINE status every *interval* seconds, forever."""
        while True:
            await asyncio.sleep(interval)
            await self.publish("ONLINE", "heartbeat")

    def start_heartbeat(self, interval: float) -> asyncio.Task | None:
        """Spawn the heartbeat loop. Returns None when *interval* is not positive."""
        if interval <= 0:
            logger.debug("Status heartbeat disabled")
            return None
        self._heartbeat = asyncio.create_task(self.heartbeat_loop(interval))
        logger.info("Status heartbeat started (interval=%gs)", interval)
        return self._heartbeat

    async def stop_heartbeat(self) -> None:
        if self._heartbeat is None:
            return
        self._heartbeat.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._heartbeat
        self._heartbeat = None
