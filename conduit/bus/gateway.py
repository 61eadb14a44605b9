"""BusGateway: request ingestion and outbound publishing over a MessageBus."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from typing import TYPE_CHECKING

from pydantic import BaseModel, ValidationError

from conduit.models import Request

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Callable

    from conduit.bus.channels import MessageBus

logger = logging.getLogger(__name__)

_RESUBSCRIBE_DELAY_SECONDS = 1.0


def parse_request(raw: str | bytes) -> Request | None:
    """Parse a raw bus payload into a Request, or None if malformed."""
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError):
        logger.warning("Dropping non-JSON request payload: %.80r", raw)
        return None
    if not isinstance(data, dict):
        logger.warning("Dropping request payload that is not an object: %.80r", raw)
        return None
    try:
        return Request.model_validate(data)
    except ValidationError as exc:
        logger.warning("Dropping invalid request: %d error(s): %s", exc.error_count(), exc)
        return None


class BusGateway:
    """Subscribes to the request channel and publishes replies.

    Each accepted request runs as its own task so slow requests never hold
    up the listener.  No business logic lives here.
    """

    def __init__(
        self,
        bus: MessageBus,
        *,
        request_channel: str,
        response_channel: str,
        status_channel: str,
        activity_channel: str,
        resubscribe_delay: float = _RESUBSCRIBE_DELAY_SECONDS,
    ) -> None:
        self._bus = bus
        self.request_channel = request_channel
        self.response_channel = response_channel
        self.status_channel = status_channel
        self.activity_channel = activity_channel
        self._resubscribe_delay = resubscribe_delay
        self._listener: asyncio.Task | None = None
        self._tasks: set[asyncio.Task] = set()

    @property
    def bus(self) -> MessageBus:
        return self._bus

    @property
    def pending_tasks(self) -> int:
        return len(self._tasks)

    # -- Lifecycle -------------------------------------------------------------

    async def connect(self) -> None:
        """Connect the underlying bus. Failure here is fatal to the service."""
        await self._bus.connect()

    async def start(self, handler: Callable[[Request], Awaitable[None]]) -> None:
        """Subscribe to the request channel and dispatch requests to *handler*."""
        messages = await self._bus.subscribe(self.request_channel)
        self._listener = asyncio.create_task(self._listen(messages, handler))
        logger.info("Listening for requests on %s", self.request_channel)

    async def stop(self, grace_seconds: float = 30.0) -> None:
        """Stop accepting requests, then wait for in-flight ones to finish."""
        if self._listener is not None:
            self._listener.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._listener
            self._listener = None

        if self._tasks:
            logger.info("Draining %d in-flight request(s)", len(self._tasks))
            _, pending = await asyncio.wait(set(self._tasks), timeout=grace_seconds)
            if pending:
                logger.warning("Cancelling %d request(s) after grace period", len(pending))
                for task in pending:
                    task.cancel()
                await asyncio.gather(*pending, return_exceptions=True)

    async def _listen(
        self,
        messages: AsyncIterator[str] | None,
        handler: Callable[[Request], Awaitable[None]],
    ) -> None:
        # Transient transport faults only restart the subscription; tasks
        # already dispatched keep running independently.
        while True:
            try:
                if messages is None:
                    messages = await self._bus.subscribe(self.request_channel)
                    logger.info("Resubscribed to %s", self.request_channel)
                async for raw in messages:
                    self.dispatch(raw, handler)
                logger.warning("Request subscription ended, resubscribing")
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Request subscription failed, resubscribing")
            messages = None
            await asyncio.sleep(self._resubscribe_delay)

    def dispatch(
        self, raw: str | bytes, handler: Callable[[Request], Awaitable[None]]
    ) -> asyncio.Task | None:
        """Parse *raw* and schedule *handler* for it. Malformed payloads are dropped."""
        request = parse_request(raw)
        if request is None:
            return None
        logger.info(
            "Received request %s from %s (%d chars, mode=%s)",
            request.id,
            request.user,
            len(request.message),
            request.agent_mode.value if request.agent_mode else "auto",
        )
        task = asyncio.create_task(handler(request), name=f"request-{request.id}")
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Request task %s failed", task.get_name(), exc_info=task.exception())

    # -- Outbound --------------------------------------------------------------

    async def _publish(self, channel: str, payload: BaseModel | str) -> int:
        body = payload if isinstance(payload, str) else payload.model_dump_json()
        return await self._bus.publish(channel, body)

    async def publish_response(self, payload: BaseModel | str) -> int:
        return await self._publish(self.response_channel, payload)

    async def publish_status(self, payload: BaseModel | str) -> int:
        return await self._publish(self.status_channel, payload)

    async def publish_activity(self, payload: BaseModel | str) -> int:
        return await self._publish(self.activity_channel, payload)
