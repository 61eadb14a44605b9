"""ConduitService: wires bus, stores, orchestrator and reporter together."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from typing import TYPE_CHECKING

from conduit.assembler import ResponseAssembler
from conduit.models import ActivityMessage, ResponseEnvelope
from conduit.orchestrator import AgentOrchestrator
from conduit.status import StatusReporter
from conduit.storage.conversations import ConversationStore
from conduit.storage.sessions import SessionStore
from conduit.tools import registry as default_registry
from conduit.tools.builtin import configure_file_analyzer, init_history_tool

if TYPE_CHECKING:
    from conduit.assembler import Envelope
    from conduit.bus.gateway import BusGateway
    from conduit.config import Settings
    from conduit.llm.backend import InferenceBackend
    from conduit.models import Request, RoundEvent
    from conduit.storage.kv import KeyValueStore
    from conduit.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)


class ConduitService:
    """The request-processing service.

    Every request accepted by the gateway yields exactly one envelope on the
    response channel and exactly one conversation entry, whatever fails on
    the way.
    """

    def __init__(
        self,
        *,
        settings: Settings,
        gateway: BusGateway,
        kv: KeyValueStore,
        backend: InferenceBackend,
        tools: ToolRegistry | None = None,
    ) -> None:
        self._settings = settings
        self.gateway = gateway
        self.kv = kv
        self.backend = backend
        self.tools = tools or default_registry

        self.sessions = SessionStore(
            kv, prefix=settings.sessions_prefix, ttl=settings.session_ttl_seconds
        )
        self.conversations = ConversationStore(
            kv,
            prefix=settings.conversations_prefix,
            max_entries=settings.conversation_max_entries,
            ttl=settings.conversation_ttl_seconds,
        )
        self.orchestrator = AgentOrchestrator(
            backend,
            self.tools,
            publish_round=self.publish_activity,
            trigger_words=settings.get_trigger_words(),
            timeout=settings.llm_timeout_seconds,
        )
        self.assembler = ResponseAssembler(
            model=backend.model_name,
            response_tag=settings.response_tag,
            error_tag=settings.error_tag,
        )
        self.status = StatusReporter(
            gateway,
            kv,
            service=settings.service_name,
            version=settings.service_version,
            model=backend.model_name,
            madness_level=settings.response_tag,
            status_key=settings.status_key,
            in_flight=lambda: self._in_flight,
            tools=lambda: self.tools.tool_names,
            tool_categories=self.tools.categories,
        )

        self._in_flight = 0
        self._limiter = (
            asyncio.Semaphore(settings.max_concurrent_requests)
            if settings.max_concurrent_requests > 0
            else None
        )
        self._running = False

    @property
    def in_flight(self) -> int:
        return self._in_flight

    @property
    def running(self) -> bool:
        return self._running

    # -- Lifecycle -------------------------------------------------------------

    async def start(self) -> None:
        """Bring the service online.

        Raises if the backend check fails or the bus cannot connect; the
        service cannot run without either.
        """
        logger.info("Starting %s %s", self._settings.service_name, self._settings.service_version)
        if self._settings.verify_backend_on_start:
            await self.backend.verify()
        await self.gateway.connect()

        configure_file_analyzer(
            preview_chars=self._settings.file_preview_chars,
            max_bytes=self._settings.file_max_bytes,
        )
        init_history_tool(
            self.conversations, default_limit=self._settings.history_default_limit
        )

        await self.gateway.start(self.handle_request)
        self._running = True
        await self.status.publish("ONLINE", "Neural bridge activated, ready for requests")
        self.status.start_heartbeat(self._settings.status_interval_seconds)
        logger.info("%s is live", self._settings.service_name)

    async def stop(self) -> None:
        """Drain in-flight work, announce OFFLINE, release connections."""
        if not self._running:
            return
        logger.info("Shutting down %s", self._settings.service_name)
        self._running = False
        await self.status.stop_heartbeat()
        await self.gateway.stop(grace_seconds=self._settings.shutdown_grace_seconds)
        await self.status.publish("OFFLINE", "Neural bridge deactivating")
        await self.close()
        logger.info("%s stopped", self._settings.service_name)

    async def close(self) -> None:
        """Release backend, bus and store connections. Safe after a failed start."""
        init_history_tool(None)
        for name, closer in (
            ("backend", self.backend.close),
            ("bus", self.gateway.bus.close),
            ("store", self.kv.close),
        ):
            try:
                await closer()
            except Exception:
                logger.exception("Error closing %s", name)

    async def report_status(self, message: str = "Status requested"):
        """Publish the current status on demand."""
        state = "ONLINE" if self._running else "OFFLINE"
        return await self.status.publish(state, message)

    # -- Request pipeline ------------------------------------------------------

    async def handle_request(self, request: Request) -> None:
        """Process one request end to end.

        Never raises, except to let cancellation through. A request cancelled
        at shutdown is still answered with an error envelope first.
        """
        t0 = time.monotonic()
        try:
            envelope = await self._answer(request, t0)
        except asyncio.CancelledError:
            logger.warning("Request %s cancelled before it finished", request.id)
            envelope = self.assembler.build_cancelled(request)
            await self._deliver(request, envelope, _elapsed_ms(t0))
            raise
        await self._deliver(request, envelope, _elapsed_ms(t0))

    async def _answer(self, request: Request, t0: float) -> Envelope:
        limiter = self._limiter or contextlib.nullcontext()
        async with limiter:
            self._in_flight += 1
            try:
                session = await self.sessions.upsert(request.user, request)
                result = await self.orchestrator.run(request, session)
                return self.assembler.build_response(request, result, _elapsed_ms(t0))
            except Exception as exc:
                logger.exception("Error processing request %s", request.id)
                return self.assembler.build_error(request, exc)
            finally:
                self._in_flight -= 1

    async def _deliver(self, request: Request, envelope: Envelope, elapsed_ms: int) -> None:
        """Record the exchange and publish *envelope* as the request's only reply."""
        entry = self.assembler.conversation_entry(request, envelope, elapsed_ms)
        await self.conversations.append(request.user, entry)

        try:
            await self.gateway.publish_response(self.assembler.serialize(envelope))
        except Exception:
            logger.exception("Failed to publish reply for %s", request.id)
            return

        if isinstance(envelope, ResponseEnvelope):
            logger.info(
                "Request %s answered in %dms (%d round(s), %d tool(s))",
                request.id,
                envelope.processing_time_ms,
                envelope.agent_rounds,
                len(envelope.tools_used),
            )
        else:
            logger.warning("Request %s failed after %dms", request.id, elapsed_ms)

    async def publish_activity(self, request_id: str, event: RoundEvent) -> None:
        """Publish a round event and append it to the activity log stream."""
        message = ActivityMessage(
            request_id=request_id,
            service=self._settings.service_name,
            activity=event,
        )
        await self.gateway.publish_activity(message)
        try:
            await self.kv.stream_add(
                self._settings.activity_log_key,
                {
                    "request_id": request_id,
                    "tool": event.tool_name,
                    "round": str(event.round),
                    "status": event.status,
                    "timestamp": message.timestamp,
                },
                maxlen=self._settings.activity_log_maxlen,
            )
        except Exception:
            logger.exception("Failed to log activity for %s", request_id)


def _elapsed_ms(t0: float) -> int:
    return int((time.monotonic() - t0) * 1000)
