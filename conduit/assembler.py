"""Response assembly: the one seam where outbound envelopes are validated."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from pydantic import ValidationError

from conduit.models import ERROR_CATEGORY, ErrorEnvelope, ResponseEnvelope, utc_now
from conduit.storage.models import ConversationEntry

if TYPE_CHECKING:
    from conduit.models import Request
    from conduit.orchestrator import AgentResult

logger = logging.getLogger(__name__)

Envelope = ResponseEnvelope | ErrorEnvelope

SHUTDOWN_DETAIL = "service shutting down before the request completed"


class ResponseAssembler:
    """Builds terminal envelopes; always yields something publishable."""

    def __init__(self, *, model: str, response_tag: str, error_tag: str) -> None:
        self._model = model
        self._response_tag = response_tag
        self._error_tag = error_tag

    def build_response(self, request: Request, result: AgentResult, elapsed_ms: int) -> Envelope:
        """Validate the orchestrator's result into a ResponseEnvelope.

        A schema violation here is a defect: it is logged at error level and
        an ErrorEnvelope is returned instead, so the caller still gets a reply.
        """
        candidate = {
            "id": request.id,
            "user": request.user,
            "original_message": request.message,
            "response": result.text,
            "processing_time_ms": elapsed_ms,
            "timestamp": utc_now(),
            "model": self._model,
            "madness_level": self._response_tag,
            "agent_rounds": result.rounds,
            "tools_used": list(dict.fromkeys(result.tools_used)),
        }
        try:
            return ResponseEnvelope.model_validate(candidate)
        except ValidationError as exc:
            logger.error("Response envelope for %s failed validation: %s", request.id, exc)
            detail = f"response failed validation ({exc.error_count()} error(s))"
            return self._error(request.id, request.user, detail)

    def build_error(self, request: Request, exc: BaseException) -> ErrorEnvelope:
        """Error envelope for a fault raised while processing *request*."""
        detail = str(exc) or type(exc).__name__
        return self._error(request.id, request.user, detail)

    def build_cancelled(self, request: Request) -> ErrorEnvelope:
        """Error envelope for a request cut short by shutdown."""
        return self._error(request.id, request.user, SHUTDOWN_DETAIL)

    def _error(self, request_id: str, user: str, detail: str) -> ErrorEnvelope:
        return ErrorEnvelope(
            id=request_id,
            user=user,
            error=ERROR_CATEGORY,
            error_details=detail,
            madness_level=self._error_tag,
        )

    @staticmethod
    def conversation_entry(
        request: Request, envelope: Envelope, elapsed_ms: int
    ) -> ConversationEntry:
        """The history record for a finished request, success or failure."""
        if isinstance(envelope, ResponseEnvelope):
            return ConversationEntry(
                timestamp=envelope.timestamp,
                user_message=request.message,
                ai_response=envelope.response,
                processing_time_ms=envelope.processing_time_ms,
                agent_rounds=envelope.agent_rounds,
                tools_used=envelope.tools_used,
                madness_level=envelope.madness_level,
            )
        return ConversationEntry(
            timestamp=envelope.timestamp,
            user_message=request.message,
            ai_response=f"{envelope.error}: {envelope.error_details}",
            processing_time_ms=elapsed_ms,
            madness_level=envelope.madness_level,
        )

    @staticmethod
    def serialize(envelope: Envelope) -> str:
        return envelope.model_dump_json()
