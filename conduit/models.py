"""Wire payloads: inbound requests and everything published on the bus."""

from __future__ import annotations

import math
import uuid
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

ERROR_CATEGORY = "processing failed"


def utc_now() -> str:
    return datetime.now(UTC).isoformat()


class AgentMode(str, Enum):
    STANDARD = "standard"
    AUTONOMOUS = "autonomous"


class Request(BaseModel):
    """A chat request as received on the request channel.

    ``agent_mode`` stays ``None`` when the caller did not choose a mode,
    which lets the orchestrator fall back to trigger-word detection.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user: str = "anonymous"
    message: str
    agent_mode: AgentMode | None = None
    temperature: float = 0.7
    max_tokens: int = Field(default=1000, gt=0)
    context: str | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _generate_missing_id(cls, value: Any) -> Any:
        if value is None or value == "":
            return str(uuid.uuid4())
        return value

    @field_validator("user", mode="before")
    @classmethod
    def _default_user(cls, value: Any) -> Any:
        if value is None or value == "":
            return "anonymous"
        return value

    # A request that carries a message is always answered; unusable optional
    # fields fall back to their defaults instead of dropping it.

    @field_validator("agent_mode", mode="before")
    @classmethod
    def _unknown_mode_is_unset(cls, value: Any) -> Any:
        if isinstance(value, AgentMode):
            return value
        if isinstance(value, str) and value in {mode.value for mode in AgentMode}:
            return value
        return None

    @field_validator("temperature", mode="before")
    @classmethod
    def _default_temperature(cls, value: Any) -> Any:
        if isinstance(value, bool) or not isinstance(value, int | float):
            return 0.7
        return value

    @field_validator("max_tokens", mode="before")
    @classmethod
    def _default_max_tokens(cls, value: Any) -> Any:
        if isinstance(value, bool) or not isinstance(value, int | float):
            return 1000
        if not math.isfinite(value) or value < 1:
            return 1000
        return int(value)

    @property
    def explicit_mode(self) -> bool:
        return self.agent_mode is not None


class RoundEvent(BaseModel):
    """One tool invocation observed during autonomous processing."""

    tool_name: str
    round: int
    status: Literal["executing", "completed"]
    result: Any = None


class ActivityMessage(BaseModel):
    request_id: str
    timestamp: str = Field(default_factory=utc_now)
    service: str
    activity: RoundEvent


class ResponseEnvelope(BaseModel):
    """The externally contracted success payload.

    Validated at the assembler boundary before publication.
    """

    model_config = ConfigDict(extra="forbid", strict=True)

    id: str = Field(min_length=1)
    user: str = Field(min_length=1)
    original_message: str
    response: str = Field(min_length=1)
    processing_time_ms: int = Field(ge=0)
    timestamp: str
    model: str = Field(min_length=1)
    madness_level: str
    agent_rounds: int = Field(ge=0)
    tools_used: list[str]


class ErrorEnvelope(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str
    user: str
    error: str = ERROR_CATEGORY
    error_details: str
    timestamp: str = Field(default_factory=utc_now)
    madness_level: str


class StatusPayload(BaseModel):
    service: str
    version: str
    status: Literal["ONLINE", "OFFLINE"]
    message: str
    timestamp: str = Field(default_factory=utc_now)
    processing_queue_size: int
    madness_level: str
    model: str
    tools: list[str] = Field(default_factory=list)
    tool_categories: dict[str, list[str]] = Field(default_factory=dict)
    agentic_capabilities: bool = True
    capabilities: dict[str, bool] = Field(
        default_factory=lambda: {
            "conversation_history": True,
            "user_sessions": True,
            "agent_activity_logging": True,
        }
    )
