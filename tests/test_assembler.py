"""Tests for envelope assembly."""

import json

import pytest

from conduit.assembler import SHUTDOWN_DETAIL, ResponseAssembler
from conduit.llm.backend import BackendError
from conduit.models import ERROR_CATEGORY, AgentMode, ErrorEnvelope, Request, ResponseEnvelope
from conduit.orchestrator import AgentResult


@pytest.fixture
def assembler() -> ResponseAssembler:
    return ResponseAssembler(
        model="fake-model", response_tag="autonomous_chaos", error_tag="error_chaos"
    )


@pytest.fixture
def request_() -> Request:
    return Request(id="r1", user="u1", message="Calculate 42*137+256")


def test_build_response(assembler, request_):
    result = AgentResult(
        text="6010",
        mode=AgentMode.AUTONOMOUS,
        rounds=2,
        tools_used=["calculator", "calculator", "system_info"],
    )

    envelope = assembler.build_response(request_, result, 120)

    assert isinstance(envelope, ResponseEnvelope)
    assert envelope.id == "r1"
    assert envelope.user == "u1"
    assert envelope.original_message == "Calculate 42*137+256"
    assert envelope.response == "6010"
    assert envelope.processing_time_ms == 120
    assert envelope.model == "fake-model"
    assert envelope.madness_level == "autonomous_chaos"
    assert envelope.agent_rounds == 2
    assert envelope.tools_used == ["calculator", "system_info"]


def test_invalid_response_becomes_error_envelope(request_):
    assembler = ResponseAssembler(model="", response_tag="ok", error_tag="bad")
    result = AgentResult(text="hello", mode=AgentMode.STANDARD)

    envelope = assembler.build_response(request_, result, 5)

    assert isinstance(envelope, ErrorEnvelope)
    assert envelope.id == "r1"
    assert envelope.error == ERROR_CATEGORY
    assert envelope.error_details == "response failed validation (1 error(s))"
    assert envelope.madness_level == "bad"


def test_build_error(assembler, request_):
    exc = BackendError("Inference backend timed out after 30s")
    envelope = assembler.build_error(request_, exc)

    assert envelope.id == "r1"
    assert envelope.user == "u1"
    assert envelope.error == "processing failed"
    assert envelope.error_details == "Inference backend timed out after 30s"
    assert envelope.madness_level == "error_chaos"


def test_build_error_without_message_uses_class_name(assembler, request_):
    envelope = assembler.build_error(request_, RuntimeError())
    assert envelope.error_details == "RuntimeError"


def test_build_cancelled(assembler, request_):
    envelope = assembler.build_cancelled(request_)
    assert envelope.id == "r1"
    assert envelope.error == ERROR_CATEGORY
    assert envelope.error_details == SHUTDOWN_DETAIL
    assert envelope.madness_level == "error_chaos"


def test_conversation_entry_for_success(assembler, request_):
    result = AgentResult(
        text="6010", mode=AgentMode.AUTONOMOUS, rounds=1, tools_used=["calculator"]
    )
    envelope = assembler.build_response(request_, result, 42)

    entry = assembler.conversation_entry(request_, envelope, 42)

    assert entry.user_message == "Calculate 42*137+256"
    assert entry.ai_response == "6010"
    assert entry.processing_time_ms == 42
    assert entry.agent_rounds == 1
    assert entry.tools_used == ["calculator"]
    assert entry.timestamp == envelope.timestamp


def test_conversation_entry_for_error(assembler, request_):
    envelope = assembler.build_error(request_, BackendError("model unloaded"))

    entry = assembler.conversation_entry(request_, envelope, 17)

    assert entry.ai_response == "processing failed: model unloaded"
    assert entry.processing_time_ms == 17
    assert entry.agent_rounds == 0
    assert entry.madness_level == "error_chaos"


def test_serialize_error_has_no_response_field(assembler, request_):
    body = json.loads(assembler.serialize(assembler.build_error(request_, ValueError("x"))))
    assert "response" not in body
    assert set(body) == {"id", "user", "error", "error_details", "timestamp", "madness_level"}
