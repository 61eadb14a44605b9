"""Messages-API inference backend with a tool-calling loop."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import anthropic

from conduit.llm.backend import BackendError, ToolCall, ToolOutcome

if TYPE_CHECKING:
    from conduit.context import RequestContext
    from conduit.llm.backend import ActHooks, SamplingParams
    from conduit.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)


def _serialize_content(content: list[Any]) -> list[dict[str, Any]]:
    """Convert SDK content blocks to plain dicts for message history."""
    result: list[dict[str, Any]] = []
    for block in content:
        if block.type == "text":
            result.append({"type": "text", "text": block.text})
        elif block.type == "tool_use":
            result.append({
                "type": "tool_use",
                "id": block.id,
                "name": block.name,
                "input": block.input,
            })
    return result


def _text_of(content: list[Any]) -> str:
    return "".join(block.text for block in content if block.type == "text")


class AnthropicBackend:
    """InferenceBackend over ``anthropic.AsyncAnthropic``.

    *base_url* points the SDK at any server that speaks the Messages API
    (a local model server, a gateway); empty means the SDK default.
    """

    def __init__(
        self,
        *,
        model: str,
        api_key: str = "",
        base_url: str = "",
        timeout: float = 30.0,
        max_rounds: int = 10,
        client: anthropic.AsyncAnthropic | None = None,
    ) -> None:
        self._model = model
        self._max_rounds = max_rounds
        if client is None:
            kwargs: dict[str, Any] = {"api_key": api_key or "not-needed", "timeout": timeout}
            if base_url:
                kwargs["base_url"] = base_url
            client = anthropic.AsyncAnthropic(**kwargs)
        self._client = client

    @property
    def model_name(self) -> str:
        return self._model

    async def verify(self) -> None:
        try:
            page = await self._client.models.list(limit=20)
        except anthropic.APIError as exc:
            msg = f"Inference backend is not reachable: {exc}"
            raise BackendError(msg) from exc
        models = [m.id for m in page.data]
        logger.info("Inference backend reachable (%d model(s) listed)", len(models))
        if models and self._model not in models:
            logger.warning("Configured model %s not in backend listing", self._model)

    async def generate(self, prompt: str, params: SamplingParams) -> str:
        """Single-shot call, no tools."""
        kwargs = self._request_kwargs([{"role": "user", "content": prompt}], params)
        try:
            response = await self._client.messages.create(**kwargs)
        except anthropic.APIError as exc:
            raise BackendError(str(exc)) from exc
        return _text_of(response.content)

    async def act(
        self,
        prompt: str,
        tools: ToolRegistry,
        params: SamplingParams,
        hooks: ActHooks,
        context: RequestContext | None = None,
    ) -> str:
        """Generate a response with the full tool-calling loop.

        When the model calls tools they are executed through *tools* and
        the results fed back, until it answers without a tool call or
        ``max_rounds`` model turns have been used.

        Returns:
            The assistant text across all turns.
        """
        tool_schemas = tools.get_schemas()
        loop_messages: list[dict[str, Any]] = [{"role": "user", "content": prompt}]
        full_text = ""

        for turn in range(1, self._max_rounds + 1):
            kwargs = self._request_kwargs(loop_messages, params)
            if tool_schemas:
                kwargs["tools"] = tool_schemas
            try:
                response = await self._client.messages.create(**kwargs)
            except anthropic.APIError as exc:
                raise BackendError(str(exc)) from exc

            text = _text_of(response.content)
            if text:
                if full_text and not full_text.endswith("\n"):
                    full_text += "\n\n"
                full_text += text
                if hooks.on_message:
                    await hooks.on_message(text)

            tool_use_blocks = [b for b in response.content if b.type == "tool_use"]
            if not tool_use_blocks:
                return full_text

            logger.info(
                "Turn %d: %d tool call(s): %s",
                turn,
                len(tool_use_blocks),
                ", ".join(b.name for b in tool_use_blocks),
            )

            loop_messages.append({
                "role": "assistant",
                "content": _serialize_content(response.content),
            })

            tool_results: list[dict[str, Any]] = []
            for block in tool_use_blocks:
                arguments = dict(block.input or {})
                if hooks.on_tool_call:
                    await hooks.on_tool_call(
                        ToolCall(name=block.name, arguments=arguments, turn=turn)
                    )

                result = await tools.execute(block.name, arguments, context=context)

                if hooks.on_tool_result:
                    await hooks.on_tool_result(
                        ToolOutcome(
                            name=block.name,
                            result=result.to_payload(),
                            success=result.success,
                            turn=turn,
                        )
                    )
                tool_results.append({
                    "type": "tool_result",
                    "tool_use_id": block.id,
                    "content": result.to_content(),
                    "is_error": not result.success,
                })

            loop_messages.append({"role": "user", "content": tool_results})

        logger.warning("Hit max tool rounds (%d)", self._max_rounds)
        return full_text

    async def close(self) -> None:
        await self._client.close()

    def _request_kwargs(
        self, messages: list[dict[str, Any]], params: SamplingParams
    ) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": self._model,
            "max_tokens": params.max_tokens,
            "temperature": params.temperature,
            "messages": messages,
        }
        if params.system:
            kwargs["system"] = params.system
        return kwargs
