"""Tool registry: the fixed catalog the agent can call during a tool loop."""

from __future__ import annotations

import inspect
import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from conduit.tools.base import ToolParams, ToolResult

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from conduit.context import RequestContext

logger = logging.getLogger(__name__)

_EMPTY_SCHEMA: dict[str, Any] = {"type": "object", "properties": {}}


@dataclass
class ToolSpec:
    """A registered tool and how to call it."""

    name: str
    description: str
    category: str
    handler: Callable[..., Awaitable[ToolResult]]
    params_model: type[ToolParams] | None = None
    accepts_context: bool = field(init=False)

    def __post_init__(self) -> None:
        self.accepts_context = "context" in inspect.signature(self.handler).parameters

    def schema(self) -> dict[str, Any]:
        """Messages-API tool definition."""
        if self.params_model is None:
            input_schema = dict(_EMPTY_SCHEMA)
        else:
            input_schema = self.params_model.model_json_schema()
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": input_schema,
        }

    def bind(
        self, arguments: dict[str, Any] | None, context: RequestContext | None
    ) -> dict[str, Any]:
        """Validate *arguments* into handler kwargs.

        Raises:
            ValidationError: when the arguments do not fit ``params_model``.
        """
        arguments = arguments or {}
        if self.params_model is None:
            kwargs = dict(arguments)
        else:
            kwargs = self.params_model.model_validate(arguments).model_dump()
        if context is not None and self.accepts_context:
            kwargs["context"] = context
        return kwargs


class ToolRegistry:
    """Name-to-tool catalog.

    Tools register with a decorator::

        @registry.tool(name="calculator", description="...", category="math",
                       params_model=CalculatorParams)
        async def calculator(expression: str) -> ToolResult:
            ...

    A handler that declares a ``context`` parameter receives the
    RequestContext of the request it runs for.
    """

    def __init__(self) -> None:
        self._tools: dict[str, ToolSpec] = {}

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def tool(
        self,
        *,
        name: str,
        description: str,
        category: str,
        params_model: type[ToolParams] | None = None,
    ) -> Callable:
        """Register the decorated async function under *name*."""

        def decorator(fn: Callable[..., Awaitable[ToolResult]]) -> Callable:
            if not inspect.iscoroutinefunction(fn):
                msg = f"Tool handler '{name}' must be an async function"
                raise TypeError(msg)
            if name in self._tools:
                msg = f"Tool '{name}' is already registered"
                raise ValueError(msg)
            self._tools[name] = ToolSpec(
                name=name,
                description=description,
                category=category,
                handler=fn,
                params_model=params_model,
            )
            return fn

        return decorator

    def get(self, name: str) -> ToolSpec | None:
        return self._tools.get(name)

    @property
    def tool_names(self) -> list[str]:
        """Registered names, in registration order."""
        return list(self._tools)

    def get_schemas(self) -> list[dict[str, Any]]:
        return [spec.schema() for spec in self._tools.values()]

    def categories(self) -> dict[str, list[str]]:
        """Tool names grouped by category, as advertised in service status."""
        grouped: dict[str, list[str]] = {}
        for spec in self._tools.values():
            grouped.setdefault(spec.category, []).append(spec.name)
        return grouped

    async def execute(
        self,
        name: str,
        arguments: dict[str, Any],
        context: RequestContext | None = None,
    ) -> ToolResult:
        """Run tool *name* and return its result.

        Never raises. Unknown tools, invalid arguments and handler faults
        all come back as a ToolResult carrying ``error``, so the model
        always gets something to read.
        """
        spec = self._tools.get(name)
        if spec is None:
            logger.warning("Model asked for unknown tool '%s'", name)
            return ToolResult(error=f"Unknown tool: {name}")

        request_id = context.request_id if context else "-"
        logger.info("Tool '%s' called for %s with %s", name, request_id, arguments)
        t0 = time.monotonic()
        try:
            result = await spec.handler(**spec.bind(arguments, context))
        except ValidationError as exc:
            logger.warning("Tool '%s' got invalid arguments: %s", name, exc)
            return ToolResult(error=f"Invalid arguments for '{name}': {exc.error_count()} error(s)")
        except Exception:
            logger.exception("Tool '%s' failed after %.2fs", name, time.monotonic() - t0)
            return ToolResult(error=f"Tool '{name}' failed. Check logs for details.")

        elapsed = time.monotonic() - t0
        if result.success:
            logger.info("Tool '%s' succeeded in %.2fs", name, elapsed)
        else:
            logger.warning("Tool '%s' returned error in %.2fs: %s", name, elapsed, result.error)
        return result


# Built-in tools register here on import of conduit.tools.
registry = ToolRegistry()
