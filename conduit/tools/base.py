"""Result and parameter types shared by every tool."""

import json
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel


@dataclass
class ToolResult:
    """Outcome of one tool call.

    Tools report failure by setting ``error`` rather than raising; the
    model reads the error like any other result.
    """

    data: dict[str, Any] | None = None
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.error is None

    def to_payload(self) -> dict[str, Any]:
        """Plain-dict form, as published with the completed round event."""
        if self.error:
            return {"error": self.error}
        return dict(self.data or {})

    def to_content(self) -> str:
        """JSON for a tool_result content block."""
        return json.dumps(self.to_payload(), default=str)


class ToolParams(BaseModel):
    """Base for tool argument models.

    Field descriptions end up in the tool's input schema, so write them
    for the model.
    """
