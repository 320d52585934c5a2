"""Base types and helpers for tools."""

import json
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel

from assistant.utils.errors import MalformedArguments, ToolError


class ToolSchema(BaseModel):
    """Tool description sent to the model backend."""

    name: str
    description: str
    input_schema: dict[str, Any]


class EmptyInput(BaseModel):
    """Input schema for tools that take no parameters."""


@dataclass
class ToolOutcome:
    """Result of invoking a tool. Failures carry the error instead of raising."""

    tool_name: str
    result: Any = None
    error: ToolError | None = None

    @property
    def success(self) -> bool:
        return self.error is None

    @property
    def output(self) -> Any:
        """The JSON value recorded as the tool call's output."""
        return self.error.to_payload() if self.error else self.result

    @classmethod
    def failure(cls, tool_name: str, error: ToolError) -> "ToolOutcome":
        return cls(tool_name=tool_name, error=error)


def parse_arguments(raw: str | None, tool_name: str | None = None) -> dict[str, Any]:
    """Parse a tool call's accumulated argument buffer.

    An empty buffer means no arguments.

    Raises:
        MalformedArguments: If the buffer isn't a JSON object
    """
    if raw is None or not raw.strip():
        return {}

    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as e:
        raise MalformedArguments(f"Arguments are not valid JSON: {e.msg}", tool_name) from e

    if not isinstance(parsed, dict):
        raise MalformedArguments(f"Arguments must be a JSON object, got {type(parsed).__name__}", tool_name)

    return parsed
