"""Error types raised across the turn engine."""

from typing import Any


class AssistantError(Exception):
    """Base class for assistant errors."""

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        self.code = code

    def to_dict(self) -> dict[str, Any]:
        """Return the error as a JSON-serializable dictionary."""
        return {"error_type": self.__class__.__name__, "message": self.message, "code": self.code}


class TransportError(AssistantError):
    """The relay call failed to establish or dropped mid-stream."""


class ConversationBusyError(AssistantError):
    """A turn is already running for the conversation."""


class ToolError(AssistantError):
    """Base class for errors local to a single tool call.

    These never abort a turn; they become the output of a failed tool result
    so the model can see them.
    """

    kind = "tool_error"

    def __init__(self, message: str, tool_name: str | None = None):
        super().__init__(message, code=self.kind)
        self.tool_name = tool_name

    def to_payload(self) -> dict[str, Any]:
        """Payload stored as the output of the failed tool result."""
        payload: dict[str, Any] = {"error": self.message, "type": self.kind}
        if self.tool_name:
            payload["tool"] = self.tool_name
        return payload


class UnknownTool(ToolError):
    """The model requested a tool that is not registered."""

    kind = "unknown_tool"


class ToolExecutionError(ToolError):
    """The tool's collaborator failed, timed out or returned malformed data."""

    kind = "tool_execution_error"


class MalformedArguments(ToolError):
    """Tool arguments are not valid JSON or do not match the tool's schema."""

    kind = "malformed_arguments"
