"""Conversation item models.

A conversation is an ordered log of items. Tool call requests and results are
paired by ``call_id``.
"""

from typing import Annotated, Any, Literal

from cuid2 import cuid_wrapper
from pydantic import BaseModel, Field, TypeAdapter

cuid = cuid_wrapper()

CallStatus = Literal["pending", "completed", "failed"]
ResultStatus = Literal["completed", "failed", "orphaned"]


def new_item_id() -> str:
    """Generate a new item identifier."""
    return f"item_{cuid()}"


def new_call_id() -> str:
    """Generate a new call identifier for a tool call that arrived without one."""
    return f"call_{cuid()}"


class Annotation(BaseModel):
    """Citation or other annotation attached to assistant text."""

    type: str = "citation"

    class Config:
        extra = "allow"  # Keep whatever the backend attaches


class UserMessage(BaseModel):
    """Text typed by the user."""

    type: Literal["user_message"] = "user_message"
    id: str = Field(default_factory=new_item_id)
    text: str


class AssistantMessage(BaseModel):
    """Text produced by the model."""

    type: Literal["assistant_message"] = "assistant_message"
    id: str = Field(default_factory=new_item_id)
    text: str = ""
    annotations: list[Annotation] = Field(default_factory=list)


class SystemMessage(BaseModel):
    """Context injected for the model only, never displayed."""

    type: Literal["system_message"] = "system_message"
    id: str = Field(default_factory=new_item_id)
    text: str


class ToolCallRequest(BaseModel):
    """A model-issued request to run a tool.

    ``arguments_json`` stays an opaque string while it streams in; it is only
    parsed when the tool is about to run.
    """

    type: Literal["tool_call"] = "tool_call"
    id: str = Field(default_factory=new_item_id)
    call_id: str | None = None
    tool_name: str = ""
    arguments_json: str = ""
    status: CallStatus = "pending"


class ToolCallResult(BaseModel):
    """Output of a tool call, paired to its request by ``call_id``."""

    type: Literal["tool_call_output"] = "tool_call_output"
    id: str = Field(default_factory=new_item_id)
    call_id: str | None = None
    tool_name: str | None = None
    output_json: Any = None
    status: ResultStatus = "completed"


ConversationItem = Annotated[
    UserMessage | AssistantMessage | SystemMessage | ToolCallRequest | ToolCallResult,
    Field(discriminator="type"),
]

conversation_items_adapter: TypeAdapter[list[ConversationItem]] = TypeAdapter(list[ConversationItem])
