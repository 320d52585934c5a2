"""Stream event models.

Relay events are normalized from the backend's raw stream. Turn events are
added by the orchestrator when it relays a turn to a client. Every event has a
``kind`` discriminator; on the wire it travels as ``{"event": kind, "data": ...}``.
"""

from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, TypeAdapter

from assistant.models.items import Annotation, AssistantMessage, ConversationItem


class MessageDelta(BaseModel):
    """A fragment of in-progress assistant text."""

    kind: Literal["message.delta"] = "message.delta"
    item_id: str | None = None
    index: int | None = None
    text: str


class MessageComplete(BaseModel):
    """An assistant text item is finished. ``text`` is the full text when known."""

    kind: Literal["message.complete"] = "message.complete"
    item_id: str | None = None
    index: int | None = None
    text: str | None = None


class MessageAnnotation(BaseModel):
    """An annotation for assistant text, possibly after the text completed."""

    kind: Literal["message.annotation"] = "message.annotation"
    item_id: str | None = None
    index: int | None = None
    annotation: Annotation


class ToolCallDelta(BaseModel):
    """A fragment of a streaming tool call's arguments."""

    kind: Literal["tool_call.delta"] = "tool_call.delta"
    item_id: str | None = None
    index: int | None = None
    call_id: str | None = None
    name: str | None = None
    arguments_delta: str = ""


class ToolCallComplete(BaseModel):
    """A tool call's arguments are fully streamed."""

    kind: Literal["tool_call.complete"] = "tool_call.complete"
    item_id: str | None = None
    index: int | None = None
    call_id: str | None = None
    name: str | None = None
    arguments: str | None = None


class StreamError(BaseModel):
    """The backend stream failed. Always the last event of a stream."""

    kind: Literal["stream.error"] = "stream.error"
    message: str
    code: str | None = None


class StreamEnd(BaseModel):
    """The backend finished the round."""

    kind: Literal["stream.end"] = "stream.end"
    stop_reason: str | None = None
    usage: dict[str, int] = Field(default_factory=dict)


class UnknownEvent(BaseModel):
    """An upstream event this relay does not understand, forwarded as-is."""

    kind: Literal["unknown"] = "unknown"
    type: str
    data: dict[str, Any] = Field(default_factory=dict)


StreamEvent = Annotated[
    MessageDelta
    | MessageComplete
    | MessageAnnotation
    | ToolCallDelta
    | ToolCallComplete
    | StreamError
    | StreamEnd
    | UnknownEvent,
    Field(discriminator="kind"),
]

TERMINAL_KINDS = frozenset({"stream.end", "stream.error"})


class ItemAppended(BaseModel):
    """An item was committed to the conversation log."""

    kind: Literal["item.appended"] = "item.appended"
    item: ConversationItem


class TurnCompleted(BaseModel):
    """The turn finished; ``message`` is the final assistant message."""

    kind: Literal["turn.complete"] = "turn.complete"
    message: AssistantMessage | None = None
    rounds: int
    stop_reason: str | None = None
    usage: dict[str, int] = Field(default_factory=dict)


class TurnErrored(BaseModel):
    """The turn ended in an error. Nothing further was appended for the failed round."""

    kind: Literal["turn.error"] = "turn.error"
    message: str
    rounds: int
    code: str | None = None


TurnEvent = Annotated[
    MessageDelta
    | MessageComplete
    | MessageAnnotation
    | ToolCallDelta
    | ToolCallComplete
    | StreamError
    | StreamEnd
    | UnknownEvent
    | ItemAppended
    | TurnCompleted
    | TurnErrored,
    Field(discriminator="kind"),
]

_turn_event_adapter: TypeAdapter[TurnEvent] = TypeAdapter(TurnEvent)

KNOWN_KINDS = frozenset(
    {
        "message.delta",
        "message.complete",
        "message.annotation",
        "tool_call.delta",
        "tool_call.complete",
        "stream.error",
        "stream.end",
        "unknown",
        "item.appended",
        "turn.complete",
        "turn.error",
    }
)


def decode_event(kind: str, data: dict[str, Any]) -> TurnEvent:
    """Decode a wire frame into an event.

    Unrecognized kinds come back as ``UnknownEvent`` instead of failing.

    Raises:
        ValidationError: If a known kind carries a malformed payload
    """
    if kind not in KNOWN_KINDS:
        return UnknownEvent(type=kind, data=data)
    return _turn_event_adapter.validate_python({**data, "kind": kind})


def encode_event(event: BaseModel) -> dict[str, Any]:
    """Encode an event as a ``{"event", "data"}`` frame body."""
    return {"event": event.kind, "data": event.model_dump(mode="json", exclude={"kind"})}
