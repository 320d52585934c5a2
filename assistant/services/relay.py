"""Turn stream relay: one streaming backend call per round.

The relay re-serializes the conversation for the backend, opens a single
stream and re-emits what comes back as normalized stream events. It never runs
tools and never touches the conversation store.
"""

import json
from collections.abc import AsyncIterator, Sequence
from contextlib import aclosing
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol

from assistant.clients.anthropic import AnthropicClient, AnthropicConfig, get_anthropic_client
from assistant.models.events import (
    TERMINAL_KINDS,
    MessageAnnotation,
    MessageComplete,
    MessageDelta,
    StreamEnd,
    StreamError,
    StreamEvent,
    ToolCallComplete,
    ToolCallDelta,
    UnknownEvent,
)
from assistant.models.items import (
    Annotation,
    AssistantMessage,
    ConversationItem,
    SystemMessage,
    ToolCallRequest,
    ToolCallResult,
    UserMessage,
    new_call_id,
)
from assistant.tools.base import ToolSchema
from assistant.utils.errors import TransportError
from assistant.utils.logging import get_logger

logger = get_logger(__name__)


def get_system_prompt() -> str:
    """Base instructions for the assistant."""
    return (
        "You are a helpful personal assistant. You help the user manage their tasks, contacts and notes, "
        "and answer everyday questions.\n\n"
        "Use the available tools to look things up or make changes instead of guessing. "
        "If a tool reports an error, explain what went wrong and how the user can fix it.\n\n"
        f"Current date and time: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}"
    )


class StreamRelay(Protocol):
    """Anything that can stream one round for a conversation history."""

    def stream(self, items: Sequence[ConversationItem], tools: Sequence[ToolSchema]) -> AsyncIterator[StreamEvent]:
        ...


def normalize_items(items: Sequence[ConversationItem]) -> list[ConversationItem]:
    """Return copies of ``items`` with every tool call carrying a ``call_id``.

    Requests fall back to their ``id``, then to a fresh identifier. Results
    without a ``call_id`` are paired with the oldest unanswered request. A
    result that references no request is logged and forwarded unchanged.
    """
    normalized: list[ConversationItem] = []
    known_calls: set[str] = set()
    unanswered: list[str] = []

    for item in items:
        if isinstance(item, ToolCallRequest):
            call_id = item.call_id or item.id or new_call_id()
            if call_id != item.call_id:
                logger.warning(f"Protocol anomaly: tool call {item.id} had no call_id, using {call_id}")
                item = item.model_copy(update={"call_id": call_id})
            known_calls.add(call_id)
            unanswered.append(call_id)

        elif isinstance(item, ToolCallResult):
            call_id = item.call_id
            if call_id is None and unanswered:
                call_id = unanswered[0]
                logger.warning(f"Protocol anomaly: tool result {item.id} had no call_id, pairing with {call_id}")
                item = item.model_copy(update={"call_id": call_id})
            elif call_id is None:
                call_id = new_call_id()
                logger.warning(f"Protocol anomaly: tool result {item.id} has no call_id and nothing to pair with")
                item = item.model_copy(update={"call_id": call_id})

            if call_id not in known_calls:
                logger.warning(f"Protocol anomaly: tool result {item.id} references unknown call {call_id}")
            elif call_id in unanswered:
                unanswered.remove(call_id)

        normalized.append(item)

    return normalized


def _tool_input(request: ToolCallRequest) -> dict[str, Any]:
    if not request.arguments_json.strip():
        return {}
    try:
        parsed = json.loads(request.arguments_json)
    except json.JSONDecodeError:
        logger.warning(f"Tool call {request.call_id} has malformed arguments, sending empty input")
        return {}
    return parsed if isinstance(parsed, dict) else {}


def _result_content(result: ToolCallResult) -> str:
    if isinstance(result.output_json, str):
        return result.output_json
    return json.dumps(result.output_json)


MISSING_RESULT = {"error": "No result was recorded for this tool call", "type": "missing_result"}


def _result_block(call_id: str | None, content: str, is_error: bool) -> dict[str, Any]:
    return {"type": "tool_result", "tool_use_id": call_id, "content": content, "is_error": is_error}


def to_backend_messages(items: Sequence[ConversationItem]) -> tuple[list[str], list[dict[str, Any]]]:
    """Convert conversation items to Anthropic messages.

    Every ``tool_use`` is answered before the conversation moves on. A request
    still unanswered when the next user message or model round starts gets its
    late result pulled forward, or an error ``tool_result`` if it has none. The
    items themselves are left untouched.

    Returns:
        The system item texts, and the messages with consecutive same-role
        content merged into one message
    """
    normalized = normalize_items(items)
    system_texts: list[str] = []
    messages: list[dict[str, Any]] = []

    results: dict[str, ToolCallResult] = {}
    for item in normalized:
        if isinstance(item, ToolCallResult) and item.call_id:
            results.setdefault(item.call_id, item)

    unanswered: dict[str, ToolCallRequest] = {}
    answered: set[str] = set()

    def append(role: str, block: dict[str, Any]) -> None:
        if messages and messages[-1]["role"] == role:
            messages[-1]["content"].append(block)
        else:
            messages.append({"role": role, "content": [block]})

    def answer_pending() -> None:
        for call_id in unanswered:
            late = results.get(call_id)
            if late is not None:
                append("user", _result_block(call_id, _result_content(late), late.status == "failed"))
            else:
                logger.warning(f"Tool call {call_id} has no result, sending an error result in its place")
                append("user", _result_block(call_id, json.dumps(MISSING_RESULT), True))
            answered.add(call_id)
        unanswered.clear()

    def add_block(role: str, block: dict[str, Any]) -> None:
        # A new model round or user message closes the previous tool round
        if unanswered and (role == "user" or (messages and messages[-1]["role"] == "user")):
            answer_pending()
        append(role, block)

    for item in normalized:
        if isinstance(item, SystemMessage):
            system_texts.append(item.text)
        elif isinstance(item, UserMessage):
            add_block("user", {"type": "text", "text": item.text})
        elif isinstance(item, AssistantMessage):
            # The API rejects empty text blocks
            if item.text:
                add_block("assistant", {"type": "text", "text": item.text})
        elif isinstance(item, ToolCallRequest):
            add_block(
                "assistant",
                {"type": "tool_use", "id": item.call_id, "name": item.tool_name, "input": _tool_input(item)},
            )
            unanswered[item.call_id] = item
        elif isinstance(item, ToolCallResult):
            if item.call_id in answered:
                continue
            unanswered.pop(item.call_id, None)
            answered.add(item.call_id)
            append("user", _result_block(item.call_id, _result_content(item), item.status == "failed"))

    return system_texts, messages


@dataclass
class _Block:
    type: str
    item_id: str | None
    name: str | None = None
    text: str = ""
    arguments: str = ""


@dataclass
class UpstreamEventDecoder:
    """Folds raw Anthropic stream events into normalized stream events.

    Tracks content blocks by index so deltas can be tagged with the item they
    belong to.
    """

    message_id: str | None = None
    stop_reason: str | None = None
    usage: dict[str, int] = field(default_factory=dict)
    finished: bool = False
    _blocks: dict[int, _Block] = field(default_factory=dict)

    def decode(self, raw: dict[str, Any]) -> list[StreamEvent]:
        event_type = raw.get("type")

        if event_type == "message_start":
            message = raw.get("message") or {}
            self.message_id = message.get("id")
            self._add_usage(message.get("usage"))
            return []

        if event_type == "content_block_start":
            return self._start_block(raw.get("index", 0), raw.get("content_block") or {}, raw)

        if event_type == "content_block_delta":
            return self._delta(raw.get("index", 0), raw.get("delta") or {}, raw)

        if event_type == "content_block_stop":
            return self._stop_block(raw.get("index", 0), raw)

        if event_type == "message_delta":
            self.stop_reason = (raw.get("delta") or {}).get("stop_reason") or self.stop_reason
            self._add_usage(raw.get("usage"))
            return []

        if event_type == "message_stop":
            self.finished = True
            return [StreamEnd(stop_reason=self.stop_reason, usage=dict(self.usage))]

        if event_type == "ping":
            return []

        if event_type == "error":
            error = raw.get("error") or {}
            self.finished = True
            return [StreamError(message=error.get("message", "Backend stream error"), code=error.get("type"))]

        logger.warning(f"Forwarding unknown upstream event type: {event_type}")
        return [UnknownEvent(type=str(event_type), data=raw)]

    def _start_block(self, index: int, block: dict[str, Any], raw: dict[str, Any]) -> list[StreamEvent]:
        block_type = block.get("type")

        if block_type == "text":
            item_id = f"{self.message_id}_{index}" if self.message_id else None
            self._blocks[index] = _Block(type="text", item_id=item_id, text=block.get("text") or "")
            if block.get("text"):
                return [MessageDelta(item_id=item_id, index=index, text=block["text"])]
            return []

        if block_type == "tool_use":
            call_id = block.get("id")
            self._blocks[index] = _Block(type="tool_use", item_id=call_id, name=block.get("name"))
            return [ToolCallDelta(item_id=call_id, index=index, call_id=call_id, name=block.get("name"))]

        self._blocks[index] = _Block(type=str(block_type), item_id=None)
        return [UnknownEvent(type=f"content_block_start.{block_type}", data=raw)]

    def _delta(self, index: int, delta: dict[str, Any], raw: dict[str, Any]) -> list[StreamEvent]:
        block = self._blocks.get(index)
        delta_type = delta.get("type")
        item_id = block.item_id if block else None

        if delta_type == "text_delta":
            if block:
                block.text += delta.get("text", "")
            return [MessageDelta(item_id=item_id, index=index, text=delta.get("text", ""))]

        if delta_type == "input_json_delta":
            fragment = delta.get("partial_json", "")
            if block:
                block.arguments += fragment
            return [ToolCallDelta(item_id=item_id, index=index, call_id=item_id, arguments_delta=fragment)]

        if delta_type == "citations_delta":
            annotation = Annotation.model_validate(delta.get("citation") or {})
            return [MessageAnnotation(item_id=item_id, index=index, annotation=annotation)]

        return [UnknownEvent(type=f"content_block_delta.{delta_type}", data=raw)]

    def _stop_block(self, index: int, raw: dict[str, Any]) -> list[StreamEvent]:
        block = self._blocks.get(index)
        if block is None:
            logger.warning(f"Protocol anomaly: content_block_stop for unknown block {index}")
            return [UnknownEvent(type="content_block_stop", data=raw)]

        if block.type == "text":
            return [MessageComplete(item_id=block.item_id, index=index, text=block.text)]

        if block.type == "tool_use":
            return [
                ToolCallComplete(
                    item_id=block.item_id,
                    index=index,
                    call_id=block.item_id,
                    name=block.name,
                    arguments=block.arguments,
                )
            ]

        return [UnknownEvent(type=f"content_block_stop.{block.type}", data=raw)]

    def _add_usage(self, usage: dict[str, Any] | None) -> None:
        for key in ("input_tokens", "output_tokens"):
            value = (usage or {}).get(key)
            if isinstance(value, int):
                self.usage[key] = self.usage.get(key, 0) + value


class TurnStreamRelay:
    """Relays one round between the conversation history and the model backend."""

    def __init__(self, client: AnthropicClient | None = None, config: AnthropicConfig | None = None):
        """Initialize the relay.

        Args:
            client: Anthropic client (defaults to the shared instance, created lazily)
            config: Client configuration used if the shared instance has to be created
        """
        self._client = client
        self._config = config

    @property
    def client(self) -> AnthropicClient:
        if self._client is None:
            self._client = get_anthropic_client(self._config)
        return self._client

    async def stream(
        self, items: Sequence[ConversationItem], tools: Sequence[ToolSchema]
    ) -> AsyncIterator[StreamEvent]:
        """Stream one round.

        Yields normalized events in arrival order. The last event is always
        ``stream.end`` or ``stream.error``; a dropped connection produces a
        single ``stream.error`` rather than a silent stop.
        """
        system_texts, messages = to_backend_messages(items)
        system_prompt = "\n\n".join([get_system_prompt(), *system_texts])
        tool_dicts = [tool.model_dump() for tool in tools]

        decoder = UpstreamEventDecoder()
        try:
            upstream = self.client.stream_message(messages, system_prompt, tools=tool_dicts)
            async with aclosing(upstream) as raw_events:
                async for raw in raw_events:
                    for event in decoder.decode(raw):
                        yield event
                        if event.kind in TERMINAL_KINDS:
                            return
        except TransportError as e:
            logger.error(f"Backend stream failed: {e.message}")
            yield StreamError(message=e.message, code=e.code)
            return

        if not decoder.finished:
            logger.error("Backend stream closed before message_stop")
            yield StreamError(message="Stream closed before the round finished", code="incomplete_stream")
