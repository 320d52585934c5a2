"""Shared fixtures: a scripted relay and small tool sets."""

import asyncio
import itertools
import json
import time
from collections.abc import Iterable, Sequence
from typing import Any

import pytest
from langchain_core.tools import tool
from pydantic import BaseModel, Field

from assistant.models.events import (
    MessageComplete,
    MessageDelta,
    StreamEnd,
    StreamError,
    ToolCallComplete,
    ToolCallDelta,
)
from assistant.models.session import ConversationSession
from assistant.tools.registry import ToolsRegistry


class FakeRelay:
    """Relay that replays scripted rounds of stream events.

    Each call to ``stream`` consumes the next round. An exception in a round is
    raised at that point in the stream. Running out of rounds yields a stream
    error.
    """

    def __init__(self, rounds: Iterable[Sequence[Any]] = ()):
        self.rounds = [list(events) for events in rounds]
        self.calls: list[list[Any]] = []
        self.active = 0
        self.max_active = 0

    async def stream(self, items, tools):
        self.calls.append([item.model_copy(deep=True) for item in items])
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            events = self.rounds.pop(0) if self.rounds else [StreamError(message="No more scripted rounds")]
            for event in events:
                await asyncio.sleep(0)
                if isinstance(event, Exception):
                    raise event
                yield event
        finally:
            self.active -= 1


def text_round(text: str, item_id: str = "msg_1", usage: dict[str, int] | None = None) -> list[Any]:
    """A round where the model answers with plain text, streamed in two deltas."""
    half = len(text) // 2
    return [
        MessageDelta(item_id=item_id, index=0, text=text[:half]),
        MessageDelta(item_id=item_id, index=0, text=text[half:]),
        MessageComplete(item_id=item_id, index=0, text=text),
        StreamEnd(stop_reason="end_turn", usage=usage or {"input_tokens": 10, "output_tokens": 5}),
    ]


def tool_events(name: str, args: dict[str, Any], call_id: str | None, index: int = 0) -> list[Any]:
    """Stream events for one tool call, arguments split across two deltas."""
    arguments = json.dumps(args)
    half = len(arguments) // 2
    return [
        ToolCallDelta(item_id=call_id, index=index, call_id=call_id, name=name),
        ToolCallDelta(item_id=call_id, index=index, call_id=call_id, arguments_delta=arguments[:half]),
        ToolCallDelta(item_id=call_id, index=index, call_id=call_id, arguments_delta=arguments[half:]),
        ToolCallComplete(item_id=call_id, index=index, call_id=call_id, name=name, arguments=arguments),
    ]


def tool_round(name: str, args: dict[str, Any], call_id: str | None = "c1") -> list[Any]:
    """A round where the model makes a single tool call."""
    return [*tool_events(name, args, call_id), StreamEnd(stop_reason="tool_use", usage={"input_tokens": 20})]


class LocationInput(BaseModel):
    location: str = Field(..., description="Location to get weather for")


class TitleInput(BaseModel):
    title: str = Field(..., description="Title of the task")


class ToolRecorder:
    """Records tool invocations with start and end times."""

    def __init__(self):
        self.calls: list[dict[str, Any]] = []

    def start(self, name: str, args: dict[str, Any]) -> dict[str, Any]:
        call = {"name": name, "args": args, "start": time.monotonic(), "end": None}
        self.calls.append(call)
        return call

    def finish(self, call: dict[str, Any]) -> None:
        call["end"] = time.monotonic()


@pytest.fixture
def recorder():
    return ToolRecorder()


@pytest.fixture
def registry(recorder):
    """Registry with a fixed weather tool, a failing task tool and a slow lookup tool."""

    @tool("get_weather", description="Get the weather for a location", args_schema=LocationInput)
    async def get_weather(location: str) -> dict[str, Any]:
        call = recorder.start("get_weather", {"location": location})
        await asyncio.sleep(0.01)
        recorder.finish(call)
        return {"temp": 72, "unit": "F"}

    @tool("create_task", description="Create a task", args_schema=TitleInput)
    async def create_task(title: str) -> dict[str, Any]:
        call = recorder.start("create_task", {"title": title})
        recorder.finish(call)
        raise RuntimeError("task service unavailable")

    @tool("lookup", description="Slow lookup", args_schema=LocationInput)
    async def lookup(location: str) -> dict[str, Any]:
        call = recorder.start("lookup", {"location": location})
        await asyncio.sleep(0.02)
        recorder.finish(call)
        return {"found": location}

    return ToolsRegistry([get_weather, create_task, lookup], timeout=5.0)


@pytest.fixture
def session():
    return ConversationSession(conversation_id="conv_test")


@pytest.fixture
def id_factory():
    """Deterministic item ids."""
    counter = itertools.count(1)
    return lambda: f"item_{next(counter)}"
