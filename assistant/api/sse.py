"""Server-sent event frames carrying ``{"event", "data"}`` JSON bodies."""

import json
from collections.abc import Iterable, Iterator
from typing import Any

from pydantic import BaseModel

from assistant.models.events import TurnEvent, decode_event
from assistant.models.events import encode_event as event_body

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def encode_frame(event: str, data: dict[str, Any]) -> str:
    """Encode one frame, terminated by a blank line."""
    return f"data: {json.dumps({'event': event, 'data': data}, ensure_ascii=False)}\n\n"


def encode_event(event: BaseModel) -> str:
    """Encode a stream or turn event as a frame."""
    body = event_body(event)
    return encode_frame(body["event"], body["data"])


def _parse_line(line: str) -> tuple[str, dict[str, Any]] | None:
    line = line.rstrip("\r\n")
    # Blank separators, keep-alive comments and other SSE fields
    if not line or line.startswith(":") or not line.startswith("data:"):
        return None

    payload = line[len("data:") :].strip()
    try:
        body = json.loads(payload)
    except json.JSONDecodeError as e:
        raise ValueError(f"Malformed event frame: {payload[:100]}") from e

    if not isinstance(body, dict) or not isinstance(body.get("event"), str):
        raise ValueError(f"Event frame is missing its event name: {payload[:100]}")

    data = body.get("data") or {}
    if not isinstance(data, dict):
        raise ValueError(f"Event frame data must be an object: {payload[:100]}")
    return body["event"], data


def iter_frames(lines: Iterable[str]) -> Iterator[tuple[str, dict[str, Any]]]:
    """Decode ``(event, data)`` pairs from SSE lines.

    Raises:
        ValueError: If a data line isn't a JSON ``{"event", "data"}`` object
    """
    for line in lines:
        frame = _parse_line(line)
        if frame is not None:
            yield frame


def decode_frames(lines: Iterable[str]) -> list[TurnEvent]:
    """Decode SSE lines into typed events."""
    return [decode_event(event, data) for event, data in iter_frames(lines)]
