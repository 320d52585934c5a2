"""Tests for the streaming Anthropic client."""

from unittest.mock import AsyncMock, Mock, patch

import httpx
import pytest
from anthropic import APIConnectionError

from assistant.clients.anthropic import AnthropicClient, AnthropicConfig, estimate_tokens
from assistant.utils.errors import TransportError


class FakeEvent:
    def __init__(self, data):
        self.data = data

    def model_dump(self):
        return dict(self.data)


class FakeStream:
    """Async-iterable stand-in for the SDK's raw event stream."""

    def __init__(self, events, error: Exception | None = None):
        self.events = [FakeEvent(event) for event in events]
        self.error = error
        self.closed = False

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for event in self.events:
            yield event
        if self.error:
            raise self.error

    async def close(self):
        self.closed = True


def make_client(create: AsyncMock, **config) -> AnthropicClient:
    sdk = Mock()
    sdk.messages.create = create
    return AnthropicClient(config=AnthropicConfig(retry_delay=0, **config), client=sdk)


def connection_error() -> APIConnectionError:
    return APIConnectionError(request=httpx.Request("POST", "https://api.anthropic.com/v1/messages"))


class TestTokenEstimate:
    """Tests for token estimation."""

    def test_uses_tokenizer(self):
        tokenizer = Mock()
        tokenizer.encode.return_value = ["token"] * 500
        assert estimate_tokens("Short message", tokenizer) == 500

    def test_fallback_without_tokenizer(self):
        with patch("assistant.clients.anthropic._get_tokenizer", return_value=None):
            assert estimate_tokens("a" * 4000) == 1000


class TestClientConstruction:
    """Tests for client setup."""

    def test_requires_api_key(self):
        with patch.dict("os.environ", {}, clear=True):
            with pytest.raises(ValueError, match="ANTHROPIC_API_KEY"):
                AnthropicClient()

    def test_api_key_from_environment(self):
        with patch.dict("os.environ", {"ANTHROPIC_API_KEY": "test-key"}):
            client = AnthropicClient()
        assert client.client.max_retries == 0


class TestStreamMessage:
    """Tests for opening and reading a stream."""

    @pytest.mark.asyncio
    async def test_yields_raw_events_and_closes(self):
        stream = FakeStream([{"type": "message_start"}, {"type": "message_stop"}])
        create = AsyncMock(return_value=stream)
        client = make_client(create)

        events = [event async for event in client.stream_message([], "system", tools=[{"name": "t"}])]

        assert events == [{"type": "message_start"}, {"type": "message_stop"}]
        assert stream.closed
        kwargs = create.call_args.kwargs
        assert kwargs["stream"] is True
        assert kwargs["tool_choice"] == {"type": "auto", "disable_parallel_tool_use": True}

    @pytest.mark.asyncio
    async def test_no_tool_choice_without_tools(self):
        create = AsyncMock(return_value=FakeStream([]))
        [event async for event in make_client(create).stream_message([], "system")]

        assert "tool_choice" not in create.call_args.kwargs

    @pytest.mark.asyncio
    async def test_connection_failures_are_retried(self):
        create = AsyncMock(side_effect=[connection_error(), FakeStream([{"type": "message_stop"}])])

        events = [event async for event in make_client(create, max_retries=3).stream_message([], "system")]

        assert events == [{"type": "message_stop"}]
        assert create.await_count == 2

    @pytest.mark.asyncio
    async def test_exhausted_retries_raise_transport_error(self):
        create = AsyncMock(side_effect=connection_error())

        with pytest.raises(TransportError):
            [event async for event in make_client(create, max_retries=2).stream_message([], "system")]
        assert create.await_count == 2

    @pytest.mark.asyncio
    async def test_dropped_stream_raises_transport_error(self):
        stream = FakeStream([{"type": "message_start"}], error=httpx.ReadError("connection reset"))
        client = make_client(AsyncMock(return_value=stream))

        received = []
        with pytest.raises(TransportError, match="Stream dropped"):
            async for event in client.stream_message([], "system"):
                received.append(event)

        assert received == [{"type": "message_start"}]
        assert stream.closed
