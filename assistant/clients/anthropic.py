"""Streaming Anthropic API client with rate limiting and error handling."""

import asyncio
import os
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, TypeVar

import httpx
import tiktoken
from anthropic import APIError, AsyncAnthropic
from limits import parse
from limits.storage import MemoryStorage
from limits.strategies import MovingWindowRateLimiter

from assistant.utils.errors import TransportError
from assistant.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass
class AnthropicConfig:
    """Configuration for Anthropic API client."""

    model: str = "claude-3-5-sonnet-20241022"
    max_tokens: int = 1024
    temperature: float = 0.1
    max_retries: int = 3
    retry_delay: float = 1.0

    requests_per_minute: int = 50
    tokens_per_minute: int = 40_000


@lru_cache(maxsize=1)
def _get_tokenizer() -> tiktoken.Encoding | None:
    try:
        # Close approximation for Claude
        return tiktoken.encoding_for_model("gpt-4")
    except Exception as e:
        logger.warning(f"Tokenizer unavailable, falling back to character estimate: {e}")
        return None


def estimate_tokens(text: str, tokenizer: tiktoken.Encoding | None = None) -> int:
    """Estimate the token count of ``text``.

    Falls back to roughly 4 characters per token without a tokenizer.
    """
    encoder = tokenizer or _get_tokenizer()
    if encoder is None:
        return len(text) // 4
    return len(encoder.encode(text))


class AnthropicRateLimiter:
    """Moving-window request and token rate limiter."""

    def __init__(self, requests_per_minute: int = 50, tokens_per_minute: int = 40_000):
        """Initialize rate limiter.

        Args:
            requests_per_minute: Maximum requests per minute
            tokens_per_minute: Maximum tokens per minute
        """
        self.storage = MemoryStorage()
        self.limiter = MovingWindowRateLimiter(self.storage)

        self.request_limit = parse(f"{requests_per_minute}/minute")
        self.token_limit = parse(f"{tokens_per_minute}/minute")

    async def check_rate_limit(self, estimated_tokens: int, identifier: str = "anthropic") -> None:
        """Wait until a request of ``estimated_tokens`` fits within the limits."""
        logger.debug(f"Checking rate limit for {estimated_tokens} tokens, identifier: {identifier}")

        if not self.limiter.hit(self.request_limit, identifier):
            await self._wait_for_reset(self.request_limit, identifier, "Request")

        token_identifier = f"{identifier}_tokens"
        if not self.limiter.hit(self.token_limit, token_identifier, cost=estimated_tokens):
            await self._wait_for_reset(self.token_limit, token_identifier, "Token")

    async def _wait_for_reset(self, limit, identifier: str, label: str) -> None:
        window_stats = self.limiter.get_window_stats(limit, identifier)
        if window_stats:
            wait_time = max(0.0, window_stats.reset_time - time.time())
            if wait_time > 0:
                logger.warning(f"{label} rate limit exceeded, waiting {wait_time:.2f}s")
                await asyncio.sleep(wait_time)


class AnthropicClient:
    """Low-level streaming Anthropic API client."""

    def __init__(
        self,
        api_key: str | None = None,
        config: AnthropicConfig | None = None,
        client: AsyncAnthropic | None = None,
    ):
        """Initialize Anthropic client.

        Args:
            api_key: Anthropic API key (defaults to ANTHROPIC_API_KEY env var)
            config: Client configuration
            client: Pre-built SDK client, mainly for tests
        """
        self.config = config or AnthropicConfig()
        self.rate_limiter = AnthropicRateLimiter(self.config.requests_per_minute, self.config.tokens_per_minute)

        if client is not None:
            self.client = client
            return

        anthropic_api_key = api_key or os.getenv("ANTHROPIC_API_KEY")
        if not anthropic_api_key:
            raise ValueError("ANTHROPIC_API_KEY environment variable is required")

        # Retries are handled here, before the stream opens
        self.client = AsyncAnthropic(api_key=anthropic_api_key, max_retries=0)

    async def stream_message(
        self,
        messages: list[dict[str, Any]],
        system_prompt: str,
        tools: list[dict[str, Any]] | None = None,
        **kwargs,
    ) -> AsyncIterator[dict[str, Any]]:
        """Open one streaming request and yield the raw events as dictionaries.

        Args:
            messages: Conversation history in Anthropic message format
            system_prompt: System prompt for Claude
            tools: Tool definitions in Anthropic format
            **kwargs: Overrides for model, max_tokens and temperature

        Raises:
            TransportError: If the request can't be opened or the stream drops
        """
        estimated_tokens = self._estimate_request_tokens(messages, system_prompt)
        await self.rate_limiter.check_rate_limit(estimated_tokens)

        request_params: dict[str, Any] = {
            "model": kwargs.get("model", self.config.model),
            "max_tokens": kwargs.get("max_tokens", self.config.max_tokens),
            "temperature": kwargs.get("temperature", self.config.temperature),
            "system": system_prompt,
            "messages": messages,
            "stream": True,
        }
        if tools:
            request_params["tools"] = tools
            # The engine runs tool calls one at a time
            request_params["tool_choice"] = {"type": "auto", "disable_parallel_tool_use": True}

        logger.debug(
            f"Opening stream with model {request_params['model']}, "
            f"{len(messages)} messages, {len(tools) if tools else 0} tools"
        )
        try:
            stream = await self._request_with_retries(lambda: self.client.messages.create(**request_params))
        except APIError as e:
            raise TransportError(f"Failed to open stream: {e}", code=type(e).__name__) from e

        try:
            async for event in stream:
                yield event.model_dump() if hasattr(event, "model_dump") else dict(event)
        except (APIError, httpx.HTTPError) as e:
            raise TransportError(f"Stream dropped: {e}", code=type(e).__name__) from e
        finally:
            await stream.close()

    async def _request_with_retries(self, call: Callable[[], Awaitable[T]]) -> T:
        """Open the request, retrying rate limits and server errors.

        Only establishing the stream is retried; once events flow, failures
        surface to the caller.
        """
        attempts = max(1, self.config.max_retries)
        for attempt in range(attempts):
            try:
                return await call()

            except APIError as e:
                status_code = getattr(e, "status_code", None)
                last_attempt = attempt >= attempts - 1

                if status_code == 429 and not last_attempt:
                    retry_after = 60
                    response = getattr(e, "response", None)
                    if response is not None and hasattr(response, "headers"):
                        retry_after = int(response.headers.get("retry-after", 60))

                    if retry_after < 120:
                        logger.warning(f"Rate limited by backend, retrying in {retry_after}s")
                        await asyncio.sleep(retry_after)
                        continue

                elif (status_code is None or status_code >= 500) and not last_attempt:
                    # Connection failure or server error, retry with exponential backoff
                    delay = self.config.retry_delay * (2**attempt)
                    logger.warning(f"Backend request failed ({e}), retrying in {delay:.1f}s")
                    await asyncio.sleep(delay)
                    continue

                raise

        raise TransportError(f"Failed to open stream after {attempts} attempts", code="retries_exhausted")

    def _estimate_request_tokens(self, messages: list[dict[str, Any]], system_prompt: str) -> int:
        text_content = system_prompt
        for message in messages:
            content = message.get("content")
            if isinstance(content, str):
                text_content += content
            elif isinstance(content, list):
                for block in content:
                    if isinstance(block, dict):
                        text_content += str(block.get("text") or block.get("content") or block.get("input") or "")

        try:
            return estimate_tokens(text_content)
        except Exception:
            return len(text_content) // 4


_anthropic_client: AnthropicClient | None = None


def get_anthropic_client(config: AnthropicConfig | None = None) -> AnthropicClient:
    """Get or create Anthropic client instance."""
    global _anthropic_client
    if _anthropic_client is None:
        _anthropic_client = AnthropicClient(config=config)
    return _anthropic_client
