"""Application configuration loaded from environment variables."""

import os
from dataclasses import dataclass, field

from assistant.clients.anthropic import AnthropicConfig
from assistant.services.orchestrator import OrchestratorConfig


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {value!r}") from e


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    try:
        return float(value)
    except ValueError as e:
        raise ValueError(f"{name} must be a number, got {value!r}") from e


@dataclass
class AppConfig:
    """Top-level service configuration."""

    anthropic: AnthropicConfig = field(default_factory=AnthropicConfig)
    orchestrator: OrchestratorConfig = field(default_factory=OrchestratorConfig)
    tool_timeout_seconds: float = 30.0
    max_message_tokens: int = 1000
    session_timeout_minutes: int = 60
    log_level: str = "INFO"


def load_config() -> AppConfig:
    """Build the configuration from the environment.

    Raises:
        ValueError: If a numeric variable can't be parsed
    """
    anthropic = AnthropicConfig(
        model=os.getenv("ANTHROPIC_MODEL", AnthropicConfig.model),
        max_tokens=_env_int("ANTHROPIC_MAX_TOKENS", AnthropicConfig.max_tokens),
        temperature=_env_float("ANTHROPIC_TEMPERATURE", AnthropicConfig.temperature),
        requests_per_minute=_env_int("REQUESTS_PER_MINUTE", AnthropicConfig.requests_per_minute),
        tokens_per_minute=_env_int("TOKENS_PER_MINUTE", AnthropicConfig.tokens_per_minute),
    )

    max_rounds = _env_int("MAX_ROUNDS_PER_TURN", OrchestratorConfig.max_rounds)
    if max_rounds < 1:
        raise ValueError("MAX_ROUNDS_PER_TURN must be at least 1")

    return AppConfig(
        anthropic=anthropic,
        orchestrator=OrchestratorConfig(max_rounds=max_rounds),
        tool_timeout_seconds=_env_float("TOOL_TIMEOUT_SECONDS", 30.0),
        max_message_tokens=_env_int("MAX_MESSAGE_TOKENS", 1000),
        session_timeout_minutes=_env_int("SESSION_TIMEOUT_MINUTES", 60),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )
