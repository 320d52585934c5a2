"""Request and response bodies for the conversation API."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from assistant.models.items import ConversationItem
from assistant.services.message_log import StoredMessage
from assistant.tools.base import ToolSchema


class ConversationRequest(BaseModel):
    """Request model for conversation endpoints."""

    message: str
    conversation_id: str | None = None
    # Fail with 409 instead of waiting for a running turn
    wait: bool = True


class ConversationResponse(BaseModel):
    """Response model for the blocking conversation endpoint."""

    response: str
    conversation_id: str
    status: Literal["complete", "errored"]
    rounds: int
    stop_reason: str | None = None
    error: str | None = None
    usage: dict[str, int] = Field(default_factory=dict)


class CreateConversationResponse(BaseModel):
    """Response model for creating a conversation."""

    conversation_id: str


class ConversationItemsResponse(BaseModel):
    """Displayable items of a conversation."""

    conversation_id: str
    items: list[ConversationItem]


class ConversationMessagesResponse(BaseModel):
    """Persisted message log of a conversation."""

    conversation_id: str
    messages: list[StoredMessage]


class TurnResponseRequest(BaseModel):
    """Request model for the raw relay endpoint."""

    items: list[ConversationItem]
    tools: list[ToolSchema] | None = None


class HealthResponse(BaseModel):
    """Response model for health check endpoint."""

    status: str
    timestamp: datetime
    version: str
    sessions: int = 0
