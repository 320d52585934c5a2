"""Persisted message log, one append-only list per conversation."""

from collections import defaultdict
from datetime import UTC, datetime
from typing import Literal

from cuid2 import cuid_wrapper
from pydantic import BaseModel, Field

cuid = cuid_wrapper()


class StoredMessage(BaseModel):
    """A persisted chat message."""

    id: str = Field(default_factory=cuid)
    conversation_id: str
    role: Literal["user", "assistant"]
    content: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class InMemoryMessageLog:
    """Message log kept in process memory."""

    def __init__(self):
        self._messages: dict[str, list[StoredMessage]] = defaultdict(list)

    async def append(self, conversation_id: str, role: Literal["user", "assistant"], content: str) -> StoredMessage:
        message = StoredMessage(conversation_id=conversation_id, role=role, content=content)
        self._messages[conversation_id].append(message)
        return message

    async def list(self, conversation_id: str) -> list[StoredMessage]:
        """Messages of a conversation, oldest first."""
        return list(self._messages.get(conversation_id, []))


message_log = InMemoryMessageLog()
