"""Conversation session state."""

import asyncio
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from assistant.services.item_store import ConversationItemStore
from assistant.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class ConversationSession:
    """State owned by one conversation.

    The item store belongs to this session alone; turns on it are serialized
    by ``lock``.
    """

    conversation_id: str
    store: ConversationItemStore = field(init=False)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    context_loaded: bool = False
    turn_count: int = 0
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    last_activity: datetime = field(default_factory=lambda: datetime.now(UTC))

    def __post_init__(self) -> None:
        self.store = ConversationItemStore(self.conversation_id)

    @property
    def busy(self) -> bool:
        """Whether a turn is currently running."""
        return self.lock.locked()

    def as_dict(self) -> dict[str, Any]:
        """Return the session as a dictionary."""
        return {
            "conversation_id": self.conversation_id,
            "items": len(self.store),
            "context_loaded": self.context_loaded,
            "turn_count": self.turn_count,
            "busy": self.busy,
            "created_at": self.created_at.isoformat(),
            "last_activity": self.last_activity.isoformat(),
        }

    def update_activity(self) -> None:
        """Update the last activity timestamp."""
        self.last_activity = datetime.now(UTC)

    def mark_context_loaded(self) -> None:
        """Record that system context was injected for this conversation."""
        logger.info(f"System context loaded for conversation {self.conversation_id}")
        self.context_loaded = True
        self.update_activity()
