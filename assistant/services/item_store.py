"""Append-only conversation item store."""

from collections.abc import Iterable

from assistant.models.items import (
    Annotation,
    AssistantMessage,
    ConversationItem,
    SystemMessage,
    ToolCallRequest,
    ToolCallResult,
)
from assistant.utils.logging import get_logger

logger = get_logger(__name__)


class ConversationItemStore:
    """Ordered, append-only log of conversation items.

    Items still streaming in live in a separate draft area, keyed by their
    stream identifier, so that deltas for one item coalesce into a single
    entry. Drafts are committed to the log once the round finishes, or
    discarded if it fails.
    """

    def __init__(self, conversation_id: str | None = None):
        """Initialize an empty store.

        Args:
            conversation_id: Owning conversation, used in log messages only
        """
        self.conversation_id = conversation_id
        self._items: list[ConversationItem] = []
        self._drafts: dict[str, ConversationItem] = {}
        self._requests: dict[str, ToolCallRequest] = {}

    def __len__(self) -> int:
        return len(self._items)

    def append(self, item: ConversationItem) -> ConversationItem:
        """Append an item to the log and return the stored item.

        A tool result marks its paired request completed in the same step. A
        result with no pending request is still stored, as ``orphaned``.
        """
        if isinstance(item, ToolCallResult):
            item = self._pair_result(item)
        elif isinstance(item, ToolCallRequest) and item.call_id:
            if item.call_id in self._requests:
                logger.warning(f"Protocol anomaly: duplicate call_id {item.call_id} in {self.conversation_id}")
            else:
                self._requests[item.call_id] = item

        self._items.append(item)
        return item

    def _pair_result(self, result: ToolCallResult) -> ToolCallResult:
        request = self._requests.get(result.call_id) if result.call_id else None

        if request is None or request.status != "pending":
            logger.warning(
                f"Protocol anomaly: tool result {result.id} references no pending request "
                f"(call_id={result.call_id}) in {self.conversation_id}"
            )
            return result.model_copy(update={"status": "orphaned"})

        request.status = "completed"
        return result

    def all(self) -> list[ConversationItem]:
        """Return every committed item in append order."""
        return list(self._items)

    def displayable(self, include_drafts: bool = False) -> list[ConversationItem]:
        """Return committed items minus system items, optionally followed by drafts."""
        items = [*self._items, *self._drafts.values()] if include_drafts else self._items
        return [item for item in items if not isinstance(item, SystemMessage)]

    def get_request(self, call_id: str) -> ToolCallRequest | None:
        """Find a committed tool call request by call id."""
        return self._requests.get(call_id)

    def has_call_id(self, call_id: str) -> bool:
        """Check whether a request with this call id was already committed."""
        return call_id in self._requests

    def pending_requests(self) -> list[ToolCallRequest]:
        """Committed tool call requests still waiting for a result, in log order."""
        return [item for item in self._items if isinstance(item, ToolCallRequest) and item.status == "pending"]

    def attach_annotations(self, item_id: str, annotations: Iterable[Annotation]) -> bool:
        """Attach late annotations to an assistant message, committed or draft.

        Returns:
            True if the message was found
        """
        for item in [*self._drafts.values(), *reversed(self._items)]:
            if isinstance(item, AssistantMessage) and item.id == item_id:
                item.annotations.extend(annotations)
                return True
        logger.warning(f"No assistant message {item_id} to annotate")
        return False

    # Drafts

    def get_draft(self, key: str) -> ConversationItem | None:
        return self._drafts.get(key)

    def upsert_draft(self, key: str, item: ConversationItem) -> ConversationItem:
        """Create or replace the in-progress item for ``key``, keeping its position."""
        self._drafts[key] = item
        return item

    def drafts(self) -> list[ConversationItem]:
        return list(self._drafts.values())

    def commit_drafts(self) -> list[ConversationItem]:
        """Append all drafts to the log in the order they were first seen.

        Tool call requests whose call id is already in the log are dropped,
        so a replayed call is never stored (or executed) twice.
        """
        committed: list[ConversationItem] = []
        for item in self._drafts.values():
            if isinstance(item, ToolCallRequest) and item.call_id and item.call_id in self._requests:
                logger.warning(f"Protocol anomaly: dropping replayed tool call {item.call_id}")
                continue
            committed.append(self.append(item))

        self._drafts.clear()
        return committed

    def discard_drafts(self) -> int:
        """Drop all drafts. Returns how many were dropped."""
        count = len(self._drafts)
        if count:
            logger.info(f"Discarding {count} in-progress items for {self.conversation_id}")
        self._drafts.clear()
        return count
