"""Conversation service: runs user turns through the turn orchestrator."""

from collections.abc import AsyncIterator
from contextlib import aclosing

from assistant.clients.anthropic import estimate_tokens
from assistant.config import AppConfig, load_config
from assistant.models.events import TurnCompleted, TurnErrored, TurnEvent
from assistant.models.items import SystemMessage
from assistant.models.session import ConversationSession
from assistant.services.message_log import InMemoryMessageLog, message_log
from assistant.services.orchestrator import TurnOrchestrator, TurnResult
from assistant.services.relay import StreamRelay, TurnStreamRelay
from assistant.services.workspace import NoteService, workspace
from assistant.tools.registry import ToolsRegistry, get_tools_registry
from assistant.utils.errors import ConversationBusyError
from assistant.utils.logging import get_logger

logger = get_logger(__name__)


class ConversationService:
    """Service for handling conversational turns.

    Owns the collaborators shared by every conversation (relay, tool registry,
    notes, message log); per-conversation state lives in the session.
    """

    def __init__(
        self,
        relay: StreamRelay | None = None,
        registry: ToolsRegistry | None = None,
        notes: NoteService | None = None,
        log: InMemoryMessageLog | None = None,
        config: AppConfig | None = None,
    ):
        """Initialize conversation service.

        Args:
            relay: Turn stream relay (defaults to the Anthropic-backed relay, created lazily)
            registry: Tool registry (defaults to the shared registry)
            notes: Source of high-priority notes injected as system context
            log: Persisted message log
            config: Service configuration (defaults to the environment)
        """
        self.config = config or load_config()
        self._relay = relay
        self._registry = registry
        self.notes = notes or workspace.notes
        self.message_log = log or message_log

        logger.info("ConversationService initialized")

    @property
    def relay(self) -> StreamRelay:
        if self._relay is None:
            self._relay = TurnStreamRelay(config=self.config.anthropic)
        return self._relay

    @property
    def registry(self) -> ToolsRegistry:
        if self._registry is None:
            self._registry = get_tools_registry(self.config.tool_timeout_seconds)
        return self._registry

    def validate_message(self, message: str) -> None:
        """Validate a user message before anything is appended.

        Raises:
            ValueError: If the message is empty or exceeds the token limit
        """
        if not message.strip():
            raise ValueError("Message cannot be empty.")

        max_tokens = self.config.max_message_tokens
        if estimate_tokens(message) > max_tokens:
            raise ValueError(f"Your message is too long. Please keep messages under {max_tokens} tokens.")

    async def load_context(self, session: ConversationSession) -> list[SystemMessage]:
        """System items to inject for this turn.

        High-priority notes are loaded once per conversation, on its first turn.
        """
        if session.context_loaded:
            return []

        session.mark_context_loaded()
        notes = await self.notes.get_high_priority_notes()
        if not notes:
            return []

        lines = [f"- {note.title}: {note.content}" for note in notes]
        logger.info(f"Injecting {len(notes)} high priority notes into {session.conversation_id}")
        return [SystemMessage(text="High priority notes:\n" + "\n".join(lines))]

    def check_turn(self, message: str, session: ConversationSession, wait: bool = True) -> None:
        """Reject a turn before it starts.

        Raises:
            ValueError: If the message fails validation
            ConversationBusyError: If ``wait`` is false and a turn is running
        """
        self.validate_message(message)
        if not wait and session.busy:
            raise ConversationBusyError(f"Conversation {session.conversation_id} is busy", code="conversation_busy")

    def create_orchestrator(self, session: ConversationSession) -> TurnOrchestrator:
        return TurnOrchestrator(session, self.relay, self.registry, self.config.orchestrator)

    async def stream_turn(
        self, message: str, session: ConversationSession, wait: bool = True
    ) -> AsyncIterator[TurnEvent]:
        """Run one turn and yield its events.

        Args:
            message: User's message
            session: Conversation to run the turn in
            wait: Wait for a running turn to finish instead of failing

        Raises:
            ValueError: If the message fails validation
            ConversationBusyError: If ``wait`` is false and a turn is running
        """
        self.check_turn(message, session, wait)

        logger.info(f"Processing message for conversation {session.conversation_id}: {message[:50]}...")

        async def start_turn() -> list[SystemMessage]:
            # Called with the session lock held
            context = await self.load_context(session)
            await self.message_log.append(session.conversation_id, "user", message)
            return context

        orchestrator = self.create_orchestrator(session)
        async with aclosing(orchestrator.run_turn(message, on_start=start_turn)) as events:
            async for event in events:
                if isinstance(event, TurnCompleted) and event.message and event.message.text:
                    await self.message_log.append(session.conversation_id, "assistant", event.message.text)
                elif isinstance(event, TurnErrored):
                    logger.warning(f"Turn errored for {session.conversation_id}: {event.message}")
                yield event

        if orchestrator.result and orchestrator.result.usage:
            usage = orchestrator.result.usage
            logger.info(
                f"Token usage - Input: {usage.get('input_tokens', 0)}, Output: {usage.get('output_tokens', 0)}"
            )

    async def process_message(self, message: str, session: ConversationSession, wait: bool = True) -> TurnResult:
        """Run one turn to completion.

        Raises:
            ValueError: If the message fails validation
            ConversationBusyError: If ``wait`` is false and a turn is running
        """
        result: TurnResult | None = None
        async with aclosing(self.stream_turn(message, session, wait=wait)) as events:
            async for event in events:
                if isinstance(event, TurnCompleted):
                    result = TurnResult(
                        state="complete",
                        message=event.message,
                        rounds=event.rounds,
                        stop_reason=event.stop_reason,
                        usage=event.usage,
                    )
                elif isinstance(event, TurnErrored):
                    result = TurnResult(state="errored", rounds=event.rounds, error=event.message)

        if result is None:
            raise RuntimeError(f"Turn for {session.conversation_id} ended without a result")
        return result


_conversation_service: ConversationService | None = None


def get_conversation_service() -> ConversationService:
    """Get or create the shared conversation service."""
    global _conversation_service
    if _conversation_service is None:
        _conversation_service = ConversationService()
    return _conversation_service
