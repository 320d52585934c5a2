"""Turn orchestrator: drives one user turn through model rounds and tool calls.

A turn moves through ``idle -> sending -> streaming -> (executing_tools ->
sending)* -> complete``, or to ``errored`` from any state, and always ends
back in ``idle``. Rounds are strictly sequential, and so are the tool calls
within a round.
"""

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable, Sequence
from contextlib import aclosing
from dataclasses import dataclass, field
from functools import partial
from typing import Literal


from assistant.models.events import (
    ItemAppended,
    MessageAnnotation,
    MessageComplete,
    MessageDelta,
    StreamEnd,
    StreamError,
    StreamEvent,
    ToolCallComplete,
    ToolCallDelta,
    TurnCompleted,
    TurnErrored,
    TurnEvent,
    UnknownEvent,
)
from assistant.models.items import (
    AssistantMessage,
    ConversationItem,
    SystemMessage,
    ToolCallRequest,
    ToolCallResult,
    UserMessage,
    new_item_id,
)
from assistant.models.session import ConversationSession
from assistant.services.item_store import ConversationItemStore
from assistant.services.relay import StreamRelay
from assistant.tools.base import ToolOutcome, parse_arguments
from assistant.tools.registry import ToolsRegistry
from assistant.utils.errors import MalformedArguments
from assistant.utils.logging import get_logger

logger = get_logger(__name__)

TurnState = Literal["idle", "sending", "streaming", "executing_tools", "complete", "errored"]

MAX_ROUNDS_MESSAGE = (
    "I apologize, but I wasn't able to finish this request within the allowed number of steps. "
    "Please try rephrasing or breaking it into smaller requests."
)


@dataclass
class OrchestratorConfig:
    """Configuration for the turn orchestrator."""

    # Upper bound on model rounds per turn
    max_rounds: int = 10


@dataclass
class TurnResult:
    """Outcome of a finished turn."""

    state: Literal["complete", "errored"]
    message: AssistantMessage | None = None
    rounds: int = 0
    stop_reason: str | None = None
    error: str | None = None
    usage: dict[str, int] = field(default_factory=dict)

    @property
    def text(self) -> str:
        return self.message.text if self.message else ""


class RoundFolder:
    """Folds one round's stream events into in-progress items in the store.

    Deltas for the same item coalesce into one draft, keyed by the item id
    the relay assigned (or the content index if it sent none). Folding the
    same event sequence into a fresh store gives the same drafts.
    """

    def __init__(self, store: ConversationItemStore, id_factory: Callable[[], str] = new_item_id):
        self.store = store
        self.id_factory = id_factory

    def apply(self, event: StreamEvent) -> None:
        if isinstance(event, MessageDelta):
            message = self._message(event.item_id, event.index)
            message.text += event.text
        elif isinstance(event, MessageComplete):
            message = self._message(event.item_id, event.index)
            if event.text is not None:
                message.text = event.text
        elif isinstance(event, MessageAnnotation):
            self._annotate(event)
        elif isinstance(event, ToolCallDelta):
            request = self._request(event.item_id, event.index, event.call_id, event.name)
            request.arguments_json += event.arguments_delta
        elif isinstance(event, ToolCallComplete):
            request = self._request(event.item_id, event.index, event.call_id, event.name)
            if event.arguments is not None:
                request.arguments_json = event.arguments
            if not request.call_id:
                request.call_id = request.id
                logger.warning(
                    f"Protocol anomaly: tool call {request.id} ({request.tool_name}) arrived without "
                    f"an identifier, synthesized {request.call_id}"
                )
        elif isinstance(event, UnknownEvent):
            logger.debug(f"Ignoring unknown stream event {event.type}")

    def _key(self, item_id: str | None, index: int | None) -> str:
        if item_id:
            return item_id
        if index is not None:
            return f"index:{index}"
        # Nothing to coalesce on; every such event is its own item
        return f"anonymous:{self.id_factory()}"

    def _message(self, item_id: str | None, index: int | None) -> AssistantMessage:
        key = self._key(item_id, index)
        draft = self.store.get_draft(key)
        if isinstance(draft, AssistantMessage):
            return draft
        message = AssistantMessage(id=item_id or self.id_factory())
        self.store.upsert_draft(key, message)
        return message

    def _request(
        self, item_id: str | None, index: int | None, call_id: str | None, name: str | None
    ) -> ToolCallRequest:
        key = self._key(item_id, index)
        draft = self.store.get_draft(key)
        if isinstance(draft, ToolCallRequest):
            request = draft
        else:
            request = ToolCallRequest(id=item_id or self.id_factory(), call_id=call_id or item_id)
            self.store.upsert_draft(key, request)

        if call_id and not request.call_id:
            request.call_id = call_id
        if name:
            request.tool_name = name
        return request

    def _annotate(self, event: MessageAnnotation) -> None:
        draft = self.store.get_draft(self._key(event.item_id, event.index))
        if isinstance(draft, AssistantMessage):
            draft.annotations.append(event.annotation)
        elif event.item_id:
            # Late annotation for a message committed in an earlier round
            self.store.attach_annotations(event.item_id, [event.annotation])


class TurnOrchestrator:
    """Runs turns for one conversation session."""

    def __init__(
        self,
        session: ConversationSession,
        relay: StreamRelay,
        registry: ToolsRegistry,
        config: OrchestratorConfig | None = None,
        id_factory: Callable[[], str] = new_item_id,
    ):
        """Initialize the orchestrator.

        Args:
            session: The conversation whose store this orchestrator owns
            relay: Streams one model round at a time
            registry: Tools the model may call
            config: Orchestrator configuration
            id_factory: Generates ids for items the stream didn't identify
        """
        self.session = session
        self.store = session.store
        self.relay = relay
        self.registry = registry
        self.config = config or OrchestratorConfig()
        self.id_factory = id_factory
        self.state: TurnState = "idle"
        self.result: TurnResult | None = None

    def _transition(self, state: TurnState) -> None:
        logger.debug(f"Conversation {self.session.conversation_id}: {self.state} -> {state}")
        self.state = state

    async def run_turn(
        self,
        text: str,
        context: Sequence[SystemMessage] = (),
        on_start: Callable[[], Awaitable[Sequence[SystemMessage]]] | None = None,
    ) -> AsyncIterator[TurnEvent]:
        """Run one turn, yielding progress events as they happen.

        Waits for any turn already running on the session. The final event is
        ``turn.complete`` or ``turn.error``; ``self.result`` holds the outcome.

        Args:
            text: The user's message
            context: System items to append before the user message
            on_start: Awaited once the session lock is held, before anything is
                appended; the system items it returns follow ``context``
        """
        async with self.session.lock:
            self.result = None
            self.session.turn_count += 1
            try:
                if on_start is not None:
                    context = [*context, *await on_start()]
                async for event in self._run(text, context):
                    yield event
            finally:
                self.store.discard_drafts()
                self._transition("idle")
                self.session.update_activity()

    async def process(self, text: str, context: Sequence[SystemMessage] = ()) -> TurnResult:
        """Run one turn to the end and return its outcome."""
        async with aclosing(self.run_turn(text, context)) as events:
            async for _ in events:
                pass

        if self.result is None:
            raise RuntimeError("Turn ended without a result")
        return self.result

    async def _run(self, text: str, context: Sequence[SystemMessage]) -> AsyncIterator[TurnEvent]:
        self._transition("sending")
        for item in [*context, UserMessage(text=text)]:
            yield ItemAppended(item=self.store.append(item))

        usage: dict[str, int] = {}
        rounds = 0

        while True:
            rounds += 1
            logger.info(f"Conversation {self.session.conversation_id}: round {rounds}/{self.config.max_rounds}")

            end: StreamEnd | None = None
            error: StreamError | None = None
            folder = RoundFolder(self.store, self.id_factory)

            self._transition("sending")
            try:
                events = self.relay.stream(self.store.all(), self.registry.describe())
                self._transition("streaming")
                async with aclosing(events) as stream:
                    async for event in stream:
                        if isinstance(event, StreamError):
                            error = event
                            break
                        folder.apply(event)
                        yield event
                        if isinstance(event, StreamEnd):
                            end = event
                            break
            except Exception as e:
                logger.error(f"Relay failed for {self.session.conversation_id}: {e}", exc_info=True)
                error = StreamError(message=str(e), code="relay_failure")

            if error is None and end is None:
                error = StreamError(message="Stream ended without a terminal event", code="incomplete_stream")

            if error is not None:
                yield error
                yield self._fail(error, rounds)
                return

            committed = self.store.commit_drafts()
            for item in committed:
                yield ItemAppended(item=item)
            for key, value in end.usage.items():
                usage[key] = usage.get(key, 0) + value

            pending = [item for item in committed if isinstance(item, ToolCallRequest) and item.status == "pending"]
            if not pending:
                yield self._complete(committed, rounds, end.stop_reason, usage)
                return

            self._transition("executing_tools")
            logger.info(f"Executing {len(pending)} tool calls for {self.session.conversation_id}")
            for request in pending:
                try:
                    result = await self._execute(request)
                except Exception as e:
                    logger.error(f"Tool call {request.call_id} could not be resolved: {e}", exc_info=True)
                    yield self._fail(StreamError(message=str(e), code="tool_failure"), rounds)
                    return
                yield ItemAppended(item=result)

            if rounds >= self.config.max_rounds:
                logger.warning(f"Conversation {self.session.conversation_id} reached max rounds ({rounds})")
                apology = self.store.append(AssistantMessage(text=MAX_ROUNDS_MESSAGE))
                yield ItemAppended(item=apology)
                yield self._complete([apology], rounds, "max_rounds", usage)
                return

    async def _execute(self, request: ToolCallRequest) -> ToolCallResult:
        """Run one tool call and append its paired result.

        If the turn is cancelled while the tool runs, the tool is left to
        finish and its result is stored when it arrives.
        """
        try:
            args = parse_arguments(request.arguments_json, request.tool_name)
        except MalformedArguments as e:
            logger.warning(f"Tool call {request.call_id} has malformed arguments: {e.message}")
            return self._append_result(request, ToolOutcome.failure(request.tool_name, e))

        task = asyncio.ensure_future(self.registry.invoke(request.tool_name, args))
        try:
            outcome = await asyncio.shield(task)
        except asyncio.CancelledError:
            logger.warning(f"Turn cancelled while {request.tool_name} ({request.call_id}) was running")
            task.add_done_callback(partial(self._store_late_result, request))
            raise

        return self._append_result(request, outcome)

    def _append_result(self, request: ToolCallRequest, outcome: ToolOutcome) -> ToolCallResult:
        result = ToolCallResult(
            id=self.id_factory(),
            call_id=request.call_id,
            tool_name=request.tool_name,
            output_json=outcome.output,
            status="completed" if outcome.success else "failed",
        )
        return self.store.append(result)

    def _store_late_result(self, request: ToolCallRequest, task: "asyncio.Future[ToolOutcome]") -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Late tool call {request.call_id} failed: {error}")
            return
        self._append_result(request, task.result())
        logger.info(f"Stored late result for {request.call_id}; no further round started")

    def _complete(
        self, committed: Sequence[ConversationItem], rounds: int, stop_reason: str | None, usage: dict[str, int]
    ) -> TurnCompleted:
        self._transition("complete")
        messages = [item for item in committed if isinstance(item, AssistantMessage)]
        message = messages[-1] if messages else None

        self.result = TurnResult(
            state="complete", message=message, rounds=rounds, stop_reason=stop_reason, usage=dict(usage)
        )
        logger.info(f"Turn complete for {self.session.conversation_id} after {rounds} rounds ({stop_reason})")
        return TurnCompleted(message=message, rounds=rounds, stop_reason=stop_reason, usage=dict(usage))

    def _fail(self, error: StreamError, rounds: int) -> TurnErrored:
        self._transition("errored")
        self.store.discard_drafts()
        self.result = TurnResult(state="errored", rounds=rounds, error=error.message)
        logger.error(f"Turn failed for {self.session.conversation_id} in round {rounds}: {error.message}")
        return TurnErrored(message=error.message, rounds=rounds, code=error.code)


def replay(events: Sequence[StreamEvent], id_factory: Callable[[], str] = new_item_id) -> list[ConversationItem]:
    """Fold a recorded round into a fresh store and return the finalized items."""
    store = ConversationItemStore()
    folder = RoundFolder(store, id_factory)
    for event in events:
        folder.apply(event)
    return store.commit_drafts()
