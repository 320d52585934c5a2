"""API endpoints for the assistant service."""

from collections.abc import AsyncIterator
from contextlib import aclosing
from datetime import UTC, datetime

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import StreamingResponse

from assistant import __version__
from assistant.api.sse import SSE_HEADERS, encode_event
from assistant.models.conversation import (
    ConversationItemsResponse,
    ConversationMessagesResponse,
    ConversationRequest,
    ConversationResponse,
    CreateConversationResponse,
    HealthResponse,
    TurnResponseRequest,
)
from assistant.models.events import StreamError, TurnErrored
from assistant.models.session import ConversationSession
from assistant.services.conversation import ConversationService, get_conversation_service
from assistant.services.session_manager import InMemorySessionManager
from assistant.services.session_manager import get_session_manager as get_shared_session_manager
from assistant.utils.errors import ConversationBusyError
from assistant.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter()


def get_session_manager() -> InMemorySessionManager:
    return get_shared_session_manager()


def _resolve_session(manager: InMemorySessionManager, conversation_id: str | None) -> ConversationSession:
    """Get the requested conversation, or start a new one."""
    try:
        if conversation_id:
            logger.info(f"Validating existing conversation: {conversation_id}")
            session = manager.get_session(conversation_id)
            if not session:
                logger.warning(f"Invalid conversation ID provided: {conversation_id}")
                raise HTTPException(status_code=400, detail=f"Invalid conversation ID: {conversation_id}")
            return session

        logger.info("Creating new conversation")
        return manager.get_or_create_session()

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Session management error: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to manage session") from e


def _existing_session(manager: InMemorySessionManager, conversation_id: str) -> ConversationSession:
    session = manager.get_session(conversation_id)
    if not session:
        raise HTTPException(status_code=404, detail=f"Conversation {conversation_id} not found")
    return session


def _check_turn(service: ConversationService, request: ConversationRequest, session: ConversationSession) -> None:
    try:
        service.check_turn(request.message, session, wait=request.wait)
    except ValueError as e:
        logger.warning(f"Message validation error for conversation {session.conversation_id}: {e}")
        raise HTTPException(status_code=400, detail=str(e)) from e
    except ConversationBusyError as e:
        raise HTTPException(status_code=409, detail=e.message) from e


@router.post("/conversations", response_model=CreateConversationResponse, tags=["Conversation"])
async def create_conversation(
    manager: InMemorySessionManager = Depends(get_session_manager),
) -> CreateConversationResponse:
    """Start a new, empty conversation."""
    session = manager.get_or_create_session()
    logger.info(f"Created conversation {session.conversation_id}")
    return CreateConversationResponse(conversation_id=session.conversation_id)


@router.post("/conversation", response_model=ConversationResponse, tags=["Conversation"])
async def handle_conversation(
    request: ConversationRequest,
    service: ConversationService = Depends(get_conversation_service),
    manager: InMemorySessionManager = Depends(get_session_manager),
) -> ConversationResponse:
    """Run one full turn and return the final assistant message."""
    session = _resolve_session(manager, request.conversation_id)
    conversation_id = session.conversation_id
    _check_turn(service, request, session)

    try:
        result = await service.process_message(request.message, session, wait=request.wait)
    except Exception as e:
        logger.error(f"Conversation processing error for {conversation_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to process message") from e

    if result.state == "errored":
        response_text = "I apologize, but I'm experiencing technical difficulties. Please try again."
    else:
        response_text = result.text

    logger.info(f"Generated response for conversation {conversation_id}: {response_text[:50]}...")
    return ConversationResponse(
        response=response_text,
        conversation_id=conversation_id,
        status=result.state,
        rounds=result.rounds,
        stop_reason=result.stop_reason,
        error=result.error,
        usage=result.usage,
    )


@router.post("/conversation/stream", tags=["Conversation"])
async def stream_conversation(
    request: ConversationRequest,
    http_request: Request,
    service: ConversationService = Depends(get_conversation_service),
    manager: InMemorySessionManager = Depends(get_session_manager),
) -> StreamingResponse:
    """Run one turn, streaming its events as server-sent events.

    Closing the connection cancels the turn.
    """
    session = _resolve_session(manager, request.conversation_id)
    _check_turn(service, request, session)

    async def generate_stream() -> AsyncIterator[str]:
        try:
            async with aclosing(service.stream_turn(request.message, session, wait=request.wait)) as events:
                async for event in events:
                    if await http_request.is_disconnected():
                        logger.info(f"Client disconnected from {session.conversation_id}, cancelling turn")
                        return
                    yield encode_event(event)
        except Exception as e:
            logger.error(f"Streaming turn failed for {session.conversation_id}: {e}", exc_info=True)
            yield encode_event(TurnErrored(message=str(e), rounds=0, code="internal_error"))

    return StreamingResponse(
        generate_stream(),
        media_type="text/event-stream",
        headers={**SSE_HEADERS, "X-Conversation-Id": session.conversation_id},
    )


@router.post("/turn_response", tags=["Relay"])
async def turn_response(
    request: TurnResponseRequest,
    service: ConversationService = Depends(get_conversation_service),
) -> StreamingResponse:
    """Stream one model round for a caller-supplied history.

    For clients that run their own orchestration: nothing is stored and no
    tools are run.
    """
    tools = request.tools if request.tools is not None else service.registry.describe()
    logger.info(f"Relaying round for {len(request.items)} items and {len(tools)} tools")

    async def generate_stream() -> AsyncIterator[str]:
        try:
            async with aclosing(service.relay.stream(request.items, tools)) as events:
                async for event in events:
                    yield encode_event(event)
        except Exception as e:
            logger.error(f"Relay failed: {e}", exc_info=True)
            yield encode_event(StreamError(message=str(e), code="internal_error"))

    return StreamingResponse(generate_stream(), media_type="text/event-stream", headers=SSE_HEADERS)


@router.get(
    "/conversations/{conversation_id}/items", response_model=ConversationItemsResponse, tags=["Conversation"]
)
async def get_conversation_items(
    conversation_id: str,
    manager: InMemorySessionManager = Depends(get_session_manager),
) -> ConversationItemsResponse:
    """Items shown to the user, without system context."""
    session = _existing_session(manager, conversation_id)
    return ConversationItemsResponse(conversation_id=conversation_id, items=session.store.displayable())


@router.get(
    "/conversations/{conversation_id}/messages",
    response_model=ConversationMessagesResponse,
    tags=["Conversation"],
)
async def get_conversation_messages(
    conversation_id: str,
    service: ConversationService = Depends(get_conversation_service),
    manager: InMemorySessionManager = Depends(get_session_manager),
) -> ConversationMessagesResponse:
    """Persisted user and assistant messages, oldest first."""
    _existing_session(manager, conversation_id)
    messages = await service.message_log.list(conversation_id)
    return ConversationMessagesResponse(conversation_id=conversation_id, messages=messages)


@router.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check(manager: InMemorySessionManager = Depends(get_session_manager)) -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(UTC),
        version=__version__,
        sessions=manager.get_session_count(),
    )
