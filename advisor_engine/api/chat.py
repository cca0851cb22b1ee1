"""Chat assistant API endpoints."""

import json
from dataclasses import dataclass
from typing import Any, AsyncGenerator
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, ConfigDict, Field

from advisor_engine.api.dependencies import get_orchestrator
from advisor_engine.context.models import ChatResult, OrchestrationEvent, TurnMetadata, UserProfile
from advisor_engine.core.config import get_settings
from advisor_engine.core.exceptions import ChatValidationError
from advisor_engine.core.logging import get_logger
from advisor_engine.db import analytics as analytics_db
from advisor_engine.db import chats as chats_db
from advisor_engine.db import messages as messages_db
from advisor_engine.db import users as users_db
from advisor_engine.services.orchestrator import ChatOrchestrator, validate_request

logger = get_logger(__name__)

router = APIRouter()

FALLBACK_MODEL = "fallback"


class ChatRequest(BaseModel):
    """Request to chat with the advisor."""

    model_config = ConfigDict(populate_by_name=True)

    message: str = ""
    user_profile: dict[str, Any] | None = Field(default=None, alias="userProfile")
    previous_messages: list[dict[str, Any]] = Field(default_factory=list, alias="previousMessages")
    conversation_id: UUID | None = Field(default=None, alias="conversationId")


class ChatResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    response: str
    conversation_id: UUID | None = Field(default=None, alias="conversationId")
    model: str
    had_crm_data: bool = Field(alias="hadCrmData")
    had_knowledge_base: bool = Field(alias="hadKnowledgeBase")
    used_fallback: bool = Field(alias="usedFallback")


@dataclass
class StoredTurn:
    """Where the user turn of a request was stored."""

    user_id: UUID
    chat_id: UUID


async def _start_turn(
    profile: UserProfile, message: str, conversation_id: UUID | None
) -> StoredTurn | None:
    """
    Persist the user turn.

    A conversation owned by someone else is never appended to; a new one
    is started instead. Only a verified email may refresh a stored profile.
    """
    verified_email = profile.verified_email
    email = verified_email or profile.email
    if not email:
        return None

    user, _ = await users_db.get_or_create_user(
        email,
        profile,
        name=profile.federated_session.name if profile.federated_session else None,
        refresh_profile=verified_email is not None,
    )

    chat = await chats_db.get_chat(conversation_id) if conversation_id else None
    if chat is not None and chat.user_id != user.id:
        logger.warning(f"Conversation {conversation_id} belongs to another user, starting a new one")
        chat = None
    if chat is None:
        chat = await chats_db.create_chat(user.id, chats_db.generate_chat_title(message))

    await messages_db.create_message(chat.id, "user", message)
    return StoredTurn(user_id=user.id, chat_id=chat.id)


async def _finish_turn(conversation_id: UUID, result: ChatResult) -> UUID:
    event = result.event
    metadata = TurnMetadata(
        model=event.model or FALLBACK_MODEL,
        tokens_used=event.tokens_used,
        had_crm_data=event.had_crm_data,
        had_knowledge_base=event.had_knowledge_base,
        response_time_ms=event.latency_ms,
    )
    stored = await messages_db.create_message(conversation_id, "assistant", result.text, metadata)
    await chats_db.touch_chat(conversation_id)
    return stored.id


async def _store_user_turn(
    profile: UserProfile, message: str, conversation_id: UUID | None
) -> StoredTurn | None:
    try:
        return await _start_turn(profile, message, conversation_id)
    except Exception as e:
        logger.error(f"Failed to store user turn: {e}")
        return None


async def _store_reply(turn: StoredTurn | None, result: ChatResult) -> None:
    """Store the assistant turn and its analytics row. Never raises."""
    message_id = None
    if turn is not None:
        try:
            message_id = await _finish_turn(turn.chat_id, result)
        except Exception as e:
            logger.error(f"Failed to store assistant turn for {turn.chat_id}: {e}")

    await analytics_db.record_orchestration_event(
        result.event,
        user_id=turn.user_id if turn else None,
        chat_id=turn.chat_id if turn else None,
        message_id=message_id,
    )


def _validated(request: ChatRequest):
    try:
        return validate_request(request.message, request.user_profile, request.previous_messages)
    except ChatValidationError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e


@router.post("/chat", response_model=ChatResponse, response_model_by_alias=True)
async def chat(
    request: ChatRequest,
    orchestrator: ChatOrchestrator = Depends(get_orchestrator),
) -> ChatResponse:
    """
    Answer one chat message.

    The reply is always produced, falling back to rule-based advice when
    an upstream service fails. When storage is configured, both turns are
    appended to the conversation; storage errors never fail the reply.
    """
    message, profile, turns = _validated(request)

    persist = get_settings().persistence_enabled
    turn = await _store_user_turn(profile, message, request.conversation_id) if persist else None

    try:
        result = await orchestrator.run(message, profile, turns)
    except ChatValidationError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    if persist:
        await _store_reply(turn, result)

    event = result.event
    return ChatResponse(
        response=result.text,
        conversation_id=turn.chat_id if turn else request.conversation_id,
        model=event.model or FALLBACK_MODEL,
        had_crm_data=event.had_crm_data,
        had_knowledge_base=event.had_knowledge_base,
        used_fallback=event.used_fallback,
    )


def _sse(payload: dict[str, Any]) -> str:
    return f"data: {json.dumps(payload)}\n\n"


@router.post("/chat/stream")
async def chat_stream(
    request: ChatRequest,
    orchestrator: ChatOrchestrator = Depends(get_orchestrator),
) -> StreamingResponse:
    """
    Answer one chat message as Server-Sent Events.

    Event types, in order: conversation_id (when the turn was stored),
    text (one per provider delta, or the whole fallback reply), done (the
    reply flags). An unexpected failure ends the stream with an error event.

    Returns:
        StreamingResponse with Server-Sent Events
    """
    message, profile, turns = _validated(request)
    persist = get_settings().persistence_enabled

    async def generate() -> AsyncGenerator[str, None]:
        """Generate streaming chat responses."""
        try:
            turn = await _store_user_turn(profile, message, request.conversation_id) if persist else None
            conversation_id = turn.chat_id if turn else request.conversation_id
            if conversation_id:
                yield _sse({"type": "conversation_id", "conversation_id": str(conversation_id)})

            parts: list[str] = []
            event: OrchestrationEvent | None = None
            async for chunk in orchestrator.stream(message, profile, turns):
                if chunk.event is not None:
                    event = chunk.event
                    continue
                parts.append(chunk.text)
                yield _sse({"type": "text", "content": chunk.text})

            if persist:
                await _store_reply(turn, ChatResult(text="".join(parts), event=event))

            yield _sse({
                "type": "done",
                "conversationId": str(conversation_id) if conversation_id else None,
                "model": event.model or FALLBACK_MODEL,
                "hadCrmData": event.had_crm_data,
                "hadKnowledgeBase": event.had_knowledge_base,
                "usedFallback": event.used_fallback,
            })

        except Exception as e:
            logger.error(f"Error in chat stream: {e}", exc_info=True)
            yield _sse({"type": "error", "message": str(e)})

    return StreamingResponse(
        generate(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )
