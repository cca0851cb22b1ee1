"""Conversation history endpoints."""

from typing import Literal
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from advisor_engine.api.dependencies import require_persistence
from advisor_engine.core.logging import get_logger
from advisor_engine.core.schemas_chat import Chat, ChatWithMessages, MessageVote
from advisor_engine.db import chats as chats_db
from advisor_engine.db import messages as messages_db
from advisor_engine.db import users as users_db

logger = get_logger(__name__)

router = APIRouter(dependencies=[Depends(require_persistence)])


class RenameRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)


class VoteRequest(BaseModel):
    email: str
    vote: Literal["up", "down"]
    feedback: str | None = None


@router.get("/conversations", response_model=list[Chat])
async def list_conversations(email: str = Query(..., min_length=3)) -> list[Chat]:
    """List a user's conversations, most recent first."""
    user = await users_db.get_user_by_email(email)
    if not user:
        return []
    return await chats_db.list_user_chats(user.id)


@router.get("/conversations/{conversation_id}", response_model=ChatWithMessages)
async def get_conversation(conversation_id: UUID) -> ChatWithMessages:
    chat = await chats_db.get_chat_with_messages(conversation_id)
    if not chat:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return chat


@router.patch("/conversations/{conversation_id}", response_model=Chat)
async def rename_conversation(conversation_id: UUID, request: RenameRequest) -> Chat:
    chat = await chats_db.update_chat_title(conversation_id, request.title.strip())
    if not chat:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return chat


@router.delete("/conversations/{conversation_id}")
async def delete_conversation(conversation_id: UUID) -> dict:
    if not await chats_db.delete_chat(conversation_id):
        raise HTTPException(status_code=404, detail="Conversation not found")
    logger.info(f"Deleted conversation {conversation_id}")
    return {"deleted": True, "id": str(conversation_id)}


@router.post("/messages/{message_id}/vote", response_model=MessageVote)
async def vote_on_message(message_id: UUID, request: VoteRequest) -> MessageVote:
    """Up- or down-vote an assistant message. A second vote replaces the first."""
    message = await messages_db.get_message(message_id)
    if not message:
        raise HTTPException(status_code=404, detail="Message not found")

    user = await users_db.get_user_by_email(request.email)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    return await messages_db.vote_on_message(message_id, user.id, request.vote, request.feedback)
