"""Database operations for messages, votes and suggested actions."""

from typing import Optional
from uuid import UUID

from advisor_engine.context.models import TurnMetadata
from advisor_engine.core.schemas_chat import ChatMessage, MessageVote, SuggestedAction
from advisor_engine.db.supabase_client import get_supabase as get_client


async def create_message(
    chat_id: UUID,
    role: str,
    content: str,
    metadata: Optional[TurnMetadata] = None,
) -> ChatMessage:
    """Append a message to a chat."""
    client = get_client()
    row = {
        "chat_id": str(chat_id),
        "role": role,
        "content": content,
        "metadata": metadata.model_dump(by_alias=True, exclude_none=True) if metadata else None,
    }
    result = client.table("messages").insert(row).execute()
    return ChatMessage(**result.data[0])


async def list_chat_messages(chat_id: UUID) -> list[ChatMessage]:
    """List a chat's messages, oldest first."""
    client = get_client()
    result = (
        client.table("messages")
        .select("*")
        .eq("chat_id", str(chat_id))
        .order("created_at")
        .execute()
    )
    return [ChatMessage(**row) for row in result.data]


async def get_message(message_id: UUID) -> Optional[ChatMessage]:
    """Get a message by ID."""
    client = get_client()
    result = client.table("messages").select("*").eq("id", str(message_id)).execute()
    if result.data:
        return ChatMessage(**result.data[0])
    return None


# ============================================================================
# Votes
# ============================================================================


async def vote_on_message(
    message_id: UUID,
    user_id: UUID,
    vote: str,
    feedback: Optional[str] = None,
) -> MessageVote:
    """Record a user's vote on a message, replacing any earlier vote."""
    client = get_client()
    existing = (
        client.table("message_votes")
        .select("id")
        .eq("message_id", str(message_id))
        .eq("user_id", str(user_id))
        .execute()
    )

    if existing.data:
        result = (
            client.table("message_votes")
            .update({"vote": vote, "feedback": feedback})
            .eq("id", existing.data[0]["id"])
            .execute()
        )
    else:
        result = client.table("message_votes").insert({
            "message_id": str(message_id),
            "user_id": str(user_id),
            "vote": vote,
            "feedback": feedback,
        }).execute()

    return MessageVote(**result.data[0])


async def list_message_votes(message_id: UUID) -> list[MessageVote]:
    client = get_client()
    result = client.table("message_votes").select("*").eq("message_id", str(message_id)).execute()
    return [MessageVote(**row) for row in result.data]


# ============================================================================
# Suggested actions
# ============================================================================


async def create_suggested_action(
    message_id: UUID,
    action: str,
    description: Optional[str] = None,
    category: Optional[str] = None,
) -> SuggestedAction:
    client = get_client()
    result = client.table("suggested_actions").insert({
        "message_id": str(message_id),
        "action": action,
        "description": description,
        "category": category,
    }).execute()
    return SuggestedAction(**result.data[0])


async def list_suggested_actions(message_id: UUID) -> list[SuggestedAction]:
    client = get_client()
    result = (
        client.table("suggested_actions")
        .select("*")
        .eq("message_id", str(message_id))
        .order("created_at")
        .execute()
    )
    return [SuggestedAction(**row) for row in result.data]


async def complete_suggested_action(action_id: UUID) -> Optional[SuggestedAction]:
    """Mark a suggested action as done."""
    client = get_client()
    result = (
        client.table("suggested_actions")
        .update({"is_completed": True})
        .eq("id", str(action_id))
        .execute()
    )
    if result.data:
        return SuggestedAction(**result.data[0])
    return None
