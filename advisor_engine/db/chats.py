"""Database operations for chats (conversations)."""

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from advisor_engine.core.schemas_chat import Chat, ChatWithMessages
from advisor_engine.db.messages import list_chat_messages
from advisor_engine.db.supabase_client import get_supabase as get_client

TITLE_WORDS = 6
TITLE_MAX_CHARS = 50


def generate_chat_title(first_message: str) -> str:
    """First six words of the opening message, capped at 50 chars."""
    title = " ".join(first_message.split()[:TITLE_WORDS])
    if len(title) > TITLE_MAX_CHARS:
        return title[:TITLE_MAX_CHARS] + "..."
    return title or "New conversation"


async def create_chat(user_id: UUID, title: str, visibility: str = "private") -> Chat:
    """Create a new chat."""
    client = get_client()
    result = client.table("chats").insert({
        "user_id": str(user_id),
        "title": title,
        "visibility": visibility,
    }).execute()
    return Chat(**result.data[0])


async def list_user_chats(user_id: UUID, limit: int = 50) -> list[Chat]:
    """List a user's chats, most recently active first."""
    client = get_client()
    result = (
        client.table("chats")
        .select("*")
        .eq("user_id", str(user_id))
        .order("updated_at", desc=True)
        .limit(limit)
        .execute()
    )
    return [Chat(**row) for row in result.data]


async def get_chat(chat_id: UUID) -> Optional[Chat]:
    """Get a chat by ID."""
    client = get_client()
    result = client.table("chats").select("*").eq("id", str(chat_id)).execute()
    if result.data:
        return Chat(**result.data[0])
    return None


async def update_chat_title(chat_id: UUID, title: str) -> Optional[Chat]:
    """Rename a chat."""
    client = get_client()
    result = (
        client.table("chats")
        .update({"title": title, "updated_at": datetime.now(timezone.utc).isoformat()})
        .eq("id", str(chat_id))
        .execute()
    )
    if result.data:
        return Chat(**result.data[0])
    return None


async def touch_chat(chat_id: UUID) -> None:
    """Bump updated_at so the chat sorts first."""
    client = get_client()
    client.table("chats").update(
        {"updated_at": datetime.now(timezone.utc).isoformat()}
    ).eq("id", str(chat_id)).execute()


async def delete_chat(chat_id: UUID) -> bool:
    """Delete a chat. Messages, votes and actions cascade."""
    client = get_client()
    result = client.table("chats").delete().eq("id", str(chat_id)).execute()
    return len(result.data) > 0


async def get_chat_with_messages(chat_id: UUID) -> Optional[ChatWithMessages]:
    """Get a chat together with its messages, oldest first."""
    chat = await get_chat(chat_id)
    if not chat:
        return None
    messages = await list_chat_messages(chat_id)
    return ChatWithMessages(**chat.model_dump(), messages=messages)
