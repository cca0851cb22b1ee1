"""Persist orchestration events to the analytics table."""

from typing import Optional
from uuid import UUID

from advisor_engine.context.models import OrchestrationEvent
from advisor_engine.core.logging import get_logger
from advisor_engine.db.supabase_client import get_supabase as get_client

logger = get_logger(__name__)

FALLBACK_MODEL = "fallback"


async def record_orchestration_event(
    event: OrchestrationEvent,
    user_id: Optional[UUID] = None,
    chat_id: Optional[UUID] = None,
    message_id: Optional[UUID] = None,
) -> None:
    """Write one analytics row. Fire-and-forget: failures are logged only."""
    try:
        row = {
            "user_id": str(user_id) if user_id else None,
            "chat_id": str(chat_id) if chat_id else None,
            "message_id": str(message_id) if message_id else None,
            "model": event.model or FALLBACK_MODEL,
            "tokens_used": event.tokens_used,
            "response_time": event.latency_ms,
            "user_role": event.user_role,
            "had_civicrm_data": event.had_crm_data,
            "had_knowledge_base": event.had_knowledge_base,
        }
        get_client().table("analytics").insert(row).execute()
    except Exception as e:
        logger.warning(f"Failed to record analytics for {event.request_id}: {e}")
