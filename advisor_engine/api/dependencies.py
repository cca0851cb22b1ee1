"""Shared FastAPI dependencies."""

from functools import lru_cache

from fastapi import HTTPException

from advisor_engine.core.config import get_settings
from advisor_engine.services.orchestrator import ChatOrchestrator, build_orchestrator


@lru_cache(maxsize=1)
def get_orchestrator() -> ChatOrchestrator:
    """Process-wide orchestrator so the knowledge base embeds once."""
    return build_orchestrator()


def require_persistence() -> None:
    """Reject history endpoints when no database is configured."""
    if not get_settings().persistence_enabled:
        raise HTTPException(status_code=503, detail="Conversation storage is not configured")
