"""Context module for per-message routing and prompt assembly.

This module provides:
- Keyword classification (CRM lookup needed? which provider?)
- Role and topic display resolution
- System prompt assembly with a token budget
- Rule-based fallback replies
"""

from advisor_engine.context.models import (
    AssembledPrompt,
    ChatResult,
    ConversationTurn,
    CRMQueryResult,
    CRMSection,
    FederatedSession,
    KnowledgeDocument,
    MessageClassification,
    OrchestrationEvent,
    ProviderId,
    ProviderResponse,
    StreamChunk,
    TokenAllocation,
    TokenBudgetResult,
    UserProfile,
    UserRole,
)

__all__ = [
    # Models
    "AssembledPrompt",
    "ChatResult",
    "ConversationTurn",
    "CRMQueryResult",
    "CRMSection",
    "FederatedSession",
    "KnowledgeDocument",
    "MessageClassification",
    "OrchestrationEvent",
    "ProviderId",
    "ProviderResponse",
    "StreamChunk",
    "TokenAllocation",
    "TokenBudgetResult",
    "UserProfile",
    "UserRole",
]
