"""Pydantic models for the chat pipeline."""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal
from uuid import uuid4

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserRole(str, Enum):
    """Roles offered by onboarding. Stored values outside this set pass through."""

    CLIENT = "client"
    STAFF_CONSULTANT = "staff-consultant"
    CHARITY_MEMBER = "charity-member"
    OTHER = "other"


class ProviderId(str, Enum):
    """Which remote text-generation provider answers a message."""

    CONSULTING = "consulting"
    TECHNICAL = "technical"

    @property
    def vendor(self) -> str:
        """Vendor name used in logs and error messages."""
        return {
            self.CONSULTING: "anthropic",
            self.TECHNICAL: "openai",
        }[self]


DataAccessTier = Literal["public", "vc-templates", "project-history"]
ELEVATED_TIERS: frozenset[str] = frozenset({"vc-templates", "project-history"})

Identification = Literal["email", "federated-login", "anonymous"]


class FederatedSession(BaseModel):
    """Identity returned by the federated login provider."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str | None = None
    email: str | None = None
    access_token: str | None = Field(default=None, alias="accessToken")


class UserProfile(BaseModel):
    """
    Who is asking. Owned by the client session, immutable for a turn.

    Invariants:
    - data_access always contains "public" (inserted first when missing)
    - elevated tiers require identification via federated login
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    role: str = Field(..., min_length=1, description="Role id or raw stored value")
    custom_role: str | None = Field(default=None, alias="customRole")
    topic: str = Field(..., min_length=1, description="Topic slug or raw stored value")
    custom_topic: str | None = Field(default=None, alias="customTopic")
    identification: Identification = Field(...)
    email: str | None = None
    data_access: list[DataAccessTier] = Field(default_factory=lambda: ["public"], alias="dataAccess")
    federated_session: FederatedSession | None = Field(
        default=None,
        validation_alias=AliasChoices("federated_session", "federatedSession", "microsoftSession"),
    )

    @field_validator("role", "topic")
    @classmethod
    def _strip_required(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value

    @field_validator("identification", mode="before")
    @classmethod
    def _normalize_identification(cls, value: Any) -> Any:
        # Onboarding stores the provider-specific id for the federated option
        if value == "microsoft-login":
            return "federated-login"
        return value

    @field_validator("data_access", mode="after")
    @classmethod
    def _ensure_public(cls, tiers: list[str]) -> list[str]:
        ordered = list(dict.fromkeys(tiers))
        if "public" not in ordered:
            ordered.insert(0, "public")
        return ordered

    @model_validator(mode="after")
    def _check_elevated_access(self) -> "UserProfile":
        elevated = ELEVATED_TIERS.intersection(self.data_access)
        if elevated and self.identification != "federated-login":
            raise ValueError(
                f"data access {sorted(elevated)} requires federated-login identification"
            )
        return self

    @property
    def verified_email(self) -> str | None:
        """Email vouched for by the federated identity provider, if any."""
        if self.federated_session and self.federated_session.email:
            return self.federated_session.email
        return None


class TurnMetadata(BaseModel):
    """Per-turn observability fields recorded on assistant turns."""

    model_config = ConfigDict(populate_by_name=True)

    model: str | None = None
    tokens_used: int | None = Field(default=None, alias="tokensUsed")
    had_crm_data: bool = Field(default=False, alias="hadCiviCRMData")
    had_knowledge_base: bool = Field(default=False, alias="hadKnowledgeBase")
    response_time_ms: int | None = Field(default=None, alias="responseTime")


class ConversationTurn(BaseModel):
    """One message in a conversation. Append-only."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=lambda: str(uuid4()))
    sender: Literal["user", "assistant"]
    content: str
    timestamp: datetime = Field(default_factory=_utcnow)
    metadata: TurnMetadata | None = None


class Conversation(BaseModel):
    """A titled group of turns owned by one user."""

    id: str
    user_id: str
    title: str
    visibility: Literal["private", "public"] = "private"
    created_at: datetime | None = None
    updated_at: datetime | None = None
    turns: list[ConversationTurn] = Field(default_factory=list)


KnowledgeCategory = Literal[
    "governance", "fundraising", "operations", "crm-usage", "planning", "hr", "marketing"
]


class KnowledgeDocument(BaseModel):
    """An advisory document in the knowledge base."""

    id: str
    title: str
    content: str
    category: KnowledgeCategory
    tags: list[str] = Field(default_factory=list)
    embedding: list[float] | None = None
    last_updated: datetime = Field(default_factory=_utcnow)

    @property
    def embedding_text(self) -> str:
        """Text sent to the embedding service for this document."""
        return f"{self.title}\n\n{self.content}"


class ScoredDocument(BaseModel):
    """A knowledge document with its similarity to a query."""

    document: KnowledgeDocument
    similarity: float


class CRMSection(BaseModel):
    """One labelled block of CRM data."""

    label: str
    payload: Any = None

    def render(self) -> str:
        return f"{self.label}:\n{json.dumps(self.payload, indent=2, default=str)}"


CRM_UNAVAILABLE_NOTE = "Note: CRM data temporarily unavailable."


class CRMQueryResult(BaseModel):
    """Request-scoped aggregate of CRM lookups for one message."""

    sections: list[CRMSection] = Field(default_factory=list)
    failed_sections: list[str] = Field(default_factory=list)
    unavailable: bool = False

    @property
    def has_data(self) -> bool:
        return bool(self.sections) and not self.unavailable

    @property
    def text(self) -> str:
        """Prompt-ready text: labelled sections, or the unavailability note."""
        if self.unavailable:
            return CRM_UNAVAILABLE_NOTE
        return "\n\n".join(section.render() for section in self.sections)


class MessageClassification(BaseModel):
    """Routing decisions for one message."""

    needs_crm: bool
    provider: ProviderId
    provider_rule: str | None = Field(
        default=None, description="Name of the provider rule that matched, None for default"
    )


class ProviderResponse(BaseModel):
    """Provider reply normalised across vendors."""

    text: str
    tokens_used: int | None = None
    finish_reason: str | None = None
    provider: ProviderId
    model: str
    prompt_chars: int = 0
    latency_ms: int = 0


class TokenAllocation(BaseModel):
    """Token accounting for one prompt section."""

    component: str = Field(..., description="Section name")
    requested: int = Field(..., description="Tokens before truncation")
    allocated: int = Field(..., description="Tokens kept in the prompt")
    truncated: bool = Field(default=False, description="Whether the section was cut or dropped")


class TokenBudgetResult(BaseModel):
    """Result of fitting the prompt sections into the budget."""

    allocations: list[TokenAllocation] = Field(default_factory=list)
    total_used: int = Field(default=0)
    total_budget: int = Field(default=6000)
    turns_dropped: int = Field(default=0)
    within_budget: bool = Field(default=True)


class AssembledPrompt(BaseModel):
    """Final system prompt plus what went into it."""

    text: str
    sections: list[str] = Field(default_factory=list)
    budget: TokenBudgetResult | None = None


class OrchestrationEvent(BaseModel):
    """Single structured record emitted per process_message call."""

    request_id: str = Field(default_factory=lambda: str(uuid4()))
    provider: ProviderId | None = None
    model: str | None = None
    user_role: str
    tokens_used: int | None = None
    latency_ms: int = 0
    had_crm_data: bool = False
    had_knowledge_base: bool = False
    used_fallback: bool = False
    failure: str | None = None
    created_at: datetime = Field(default_factory=_utcnow)


class ChatResult(BaseModel):
    """Reply text together with the orchestration event that produced it."""

    text: str
    event: OrchestrationEvent


class StreamChunk(BaseModel):
    """One piece of a streamed reply. Only the last chunk carries the event."""

    text: str = ""
    event: OrchestrationEvent | None = None
