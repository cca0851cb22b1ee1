"""Pydantic schemas for persisted users, conversations and messages."""

from datetime import datetime
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from advisor_engine.context.models import FederatedSession, TurnMetadata

VoteValue = Literal["up", "down"]
ActionCategory = Literal["follow-up", "template", "next-step"]


# ============================================================================
# User Schemas
# ============================================================================


class UserBase(BaseModel):
    """Profile fields mirrored from onboarding."""
    email: str
    name: Optional[str] = None
    role: str
    custom_role: Optional[str] = None
    topic: str
    custom_topic: Optional[str] = None
    identification: str
    data_access: list[str] = Field(default_factory=lambda: ["public"])
    microsoft_session: Optional[FederatedSession] = None


class UserCreate(UserBase):
    """Schema for creating a new user."""
    pass


class UserUpdate(BaseModel):
    """Schema for updating a user."""
    name: Optional[str] = None
    role: Optional[str] = None
    custom_role: Optional[str] = None
    topic: Optional[str] = None
    custom_topic: Optional[str] = None
    identification: Optional[str] = None
    data_access: Optional[list[str]] = None
    microsoft_session: Optional[FederatedSession] = None


class User(UserBase):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    created_at: datetime
    updated_at: datetime


# ============================================================================
# Chat Schemas
# ============================================================================


class Chat(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    title: str
    user_id: UUID
    visibility: Literal["private", "public"] = "private"
    created_at: datetime
    updated_at: datetime


class ChatMessage(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    chat_id: UUID
    role: Literal["user", "assistant"]
    content: str
    metadata: Optional[TurnMetadata] = None
    created_at: datetime


class ChatWithMessages(Chat):
    """A chat with its messages, oldest first."""
    messages: list[ChatMessage] = Field(default_factory=list)


class MessageVote(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    message_id: UUID
    user_id: UUID
    vote: VoteValue
    feedback: Optional[str] = None
    created_at: datetime


class SuggestedAction(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    message_id: UUID
    action: str
    description: Optional[str] = None
    category: Optional[ActionCategory] = None
    is_completed: bool = False
    created_at: datetime
