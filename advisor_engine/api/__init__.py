"""API router for v1 endpoints."""

from fastapi import APIRouter

from advisor_engine.api import chat, conversations

router = APIRouter()

# Chat turn endpoint
router.include_router(chat.router, tags=["chat"])

# Conversation history, renaming and votes
router.include_router(conversations.router, tags=["conversations"])
