"""Tests for conversation persistence with a mocked Supabase client."""

from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import pytest

from advisor_engine.context.models import OrchestrationEvent, TurnMetadata
from advisor_engine.db.analytics import record_orchestration_event
from advisor_engine.db.chats import create_chat, delete_chat, generate_chat_title
from advisor_engine.db.messages import create_message, vote_on_message
from advisor_engine.db.users import get_or_create_user

NOW = "2026-01-05T10:00:00+00:00"


def test_title_is_first_six_words():
    assert generate_chat_title("How do I set up a donor database in CiviCRM?") == (
        "How do I set up a"
    )


def test_long_title_is_capped():
    title = generate_chat_title("Supercalifragilistic " * 6)
    assert len(title) == 53
    assert title.endswith("...")


def test_blank_message_gets_default_title():
    assert generate_chat_title("   ") == "New conversation"


@pytest.mark.asyncio
async def test_create_chat_inserts_row():
    user_id, chat_id = uuid4(), uuid4()
    mock_client = MagicMock()
    mock_client.table.return_value.insert.return_value.execute.return_value.data = [{
        "id": str(chat_id), "title": "Board help", "user_id": str(user_id),
        "visibility": "private", "created_at": NOW, "updated_at": NOW,
    }]

    with patch("advisor_engine.db.chats.get_client", return_value=mock_client):
        chat = await create_chat(user_id, "Board help")

    assert chat.id == chat_id
    mock_client.table.assert_called_with("chats")
    inserted = mock_client.table.return_value.insert.call_args.args[0]
    assert inserted == {"user_id": str(user_id), "title": "Board help", "visibility": "private"}


@pytest.mark.asyncio
async def test_delete_chat_reports_missing():
    mock_client = MagicMock()
    mock_client.table.return_value.delete.return_value.eq.return_value.execute.return_value.data = []

    with patch("advisor_engine.db.chats.get_client", return_value=mock_client):
        assert await delete_chat(uuid4()) is False


@pytest.mark.asyncio
async def test_assistant_message_metadata_uses_stored_field_names():
    chat_id, message_id = uuid4(), uuid4()
    mock_client = MagicMock()
    mock_client.table.return_value.insert.return_value.execute.return_value.data = [{
        "id": str(message_id), "chat_id": str(chat_id), "role": "assistant",
        "content": "Answer", "created_at": NOW,
        "metadata": {"model": "gpt-4o", "tokensUsed": 50, "hadCiviCRMData": True},
    }]
    metadata = TurnMetadata(model="gpt-4o", tokens_used=50, had_crm_data=True)

    with patch("advisor_engine.db.messages.get_client", return_value=mock_client):
        message = await create_message(chat_id, "assistant", "Answer", metadata)

    row = mock_client.table.return_value.insert.call_args.args[0]
    assert row["metadata"]["tokensUsed"] == 50
    assert row["metadata"]["hadCiviCRMData"] is True
    assert message.metadata.tokens_used == 50


@pytest.mark.asyncio
async def test_second_vote_updates_existing_row():
    message_id, user_id, vote_id = uuid4(), uuid4(), uuid4()
    mock_client = MagicMock()
    table = mock_client.table.return_value
    table.select.return_value.eq.return_value.eq.return_value.execute.return_value.data = [
        {"id": str(vote_id)}
    ]
    table.update.return_value.eq.return_value.execute.return_value.data = [{
        "id": str(vote_id), "message_id": str(message_id), "user_id": str(user_id),
        "vote": "down", "feedback": "Too generic", "created_at": NOW,
    }]

    with patch("advisor_engine.db.messages.get_client", return_value=mock_client):
        vote = await vote_on_message(message_id, user_id, "down", "Too generic")

    assert vote.vote == "down"
    table.update.assert_called_once_with({"vote": "down", "feedback": "Too generic"})
    table.insert.assert_not_called()


@pytest.mark.asyncio
async def test_analytics_write_failure_is_swallowed():
    event = OrchestrationEvent(user_role="client", used_fallback=True)

    with patch("advisor_engine.db.analytics.get_client", side_effect=RuntimeError("no db")):
        await record_orchestration_event(event)


@pytest.mark.asyncio
async def test_analytics_row_for_fallback_reply():
    mock_client = MagicMock()
    event = OrchestrationEvent(user_role="client", used_fallback=True, latency_ms=40)

    with patch("advisor_engine.db.analytics.get_client", return_value=mock_client):
        await record_orchestration_event(event)

    row = mock_client.table.return_value.insert.call_args.args[0]
    assert row["model"] == "fallback"
    assert row["response_time"] == 40
    assert row["user_role"] == "client"


@pytest.mark.asyncio
async def test_unverified_email_does_not_overwrite_stored_profile(make_profile):
    existing = MagicMock()
    update = AsyncMock()

    with patch("advisor_engine.db.users.get_user_by_email", AsyncMock(return_value=existing)), \
         patch("advisor_engine.db.users.update_user", update):
        user, created = await get_or_create_user(
            "member@example.org", make_profile(role="client"), refresh_profile=False
        )

    assert user is existing
    assert created is False
    update.assert_not_called()
