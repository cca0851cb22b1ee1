"""Tests for end-to-end message orchestration with mocked collaborators."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from advisor_engine.context.fallback import build_fallback_response
from advisor_engine.context.models import ProviderId, ProviderResponse
from advisor_engine.core.exceptions import ChatValidationError, ProviderCallError
from advisor_engine.services.crm_gateway import CRMDataGateway
from advisor_engine.services.knowledge_base import KnowledgeBase
from advisor_engine.services.orchestrator import ChatOrchestrator, validate_request
from tests.fakes.fake_crm import FakeCRMClient
from tests.fakes.fake_embedder import FakeEmbedder


def _dispatcher(text: str = "Here is my advice.") -> MagicMock:
    dispatcher = MagicMock()

    async def dispatch(provider, system_prompt, message):
        return ProviderResponse(
            text=text,
            tokens_used=321,
            finish_reason="end_turn",
            provider=provider,
            model="gpt-4o" if provider is ProviderId.TECHNICAL else "claude-3-5-sonnet-20241022",
            prompt_chars=len(system_prompt) + len(message),
            latency_ms=12,
        )

    dispatcher.dispatch = AsyncMock(side_effect=dispatch)
    return dispatcher


def _failing_dispatcher() -> MagicMock:
    dispatcher = MagicMock()
    dispatcher.dispatch = AsyncMock(side_effect=ProviderCallError("anthropic", 503, "unavailable"))
    return dispatcher


@pytest.mark.asyncio
async def test_normal_flow_includes_crm_and_knowledge_base(staff_profile):
    dispatcher = _dispatcher()
    crm = FakeCRMClient(contact_id_for_email={"jordan@mas.example.org": 501})
    orchestrator = ChatOrchestrator(
        dispatcher,
        knowledge_base=KnowledgeBase(FakeEmbedder()),
        crm_gateway=CRMDataGateway(crm),
    )

    result = await orchestrator.run("What are my active projects?", staff_profile, [])

    assert result.text == "Here is my advice."
    provider, system_prompt, message = dispatcher.dispatch.call_args.args
    assert provider is ProviderId.CONSULTING
    assert message == "What are my active projects?"
    assert "CiviCRM Data:\nYour Cases (as Coordinator):" in system_prompt
    assert "Your Open Cases:" in system_prompt
    assert "Relevant Knowledge Base Information:" in system_prompt

    event = result.event
    assert event.had_crm_data and event.had_knowledge_base
    assert not event.used_fallback
    assert event.tokens_used == 321
    assert event.user_role == "staff-consultant"


@pytest.mark.asyncio
async def test_crm_not_fetched_when_message_does_not_need_it(make_profile):
    gateway = MagicMock()
    gateway.fetch = AsyncMock()
    orchestrator = ChatOrchestrator(_dispatcher(), crm_gateway=gateway)

    result = await orchestrator.run("What makes a good mission statement?", make_profile())

    gateway.fetch.assert_not_called()
    assert not result.event.had_crm_data


@pytest.mark.asyncio
async def test_technical_messages_route_to_technical_provider(make_profile):
    dispatcher = _dispatcher()
    orchestrator = ChatOrchestrator(dispatcher)

    result = await orchestrator.run("Write python to export contributions", make_profile())

    assert dispatcher.dispatch.call_args.args[0] is ProviderId.TECHNICAL
    assert result.event.model == "gpt-4o"


@pytest.mark.asyncio
async def test_dispatcher_failure_returns_topic_tailored_fallback(make_profile):
    profile = make_profile(topic="finance-it")
    orchestrator = ChatOrchestrator(_failing_dispatcher())

    text = await orchestrator.process_message("How do I plan next year?", profile, [])

    assert text
    assert "Finance & IT" in text
    assert text == build_fallback_response("How do I plan next year?", profile)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "message,profile_fixture",
    [
        ("What are my active projects?", "staff_profile"),
        ("Show me recent donations", "make_profile"),
    ],
)
async def test_gateway_failure_returns_generic_fallback(message, profile_fixture, request):
    profile = request.getfixturevalue(profile_fixture)
    if callable(profile):
        profile = profile()
    gateway = MagicMock()
    gateway.fetch = AsyncMock(side_effect=RuntimeError("CRM exploded"))
    dispatcher = _dispatcher()
    orchestrator = ChatOrchestrator(dispatcher, crm_gateway=gateway)

    result = await orchestrator.run(message, profile, [])

    gateway.fetch.assert_awaited_once()
    assert len(result.text) > 50
    assert "{" not in result.text and "}" not in result.text
    assert result.text == build_fallback_response(message, profile)
    assert result.event.used_fallback
    assert "CRM exploded" in result.event.failure
    dispatcher.dispatch.assert_not_called()


@pytest.mark.asyncio
async def test_knowledge_base_failure_returns_fallback(make_profile):
    orchestrator = ChatOrchestrator(
        _dispatcher(), knowledge_base=KnowledgeBase(FakeEmbedder(fail_all=True))
    )

    result = await orchestrator.run("Board recruitment tips", make_profile())

    assert result.event.used_fallback


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "message,profile",
    [
        ("", {"role": "client", "topic": "ai", "identification": "email"}),
        ("   ", {"role": "client", "topic": "ai", "identification": "email"}),
        ("Hello", None),
        ("Hello", {"role": "client", "topic": "ai"}),
        ("Hello", {
            "role": "client", "topic": "ai", "identification": "email",
            "dataAccess": ["project-history"],
        }),
    ],
)
async def test_malformed_input_raises_before_remote_calls(message, profile):
    dispatcher = _dispatcher()
    orchestrator = ChatOrchestrator(dispatcher)

    with pytest.raises(ChatValidationError):
        await orchestrator.run(message, profile, [])

    dispatcher.dispatch.assert_not_called()


def test_validate_request_parses_dict_profile_and_history():
    message, profile, turns = validate_request(
        "Hi",
        {"role": "other", "customRole": "Treasurer", "topic": "hr", "identification": "anonymous"},
        [{"sender": "user", "content": "Earlier question"}],
    )
    assert profile.custom_role == "Treasurer"
    assert turns[0].content == "Earlier question"


def test_validate_request_rejects_bad_history(make_profile):
    with pytest.raises(ChatValidationError):
        validate_request("Hi", make_profile(), [{"sender": "robot", "content": "?"}])


@pytest.mark.asyncio
async def test_event_sink_receives_one_event(make_profile):
    sink = AsyncMock()
    orchestrator = ChatOrchestrator(_dispatcher(), event_sink=sink)

    result = await orchestrator.run("Hello", make_profile())

    sink.assert_awaited_once_with(result.event)


@pytest.mark.asyncio
async def test_event_sink_failure_does_not_break_reply(make_profile):
    sink = AsyncMock(side_effect=RuntimeError("db down"))
    orchestrator = ChatOrchestrator(_dispatcher(), event_sink=sink)

    assert await orchestrator.process_message("Hello", make_profile()) == "Here is my advice."


@pytest.mark.asyncio
async def test_cancellation_is_not_swallowed(make_profile):
    dispatcher = MagicMock()
    dispatcher.dispatch = AsyncMock(side_effect=asyncio.CancelledError())
    orchestrator = ChatOrchestrator(dispatcher)

    with pytest.raises(asyncio.CancelledError):
        await orchestrator.run("Hello", make_profile())


def _streaming_dispatcher(deltas: list[str], error: Exception | None = None) -> MagicMock:
    dispatcher = MagicMock()
    dispatcher.model_for.return_value = "claude-3-5-sonnet-20241022"

    async def stream(provider, system_prompt, message):
        for delta in deltas:
            yield delta
        if error is not None:
            raise error
        yield ProviderResponse(
            text="".join(deltas), tokens_used=77, provider=provider,
            model="claude-3-5-sonnet-20241022",
        )

    dispatcher.stream = MagicMock(side_effect=stream)
    return dispatcher


async def _collect(orchestrator, message, profile):
    return [chunk async for chunk in orchestrator.stream(message, profile, [])]


@pytest.mark.asyncio
async def test_stream_yields_deltas_and_one_final_event(staff_profile):
    sink = AsyncMock()
    dispatcher = _streaming_dispatcher(["Your ", "cases are ", "on track."])
    orchestrator = ChatOrchestrator(
        dispatcher,
        crm_gateway=CRMDataGateway(
            FakeCRMClient(contact_id_for_email={"jordan@mas.example.org": 501})
        ),
        event_sink=sink,
    )

    chunks = await _collect(orchestrator, "What are my active projects?", staff_profile)

    assert [c.text for c in chunks[:-1]] == ["Your ", "cases are ", "on track."]
    event = chunks[-1].event
    assert event is not None and chunks[-1].text == ""
    assert event.had_crm_data
    assert event.tokens_used == 77
    assert not event.used_fallback
    sink.assert_awaited_once_with(event)
    system_prompt = dispatcher.stream.call_args.args[1]
    assert "Your Open Cases:" in system_prompt


@pytest.mark.asyncio
async def test_stream_failure_before_text_sends_fallback_once(make_profile):
    profile = make_profile(topic="finance-it")
    dispatcher = _streaming_dispatcher([], error=ProviderCallError("anthropic", 503, "down"))
    orchestrator = ChatOrchestrator(dispatcher)

    chunks = await _collect(orchestrator, "How do I plan next year?", profile)

    assert len(chunks) == 2
    assert chunks[0].text == build_fallback_response("How do I plan next year?", profile)
    assert chunks[1].event.used_fallback
    assert chunks[1].event.model is None


@pytest.mark.asyncio
async def test_stream_failure_after_text_records_failure_without_fallback(make_profile):
    dispatcher = _streaming_dispatcher(["Partial"], error=ProviderCallError("anthropic", None))
    orchestrator = ChatOrchestrator(dispatcher)

    chunks = await _collect(orchestrator, "Board tips", make_profile())

    assert [c.text for c in chunks[:-1]] == ["Partial"]
    event = chunks[-1].event
    assert not event.used_fallback
    assert "anthropic call failed (no response)" in event.failure
    assert event.model == "claude-3-5-sonnet-20241022"
