"""Tests for provider dispatch with mocked vendor clients."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import anthropic
import httpx
import openai
import pytest

from advisor_engine.context.models import ProviderId
from advisor_engine.core.exceptions import ProviderCallError
from advisor_engine.services.model_dispatcher import ModelDispatcher


def _anthropic_reply(text: str = "Start with a board skills matrix."):
    return SimpleNamespace(
        content=[SimpleNamespace(type="text", text=text)],
        usage=SimpleNamespace(input_tokens=120, output_tokens=30),
        stop_reason="end_turn",
    )


def _openai_reply(text: str | None = "SELECT COUNT(*) FROM civicrm_contact;"):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=text), finish_reason="stop")],
        usage=SimpleNamespace(total_tokens=88),
    )


@pytest.fixture
def clients():
    anthropic_client = MagicMock()
    anthropic_client.messages.create = AsyncMock(return_value=_anthropic_reply())
    openai_client = MagicMock()
    openai_client.chat.completions.create = AsyncMock(return_value=_openai_reply())
    return anthropic_client, openai_client


@pytest.fixture
def dispatcher(clients):
    anthropic_client, openai_client = clients
    return ModelDispatcher(anthropic_client, openai_client)


def _request(url: str) -> httpx.Request:
    return httpx.Request("POST", url)


@pytest.mark.asyncio
async def test_consulting_goes_to_anthropic(dispatcher, clients):
    anthropic_client, openai_client = clients

    response = await dispatcher.dispatch(ProviderId.CONSULTING, "SYSTEM", "How do I start?")

    assert response.text == "Start with a board skills matrix."
    assert response.tokens_used == 150
    assert response.model == "claude-3-5-sonnet-20241022"
    assert response.prompt_chars == len("SYSTEM") + len("How do I start?")
    kwargs = anthropic_client.messages.create.call_args.kwargs
    assert kwargs["system"] == "SYSTEM"
    assert kwargs["messages"] == [{"role": "user", "content": "How do I start?"}]
    assert kwargs["max_tokens"] == 2000
    assert kwargs["temperature"] == 0.7
    openai_client.chat.completions.create.assert_not_called()


@pytest.mark.asyncio
async def test_technical_goes_to_openai(dispatcher, clients):
    _, openai_client = clients

    response = await dispatcher.dispatch(ProviderId.TECHNICAL, "SYSTEM", "Write SQL")

    assert response.text.startswith("SELECT")
    assert response.tokens_used == 88
    assert response.model == "gpt-4o"
    messages = openai_client.chat.completions.create.call_args.kwargs["messages"]
    assert messages == [
        {"role": "system", "content": "SYSTEM"},
        {"role": "user", "content": "Write SQL"},
    ]


@pytest.mark.asyncio
async def test_anthropic_status_error_carries_status(dispatcher, clients):
    anthropic_client, _ = clients
    response = httpx.Response(529, request=_request("https://api.anthropic.com/v1/messages"))
    anthropic_client.messages.create.side_effect = anthropic.APIStatusError(
        "Overloaded", response=response, body=None
    )

    with pytest.raises(ProviderCallError) as exc_info:
        await dispatcher.dispatch(ProviderId.CONSULTING, "SYSTEM", "hi")

    assert exc_info.value.provider == "anthropic"
    assert exc_info.value.status == 529


@pytest.mark.asyncio
async def test_openai_connection_error_has_no_status(dispatcher, clients):
    _, openai_client = clients
    openai_client.chat.completions.create.side_effect = openai.APIConnectionError(
        request=_request("https://api.openai.com/v1/chat/completions")
    )

    with pytest.raises(ProviderCallError) as exc_info:
        await dispatcher.dispatch(ProviderId.TECHNICAL, "SYSTEM", "python help")

    assert exc_info.value.provider == "openai"
    assert exc_info.value.status is None


@pytest.mark.asyncio
async def test_empty_reply_is_an_error(dispatcher, clients):
    _, openai_client = clients
    openai_client.chat.completions.create.return_value = _openai_reply(text=None)

    with pytest.raises(ProviderCallError, match="empty response"):
        await dispatcher.dispatch(ProviderId.TECHNICAL, "SYSTEM", "api question")


def test_provider_error_message_keeps_detail_intact():
    assert str(ProviderCallError("openai", 500, "bad request: ")) == (
        "openai call failed (500): bad request: "
    )
    assert str(ProviderCallError("anthropic", None)) == "anthropic call failed (no response)"


class _AnthropicStream:
    """Stands in for the SDK's message stream context manager."""

    def __init__(self, texts: list[str]):
        self.texts = texts

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def __aiter__(self):
        yield SimpleNamespace(type="message_start")
        for text in self.texts:
            yield SimpleNamespace(type="content_block_delta", delta=SimpleNamespace(text=text))

    async def get_final_message(self):
        return _anthropic_reply("".join(self.texts))


async def _openai_chunks(texts: list[str]):
    for text in texts:
        yield SimpleNamespace(
            choices=[SimpleNamespace(delta=SimpleNamespace(content=text), finish_reason=None)],
            usage=None,
        )
    yield SimpleNamespace(
        choices=[SimpleNamespace(delta=SimpleNamespace(content=None), finish_reason="stop")],
        usage=None,
    )
    yield SimpleNamespace(choices=[], usage=SimpleNamespace(total_tokens=64))


@pytest.mark.asyncio
async def test_consulting_stream_yields_deltas_then_reply(dispatcher, clients):
    anthropic_client, _ = clients
    anthropic_client.messages.stream = MagicMock(
        return_value=_AnthropicStream(["Recruit ", "for skills."])
    )

    items = [item async for item in dispatcher.stream(ProviderId.CONSULTING, "SYSTEM", "Board?")]

    assert items[:-1] == ["Recruit ", "for skills."]
    final = items[-1]
    assert final.text == "Recruit for skills."
    assert final.tokens_used == 150
    assert final.finish_reason == "end_turn"
    kwargs = anthropic_client.messages.stream.call_args.kwargs
    assert kwargs["max_tokens"] == 2000
    assert kwargs["temperature"] == 0.7
    assert kwargs["system"] == "SYSTEM"


@pytest.mark.asyncio
async def test_technical_stream_reports_usage(dispatcher, clients):
    _, openai_client = clients
    openai_client.chat.completions.create = AsyncMock(
        return_value=_openai_chunks(["SELECT ", "1;"])
    )

    items = [item async for item in dispatcher.stream(ProviderId.TECHNICAL, "SYSTEM", "SQL?")]

    assert items[:-1] == ["SELECT ", "1;"]
    assert items[-1].tokens_used == 64
    assert items[-1].finish_reason == "stop"
    kwargs = openai_client.chat.completions.create.call_args.kwargs
    assert kwargs["stream"] is True


@pytest.mark.asyncio
async def test_stream_status_error_is_wrapped(dispatcher, clients):
    _, openai_client = clients
    response = httpx.Response(429, request=_request("https://api.openai.com/v1/chat/completions"))
    openai_client.chat.completions.create = AsyncMock(
        side_effect=openai.APIStatusError("Rate limited", response=response, body=None)
    )

    with pytest.raises(ProviderCallError) as exc_info:
        async for _ in dispatcher.stream(ProviderId.TECHNICAL, "SYSTEM", "api question"):
            pass

    assert exc_info.value.status == 429


@pytest.mark.asyncio
async def test_empty_stream_is_an_error(dispatcher, clients):
    _, openai_client = clients
    openai_client.chat.completions.create = AsyncMock(return_value=_openai_chunks([]))

    with pytest.raises(ProviderCallError, match="empty response"):
        async for _ in dispatcher.stream(ProviderId.TECHNICAL, "SYSTEM", "api question"):
            pass
