"""Send an assembled prompt to the selected text-generation provider.

CONSULTING goes to Anthropic messages, TECHNICAL to OpenAI chat
completions, either as one reply or as a stream of text deltas. Both
use the same decoding settings; replies come back as a
ProviderResponse. Vendor errors surface as ProviderCallError.
"""

import time
from typing import Any, AsyncIterator

import anthropic
import openai
from anthropic import AsyncAnthropic
from openai import AsyncOpenAI

from advisor_engine.context.models import ProviderId, ProviderResponse
from advisor_engine.core.exceptions import ProviderCallError
from advisor_engine.core.logging import get_logger

logger = get_logger(__name__)


class ModelDispatcher:
    """Routes a (system prompt, user message) pair to one provider."""

    def __init__(
        self,
        anthropic_client: AsyncAnthropic,
        openai_client: AsyncOpenAI,
        consulting_model: str = "claude-3-5-sonnet-20241022",
        technical_model: str = "gpt-4o",
        max_tokens: int = 2000,
        temperature: float = 0.7,
    ):
        self.anthropic_client = anthropic_client
        self.openai_client = openai_client
        self.models = {
            ProviderId.CONSULTING: consulting_model,
            ProviderId.TECHNICAL: technical_model,
        }
        self.max_tokens = max_tokens
        self.temperature = temperature

    def model_for(self, provider: ProviderId) -> str:
        return self.models[provider]

    async def _call_consulting(self, model: str, system_prompt: str, message: str) -> dict[str, Any]:
        try:
            response = await self.anthropic_client.messages.create(
                model=model,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                system=system_prompt,
                messages=[{"role": "user", "content": message}],
            )
        except anthropic.APIStatusError as e:
            raise ProviderCallError("anthropic", e.status_code, e.message) from e
        except anthropic.APIError as e:
            raise ProviderCallError("anthropic", None, str(e)) from e

        text = "".join(
            block.text for block in response.content if getattr(block, "type", None) == "text"
        )
        usage = response.usage
        tokens = (usage.input_tokens + usage.output_tokens) if usage else None
        return {"text": text, "tokens": tokens, "finish_reason": response.stop_reason}

    async def _call_technical(self, model: str, system_prompt: str, message: str) -> dict[str, Any]:
        try:
            response = await self.openai_client.chat.completions.create(
                model=model,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": message},
                ],
            )
        except openai.APIStatusError as e:
            raise ProviderCallError("openai", e.status_code, e.message) from e
        except openai.APIError as e:
            raise ProviderCallError("openai", None, str(e)) from e

        if not response.choices:
            return {"text": "", "tokens": None, "finish_reason": None}
        choice = response.choices[0]
        tokens = response.usage.total_tokens if response.usage else None
        return {
            "text": choice.message.content or "",
            "tokens": tokens,
            "finish_reason": choice.finish_reason,
        }

    async def dispatch(
        self, provider: ProviderId, system_prompt: str, message: str
    ) -> ProviderResponse:
        """
        Call the provider and normalise its reply.

        Raises:
            ProviderCallError: On any vendor failure or an empty reply
        """
        model = self.model_for(provider)
        prompt_chars = len(system_prompt) + len(message)

        start = time.monotonic()
        if provider is ProviderId.TECHNICAL:
            raw = await self._call_technical(model, system_prompt, message)
        else:
            raw = await self._call_consulting(model, system_prompt, message)
        latency_ms = int((time.monotonic() - start) * 1000)

        if not raw["text"].strip():
            raise ProviderCallError(provider.vendor, None, "empty response")

        logger.info(
            f"{provider.vendor} reply: model={model} prompt_chars={prompt_chars} "
            f"tokens={raw['tokens']} finish={raw['finish_reason']} in {latency_ms}ms"
        )

        return ProviderResponse(
            text=raw["text"],
            tokens_used=raw["tokens"],
            finish_reason=raw["finish_reason"],
            provider=provider,
            model=model,
            prompt_chars=prompt_chars,
            latency_ms=latency_ms,
        )

    # ── Streaming ─────────────────────────────────────────────────

    async def _stream_consulting(
        self, model: str, system_prompt: str, message: str, usage: dict[str, Any]
    ) -> AsyncIterator[str]:
        try:
            async with self.anthropic_client.messages.stream(
                model=model,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                system=system_prompt,
                messages=[{"role": "user", "content": message}],
            ) as stream:
                async for event in stream:
                    if event.type == "content_block_delta" and hasattr(event.delta, "text"):
                        yield event.delta.text
                final_message = await stream.get_final_message()
        except anthropic.APIStatusError as e:
            raise ProviderCallError("anthropic", e.status_code, e.message) from e
        except anthropic.APIError as e:
            raise ProviderCallError("anthropic", None, str(e)) from e

        if final_message.usage:
            usage["tokens"] = final_message.usage.input_tokens + final_message.usage.output_tokens
        usage["finish_reason"] = final_message.stop_reason

    async def _stream_technical(
        self, model: str, system_prompt: str, message: str, usage: dict[str, Any]
    ) -> AsyncIterator[str]:
        try:
            stream = await self.openai_client.chat.completions.create(
                model=model,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": message},
                ],
                stream=True,
                stream_options={"include_usage": True},
            )
            async for chunk in stream:
                if chunk.usage:
                    usage["tokens"] = chunk.usage.total_tokens
                if not chunk.choices:
                    continue
                choice = chunk.choices[0]
                if choice.finish_reason:
                    usage["finish_reason"] = choice.finish_reason
                if choice.delta.content:
                    yield choice.delta.content
        except openai.APIStatusError as e:
            raise ProviderCallError("openai", e.status_code, e.message) from e
        except openai.APIError as e:
            raise ProviderCallError("openai", None, str(e)) from e

    async def stream(
        self, provider: ProviderId, system_prompt: str, message: str
    ) -> AsyncIterator[str | ProviderResponse]:
        """
        Stream the provider's reply as text deltas.

        After the last delta, one ProviderResponse with the full text and
        usage is yielded.

        Raises:
            ProviderCallError: On any vendor failure, or when no text arrived
        """
        model = self.model_for(provider)
        prompt_chars = len(system_prompt) + len(message)
        usage: dict[str, Any] = {"tokens": None, "finish_reason": None}

        if provider is ProviderId.TECHNICAL:
            deltas = self._stream_technical(model, system_prompt, message, usage)
        else:
            deltas = self._stream_consulting(model, system_prompt, message, usage)

        start = time.monotonic()
        parts: list[str] = []
        async for delta in deltas:
            parts.append(delta)
            yield delta
        latency_ms = int((time.monotonic() - start) * 1000)

        text = "".join(parts)
        if not text.strip():
            raise ProviderCallError(provider.vendor, None, "empty response")

        logger.info(
            f"{provider.vendor} stream: model={model} prompt_chars={prompt_chars} "
            f"tokens={usage['tokens']} finish={usage['finish_reason']} in {latency_ms}ms"
        )

        yield ProviderResponse(
            text=text,
            tokens_used=usage["tokens"],
            finish_reason=usage["finish_reason"],
            provider=provider,
            model=model,
            prompt_chars=prompt_chars,
            latency_ms=latency_ms,
        )
