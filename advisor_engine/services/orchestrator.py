"""Per-message chat orchestration.

classify -> CRM fetch (when needed) -> knowledge base lookup -> prompt
assembly -> provider dispatch, as one reply or as a stream. Any upstream
failure is replaced by the rule-based fallback reply; only
ChatValidationError reaches the caller.
"""

import asyncio
import logging
import time
from typing import Any, AsyncIterator, Awaitable, Callable

from anthropic import AsyncAnthropic
from openai import AsyncOpenAI
from pydantic import ValidationError

from advisor_engine.context.classifier import classify_message
from advisor_engine.context.fallback import build_fallback_response
from advisor_engine.context.models import (
    ChatResult,
    ConversationTurn,
    OrchestrationEvent,
    ProviderId,
    ProviderResponse,
    StreamChunk,
    UserProfile,
)
from advisor_engine.context.profile_display import resolve_role_display
from advisor_engine.context.prompt_assembler import DEFAULT_HISTORY_TURNS, build_system_prompt
from advisor_engine.context.token_budget import TokenBudgetManager
from advisor_engine.core.config import Settings, get_settings
from advisor_engine.core.embeddings import OpenAIEmbedder
from advisor_engine.core.exceptions import ChatValidationError
from advisor_engine.core.logging import get_logger, log_with_context
from advisor_engine.services.civicrm_client import CiviCRMClient
from advisor_engine.services.crm_gateway import CRMDataGateway
from advisor_engine.services.knowledge_base import KnowledgeBase
from advisor_engine.services.model_dispatcher import ModelDispatcher

logger = get_logger(__name__)

EventSink = Callable[[OrchestrationEvent], Awaitable[None]]


def validate_request(
    message: Any,
    profile: UserProfile | dict | None,
    previous_messages: list | None = None,
) -> tuple[str, UserProfile, list[ConversationTurn]]:
    """
    Check orchestrator input before any remote call.

    Returns:
        (message, profile, turns) with the profile and turns parsed

    Raises:
        ChatValidationError: Blank message, missing or invalid profile,
            malformed history
    """
    if not isinstance(message, str) or not message.strip():
        raise ChatValidationError("Message is required")

    if profile is None:
        raise ChatValidationError("User profile is required")
    if not isinstance(profile, UserProfile):
        try:
            profile = UserProfile.model_validate(profile)
        except ValidationError as e:
            raise ChatValidationError(f"Invalid user profile: {e.errors()[0]['msg']}") from e

    turns: list[ConversationTurn] = []
    for item in previous_messages or []:
        if isinstance(item, ConversationTurn):
            turns.append(item)
            continue
        try:
            turns.append(ConversationTurn.model_validate(item))
        except ValidationError as e:
            raise ChatValidationError(f"Invalid previous message: {e.errors()[0]['msg']}") from e

    return message, profile, turns


class ChatOrchestrator:
    """Composes classification, retrieval, assembly and dispatch for one message."""

    def __init__(
        self,
        dispatcher: ModelDispatcher,
        knowledge_base: KnowledgeBase | None = None,
        crm_gateway: CRMDataGateway | None = None,
        budget_manager: TokenBudgetManager | None = None,
        history_turns: int = DEFAULT_HISTORY_TURNS,
        kb_top_k: int = 2,
        event_sink: EventSink | None = None,
    ):
        self.dispatcher = dispatcher
        self.knowledge_base = knowledge_base
        self.crm_gateway = crm_gateway
        self.budget_manager = budget_manager
        self.history_turns = history_turns
        self.kb_top_k = kb_top_k
        self.event_sink = event_sink

    async def _prepare(
        self,
        message: str,
        profile: UserProfile,
        turns: list[ConversationTurn],
        event: OrchestrationEvent,
    ) -> tuple[ProviderId, str]:
        """Classify, gather CRM and knowledge base context, and build the system prompt."""
        classification = classify_message(message, profile)
        event.provider = classification.provider

        crm_context = ""
        if classification.needs_crm and self.crm_gateway is not None:
            crm_result = await self.crm_gateway.fetch(message, profile)
            crm_context = crm_result.text
            event.had_crm_data = crm_result.has_data

        kb_context = ""
        if self.knowledge_base is not None:
            kb_context = await self.knowledge_base.get_context_for_query(
                message, resolve_role_display(profile), self.kb_top_k
            )
            event.had_knowledge_base = bool(kb_context)

        prompt = build_system_prompt(
            profile,
            history=turns,
            kb_context=kb_context,
            crm_context=crm_context,
            budget_manager=self.budget_manager,
            history_turns=self.history_turns,
        )
        return classification.provider, prompt.text

    def _record_failure(self, event: OrchestrationEvent, error: Exception) -> None:
        provider = getattr(error, "provider", None) or (
            event.provider.vendor if event.provider else "unknown"
        )
        logger.error(
            f"Chat pipeline failed: provider={provider} "
            f"cause={type(error).__name__}: {error}"
        )
        event.failure = f"{type(error).__name__}: {error}"

    async def run(
        self,
        message: str,
        profile: UserProfile | dict | None,
        previous_messages: list | None = None,
    ) -> ChatResult:
        """
        Answer one message.

        Returns:
            ChatResult with the reply (provider text or fallback) and its event

        Raises:
            ChatValidationError: If the input is malformed
        """
        message, profile, turns = validate_request(message, profile, previous_messages)

        start = time.monotonic()
        event = OrchestrationEvent(user_role=profile.role)

        try:
            provider, system_prompt = await self._prepare(message, profile, turns, event)
            response = await self.dispatcher.dispatch(provider, system_prompt, message)
            event.model = response.model
            event.tokens_used = response.tokens_used
            text = response.text

        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._record_failure(event, e)
            event.used_fallback = True
            text = build_fallback_response(message, profile)

        event.latency_ms = int((time.monotonic() - start) * 1000)
        await self._emit(event)
        return ChatResult(text=text, event=event)

    async def stream(
        self,
        message: str,
        profile: UserProfile | dict | None,
        previous_messages: list | None = None,
    ) -> AsyncIterator[StreamChunk]:
        """
        Answer one message as provider text deltas.

        The final chunk carries the orchestration event and no text. When the
        pipeline fails before any provider text was sent, the fallback reply
        goes out as a single chunk. A failure after that ends the reply where
        it stopped and is recorded on the event.

        Raises:
            ChatValidationError: If the input is malformed (on first iteration)
        """
        message, profile, turns = validate_request(message, profile, previous_messages)

        start = time.monotonic()
        event = OrchestrationEvent(user_role=profile.role)
        sent_text = False

        try:
            provider, system_prompt = await self._prepare(message, profile, turns, event)
            async for item in self.dispatcher.stream(provider, system_prompt, message):
                if isinstance(item, ProviderResponse):
                    event.model = item.model
                    event.tokens_used = item.tokens_used
                    continue
                sent_text = True
                yield StreamChunk(text=item)

        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._record_failure(event, e)
            if sent_text:
                event.model = self.dispatcher.model_for(event.provider)
            else:
                event.used_fallback = True
                yield StreamChunk(text=build_fallback_response(message, profile))

        event.latency_ms = int((time.monotonic() - start) * 1000)
        await self._emit(event)
        yield StreamChunk(event=event)

    async def process_message(
        self,
        message: str,
        profile: UserProfile | dict | None,
        previous_messages: list | None = None,
    ) -> str:
        """Reply text only. Never raises except ChatValidationError."""
        return (await self.run(message, profile, previous_messages)).text

    async def _emit(self, event: OrchestrationEvent) -> None:
        log_with_context(
            logger,
            logging.INFO,
            "Orchestration complete",
            request_id=event.request_id,
            provider=event.provider.value if event.provider else None,
            model=event.model,
            user_role=event.user_role,
            tokens_used=event.tokens_used,
            latency_ms=event.latency_ms,
            had_crm_data=event.had_crm_data,
            had_knowledge_base=event.had_knowledge_base,
            used_fallback=event.used_fallback,
        )
        if self.event_sink is None:
            return
        try:
            await self.event_sink(event)
        except Exception as e:
            logger.warning(f"Failed to record orchestration event {event.request_id}: {e}")


def build_orchestrator(settings: Settings | None = None) -> ChatOrchestrator:
    """Wire the default collaborators from settings."""
    settings = settings or get_settings()

    dispatcher = ModelDispatcher(
        anthropic_client=AsyncAnthropic(
            api_key=settings.ANTHROPIC_API_KEY, timeout=settings.LLM_TIMEOUT_SECONDS
        ),
        openai_client=AsyncOpenAI(
            api_key=settings.OPENAI_API_KEY, timeout=settings.LLM_TIMEOUT_SECONDS
        ),
        consulting_model=settings.CONSULTING_MODEL,
        technical_model=settings.TECHNICAL_MODEL,
        max_tokens=settings.CHAT_MAX_TOKENS,
        temperature=settings.CHAT_TEMPERATURE,
    )

    crm_gateway = None
    if settings.CIVICRM_REST_URL:
        crm_client = CiviCRMClient(
            rest_url=settings.CIVICRM_REST_URL,
            api_key=settings.CIVICRM_API_KEY,
            site_key=settings.CIVICRM_SITE_KEY,
            timeout=settings.CRM_TIMEOUT_SECONDS,
            verify=settings.CIVICRM_VERIFY_SSL,
        )
        crm_gateway = CRMDataGateway(crm_client, call_timeout=settings.CRM_TIMEOUT_SECONDS)
    else:
        logger.info("CIVICRM_REST_URL not set, CRM lookups disabled")

    return ChatOrchestrator(
        dispatcher=dispatcher,
        knowledge_base=KnowledgeBase(OpenAIEmbedder(settings.EMBEDDING_TIMEOUT_SECONDS)),
        crm_gateway=crm_gateway,
        budget_manager=TokenBudgetManager(total_budget=settings.PROMPT_TOKEN_BUDGET),
        history_turns=settings.HISTORY_TURNS,
        kb_top_k=settings.KB_TOP_K,
    )
