"""System prompt assembly.

Sections, in priority order:
1. base instructions
2. user profile + recent conversation turns
3. role-specific guidance
4. knowledge base excerpts (if any)
5. CRM data (if any)

Identity and behaviour come first; retrieved facts come last. Sections
are joined by a blank line and empty sections are left out entirely.
The same inputs always produce the same prompt.
"""

from advisor_engine.context.models import AssembledPrompt, ConversationTurn, UserProfile
from advisor_engine.context.profile_display import resolve_role_display, resolve_topic_display
from advisor_engine.context.prompt_blocks import (
    BASE_INSTRUCTIONS,
    CRM_DATA_HEADER,
    HISTORY_HEADER,
    PROFILE_HEADER,
    role_guidance,
)
from advisor_engine.context.token_budget import TokenBudgetManager
from advisor_engine.core.logging import get_logger

logger = get_logger(__name__)

SECTION_SEPARATOR = "\n\n"
DEFAULT_HISTORY_TURNS = 5


def render_profile(profile: UserProfile) -> str:
    """Profile lines shown to the model."""
    return "\n".join([
        PROFILE_HEADER,
        f"- Role: {resolve_role_display(profile)}",
        f"- Primary Topic of Interest: {resolve_topic_display(profile)}",
        f"- Data Access Level: {', '.join(profile.data_access)}",
        f"- Identification Method: {profile.identification}",
    ])


def render_history(turns: list[ConversationTurn]) -> str:
    if not turns:
        return ""
    lines = [f"{turn.sender}: {turn.content}" for turn in turns]
    return HISTORY_HEADER + "\n" + "\n".join(lines)


def render_crm_block(crm_context: str) -> str:
    crm_context = crm_context.strip()
    if not crm_context:
        return ""
    return f"{CRM_DATA_HEADER}\n{crm_context}"


def _profile_section(profile: UserProfile, turns: list[ConversationTurn]) -> str:
    parts = [render_profile(profile)]
    history = render_history(turns)
    if history:
        parts.append(history)
    return SECTION_SEPARATOR.join(parts)


def _join(sections: list[str]) -> str:
    return SECTION_SEPARATOR.join(s for s in sections if s)


def build_system_prompt(
    profile: UserProfile,
    history: list[ConversationTurn] | None = None,
    kb_context: str = "",
    crm_context: str = "",
    budget_manager: TokenBudgetManager | None = None,
    history_turns: int = DEFAULT_HISTORY_TURNS,
) -> AssembledPrompt:
    """
    Build the system prompt for one message.

    Args:
        profile: Validated user profile
        history: Conversation turns, oldest first
        kb_context: Knowledge base block (already labelled) or ""
        crm_context: CRM text (labelled here) or ""
        budget_manager: When given, the prompt is fitted to its budget
        history_turns: How many of the most recent turns to render

    Returns:
        AssembledPrompt with the final text and the names of included sections
    """
    turns = list(history or [])[-history_turns:] if history_turns > 0 else []
    kb_block = kb_context.strip()
    crm_block = render_crm_block(crm_context)
    guidance = role_guidance(profile.role)

    requested = {
        "base_instructions": BASE_INSTRUCTIONS,
        "profile": render_profile(profile),
        "conversation_history": render_history(turns),
        "role_guidance": guidance,
        "knowledge_base": kb_block,
        "crm_data": crm_block,
    }

    def compose(kept_turns: list[ConversationTurn], kb: str, crm: str) -> str:
        return _join([
            BASE_INSTRUCTIONS,
            _profile_section(profile, kept_turns),
            guidance,
            kb,
            crm,
        ])

    text = compose(turns, kb_block, crm_block)
    budget = None

    if budget_manager is not None:
        turns_dropped = 0

        # 1. Oldest turns go first
        while turns and not budget_manager.fits(text):
            turns = turns[1:]
            turns_dropped += 1
            text = compose(turns, kb_block, crm_block)

        # 2. Then the knowledge base block
        if kb_block and not budget_manager.fits(text):
            kb_block = ""
            text = compose(turns, kb_block, crm_block)

        # 3. Then the CRM block is cut down to what is left
        if crm_block and not budget_manager.fits(text):
            without_crm = compose(turns, kb_block, "")
            separator_cost = budget_manager.count_tokens(SECTION_SEPARATOR)
            allowance = (
                budget_manager.total_budget
                - budget_manager.count_tokens(without_crm)
                - separator_cost
            )
            crm_block = budget_manager.truncate_text(crm_block, allowance) if allowance > 0 else ""
            text = compose(turns, kb_block, crm_block)

        kept = {
            "base_instructions": BASE_INSTRUCTIONS,
            "profile": requested["profile"],
            "conversation_history": render_history(turns),
            "role_guidance": guidance,
            "knowledge_base": kb_block,
            "crm_data": crm_block,
        }
        budget = budget_manager.report(
            requested,
            kept,
            turns_dropped=turns_dropped,
            total_used=budget_manager.count_tokens(text),
        )
        if not budget.within_budget:
            logger.warning(
                f"System prompt exceeds budget after truncation: "
                f"{budget.total_used}/{budget.total_budget} tokens"
            )
        elif any(a.truncated for a in budget.allocations):
            logger.info(
                f"System prompt truncated to fit budget: "
                f"{budget.total_used}/{budget.total_budget} tokens, "
                f"turns_dropped={turns_dropped}"
            )

    sections = ["base_instructions", "profile"]
    if turns:
        sections.append("conversation_history")
    sections.append("role_guidance")
    if kb_block:
        sections.append("knowledge_base")
    if crm_block:
        sections.append("crm_data")

    return AssembledPrompt(text=text, sections=sections, budget=budget)
