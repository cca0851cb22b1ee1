"""Keyword-based message classification.

Two decisions are made per message, both from ordered rule tables so the
logic can be inspected and tested on its own:
- does the message need CRM data?
- which provider should answer it? (first matching rule wins)
"""

from dataclasses import dataclass
from typing import Callable

from advisor_engine.context.models import MessageClassification, ProviderId, UserProfile
from advisor_engine.core.logging import get_logger

logger = get_logger(__name__)


# Substring triggers for CRM lookups. Deliberately broad: an unneeded fetch
# costs latency, a missed one costs correctness.
CRM_ENTITY_KEYWORDS: tuple[str, ...] = (
    "contact", "donor", "donation", "contribution", "member",
    "event", "participant", "volunteer", "database", "crm",
    "fundraising", "campaign", "constituent", "supporter",
    "case", "project", "service", "client", "coordinator",
    "activity", "task", "assignment", "open", "closed",
)

CRM_INTENT_KEYWORDS: tuple[str, ...] = (
    "how many", "statistics", "stats", "total", "count",
    "recent", "upcoming", "list", "show me", "find", "my",
)

CRM_KEYWORDS: tuple[str, ...] = CRM_ENTITY_KEYWORDS + CRM_INTENT_KEYWORDS


def contains_any(message_lower: str, keywords: tuple[str, ...]) -> bool:
    """True when any keyword is a substring of the already lower-cased message."""
    return any(keyword in message_lower for keyword in keywords)


@dataclass(frozen=True)
class ProviderRule:
    """A named predicate over (profile, lower-cased message) and the provider it selects."""

    name: str
    predicate: Callable[[UserProfile | None, str], bool]
    provider: ProviderId


TECHNICAL_KEYWORDS: tuple[str, ...] = (
    "code", "programming", "api", "javascript", "python", "sql",
)

DATA_ANALYSIS_KEYWORDS: tuple[str, ...] = (
    "analyze", "data", "report", "metrics",
)

# Order matters: the first matching rule decides.
PROVIDER_RULES: tuple[ProviderRule, ...] = (
    ProviderRule(
        name="technical",
        predicate=lambda _profile, msg: contains_any(msg, TECHNICAL_KEYWORDS),
        provider=ProviderId.TECHNICAL,
    ),
    ProviderRule(
        name="data_analysis",
        predicate=lambda _profile, msg: contains_any(msg, DATA_ANALYSIS_KEYWORDS),
        provider=ProviderId.TECHNICAL,
    ),
)

DEFAULT_PROVIDER = ProviderId.CONSULTING


def needs_external_data(message: str) -> bool:
    """Whether the message should trigger a CRM lookup."""
    return contains_any(message.lower(), CRM_KEYWORDS)


def match_provider_rule(profile: UserProfile | None, message: str) -> ProviderRule | None:
    """Return the first provider rule that matches, or None."""
    message_lower = message.lower()
    for rule in PROVIDER_RULES:
        if rule.predicate(profile, message_lower):
            return rule
    return None


def select_provider(profile: UserProfile | None, message: str) -> ProviderId:
    """Pick the provider for a message. Static rules, no per-user override."""
    rule = match_provider_rule(profile, message)
    return rule.provider if rule else DEFAULT_PROVIDER


def classify_message(message: str, profile: UserProfile | None = None) -> MessageClassification:
    """Run both classifiers and report which provider rule fired."""
    rule = match_provider_rule(profile, message)
    classification = MessageClassification(
        needs_crm=needs_external_data(message),
        provider=rule.provider if rule else DEFAULT_PROVIDER,
        provider_rule=rule.name if rule else None,
    )
    logger.debug(
        f"Classified message: needs_crm={classification.needs_crm} "
        f"provider={classification.provider.value} rule={classification.provider_rule}"
    )
    return classification
