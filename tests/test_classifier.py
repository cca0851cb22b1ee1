"""Tests for keyword classification and provider routing."""

import pytest

from advisor_engine.context.classifier import (
    PROVIDER_RULES,
    classify_message,
    needs_external_data,
    select_provider,
)
from advisor_engine.context.models import ProviderId


@pytest.mark.parametrize(
    "message",
    [
        "How many donors gave last month?",
        "Show me upcoming events",
        "What are my active projects?",
        "List open cases for the Toronto office",
        "Any recent contributions from the Smith Foundation?",
        "CRM STATISTICS please",
    ],
)
def test_needs_external_data_true(message):
    assert needs_external_data(message) is True


@pytest.mark.parametrize(
    "message",
    [
        "What makes a good mission statement?",
        "Tips on writing a strategic plan",
        "Explain board governance best practices",
        "",
    ],
)
def test_needs_external_data_false(message):
    assert needs_external_data(message) is False


@pytest.mark.parametrize("keyword", ["code", "sql", "python", "api", "javascript"])
def test_technical_keywords_pick_technical_provider_for_any_profile(keyword, make_profile):
    message = f"Can you help me with some {keyword.upper()} for our website?"
    for profile in (None, make_profile(), make_profile(role="client", topic="ai")):
        assert select_provider(profile, message) is ProviderId.TECHNICAL


def test_data_analysis_picks_technical_provider():
    classification = classify_message("Please analyze our volunteer retention metrics")
    assert classification.provider is ProviderId.TECHNICAL
    assert classification.provider_rule == "data_analysis"


def test_technical_rule_wins_over_data_analysis():
    classification = classify_message("Write python to analyze donor data")
    assert classification.provider_rule == "technical"


def test_default_provider_is_consulting(make_profile):
    classification = classify_message("How do I engage my board?", make_profile())
    assert classification.provider is ProviderId.CONSULTING
    assert classification.provider_rule is None
    assert classification.needs_crm is True  # "my"


def test_rule_table_is_ordered():
    assert [rule.name for rule in PROVIDER_RULES] == ["technical", "data_analysis"]
