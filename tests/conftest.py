"""Pytest configuration and fixtures."""

import os

import pytest

# Settings are read at import time by some modules, so set these before collection.
os.environ.setdefault("ANTHROPIC_API_KEY", "test-anthropic-key")
os.environ.setdefault("OPENAI_API_KEY", "test-openai-key")
os.environ["ADVISOR_ENV"] = "test"
os.environ["CIVICRM_REST_URL"] = ""
os.environ.pop("SUPABASE_URL", None)
os.environ.pop("SUPABASE_SERVICE_ROLE_KEY", None)

from advisor_engine.context.models import UserProfile  # noqa: E402


@pytest.fixture(scope="session", autouse=True)
def setup_test_env():
    """Set up test environment variables."""
    os.environ["ANTHROPIC_API_KEY"] = "test-anthropic-key"
    os.environ["OPENAI_API_KEY"] = "test-openai-key"
    os.environ["ADVISOR_ENV"] = "test"


@pytest.fixture
def make_profile():
    """Build a UserProfile with sensible defaults."""

    def _make(**overrides) -> UserProfile:
        data = {
            "role": "charity-member",
            "topic": "fundraising",
            "identification": "email",
            "email": "member@example.org",
            "data_access": ["public"],
        }
        data.update(overrides)
        return UserProfile(**data)

    return _make


@pytest.fixture
def staff_profile(make_profile) -> UserProfile:
    """Staff consultant signed in through the federated provider."""
    return make_profile(
        role="staff-consultant",
        topic="implementing-civicrm",
        identification="federated-login",
        email=None,
        data_access=["public", "project-history"],
        federated_session={"name": "Jordan Lee", "email": "jordan@mas.example.org"},
    )
