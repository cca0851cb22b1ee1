"""Human-readable role and topic names.

Both follow the same two rules everywhere they are shown:
1. the "other" sentinel resolves to the user's free-text override, or "Other"
2. anything else maps through a fixed table, falling back to the raw value
"""

from advisor_engine.context.models import UserProfile, UserRole

OTHER_LABEL = "Other"

ROLE_DISPLAY_NAMES: dict[str, str] = {
    UserRole.CLIENT.value: "MAS Client",
    UserRole.STAFF_CONSULTANT.value: "MAS Staff/Volunteer Consultant",
    UserRole.CHARITY_MEMBER.value: "Canadian Charity Team Member",
}

TOPIC_DISPLAY_NAMES: dict[str, str] = {
    "ai": "AI",
    "planning": "Planning",
    "governance": "Governance",
    "hr": "HR",
    "fundraising": "Fundraising",
    "finance-it": "Finance & IT",
    "marketing-communications": "Marketing & Communications",
    "using-civicrm": "Using CiviCRM",
    "implementing-civicrm": "Implementing CiviCRM",
}


def _resolve(value: str, override: str | None, table: dict[str, str]) -> str:
    if value.lower() == "other":
        return (override or "").strip() or OTHER_LABEL
    return table.get(value, value)


def resolve_role_display(profile: UserProfile) -> str:
    return _resolve(profile.role, profile.custom_role, ROLE_DISPLAY_NAMES)


def resolve_topic_display(profile: UserProfile) -> str:
    return _resolve(profile.topic, profile.custom_topic, TOPIC_DISPLAY_NAMES)
