"""Rule-based replies used when an upstream dependency fails.

Pure string templating over an already-validated profile: no I/O, and
nothing here raises for a valid UserProfile. Rules are checked in order
and the first match wins.
"""

from dataclasses import dataclass
from typing import Callable

from advisor_engine.context.classifier import contains_any
from advisor_engine.context.models import UserProfile, UserRole
from advisor_engine.context.profile_display import resolve_role_display, resolve_topic_display


def fundraising_fallback(role: str, topic: str) -> str:
    return f"""Here are some fundraising strategies that could work well for your organization:

1. **Digital Fundraising**: Set up online donation forms and social media campaigns
2. **Grant Writing**: Research foundations aligned with your mission
3. **Peer-to-Peer Fundraising**: Engage your supporters to fundraise on your behalf
4. **Corporate Partnerships**: Develop relationships with local businesses
5. **Event Fundraising**: Host virtual or in-person events

Would you like me to elaborate on any of these strategies specifically for your role as a {role}, with your focus on {topic} in mind?"""


def volunteer_fallback(role: str, topic: str) -> str:
    return f"""For volunteer management, consider these approaches:

1. **Clear Role Descriptions**: Define specific volunteer positions and expectations
2. **Onboarding Process**: Create a welcoming orientation for new volunteers
3. **Recognition Programs**: Acknowledge volunteer contributions regularly
4. **Skill-Based Matching**: Match volunteers with roles that fit their skills
5. **Communication Tools**: Use platforms like Slack or VolunteerHub for coordination

What specific volunteer challenges are you facing? I can connect the answer back to your interest in {topic}."""


def crm_usage_fallback(role: str, topic: str) -> str:
    return f"""As a {role}, here are some CiviCRM guidance areas I can help with:

1. **Implementation Planning**: Best practices for CiviCRM deployment
2. **Data Migration**: Moving from existing systems to CiviCRM
3. **Training and Support**: Helping organizations adopt CiviCRM effectively
4. **Custom Development**: Extensions and customizations for specific needs
5. **Reporting and Analytics**: Setting up meaningful reports and dashboards

Which CiviCRM area would you like to focus on for your work on {topic}?"""


def program_fallback(role: str, topic: str) -> str:
    return f"""To strengthen program delivery and measure impact:

1. **Logic Models**: Develop clear program theories of change
2. **Data Collection**: Implement systems to track program outcomes
3. **Stakeholder Feedback**: Regularly survey program participants
4. **Continuous Improvement**: Use data to refine program design
5. **Storytelling**: Document success stories and case studies

Given your interest in {topic}, which area would you like to explore first?"""


def generic_fallback(role: str, topic: str, include_crm: bool = False) -> str:
    crm_lines = (
        "- CiviCRM implementation and best practices\n- MAS consulting methodologies\n"
        if include_crm
        else ""
    )
    return f"""I'd be happy to help you with that! As a {role} interested in {topic}, I can provide guidance on:

- Strategic planning and organizational development
- Fundraising and donor relations
- Program design and evaluation
- Volunteer management and engagement
- Operations and process improvement
- Technology solutions for nonprofits
{crm_lines}
Could you provide more specific details about what you're looking to accomplish? I'll tailor my advice to your particular situation and goals."""


@dataclass(frozen=True)
class FallbackRule:
    name: str
    predicate: Callable[[str, UserProfile], bool]
    render: Callable[[str, str], str]


FALLBACK_RULES: tuple[FallbackRule, ...] = (
    FallbackRule(
        name="fundraising",
        predicate=lambda msg, _p: contains_any(msg, ("fundraising", "donor")),
        render=fundraising_fallback,
    ),
    FallbackRule(
        name="volunteer",
        predicate=lambda msg, _p: "volunteer" in msg,
        render=volunteer_fallback,
    ),
    FallbackRule(
        name="crm_usage",
        predicate=lambda msg, p: "civicrm" in msg and p.role == UserRole.STAFF_CONSULTANT.value,
        render=crm_usage_fallback,
    ),
    FallbackRule(
        name="program",
        predicate=lambda msg, _p: contains_any(msg, ("program", "impact")),
        render=program_fallback,
    ),
)


def select_fallback_rule(message: str, profile: UserProfile) -> FallbackRule | None:
    """First rule matching the message, or None for the generic reply."""
    message_lower = (message or "").lower()
    for rule in FALLBACK_RULES:
        if rule.predicate(message_lower, profile):
            return rule
    return None


def build_fallback_response(message: str, profile: UserProfile) -> str:
    """Deterministic advisory reply tailored to the profile's role and topic."""
    role = resolve_role_display(profile)
    topic = resolve_topic_display(profile)

    rule = select_fallback_rule(message, profile)
    if rule:
        return rule.render(role, topic)
    return generic_fallback(
        role, topic, include_crm=profile.role == UserRole.STAFF_CONSULTANT.value
    )
