"""Keyword-triggered CRM retrieval.

Maps what a message asks about to a bounded set of CRM reads and renders
the results as labelled text blocks for the system prompt.

Sections (rendered in this order, each triggered independently):
1. statistics       statistic / overview / total / how many
2. contacts         contact / donor / member / constituent
3. contributions    donation / contribution / fundraising / giving
4. events           event / upcoming / program / activity
5. cases            case / project / service / client
                    ("my" or "open" + verified email -> the caller's own cases)
6. case details     literal "case <number>"
7. name search      two capitalised words

Sections run concurrently and are reassembled in the order above. A
failing section is dropped; if every triggered section fails the result
is the unavailability note.
"""

import asyncio
import re
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

from advisor_engine.context.classifier import contains_any
from advisor_engine.context.models import CRMQueryResult, CRMSection, UserProfile
from advisor_engine.core.exceptions import CRMError
from advisor_engine.core.logging import get_logger
from advisor_engine.services.civicrm_client import CONTACT_FIELDS, CRMClient, extract_values

logger = get_logger(__name__)

T = TypeVar("T")

STATS_TRIGGERS = ("statistic", "overview", "total", "how many")
CONTACT_TRIGGERS = ("contact", "donor", "member", "constituent")
CONTRIBUTION_TRIGGERS = ("donation", "contribution", "fundraising", "giving")
EVENT_TRIGGERS = ("event", "upcoming", "program", "activity")
CASE_TRIGGERS = ("case", "project", "service", "client")
PERSONAL_TRIGGERS = ("my", "open")

CASE_ID_PATTERN = re.compile(r"case\s+(\d+)", re.IGNORECASE)
PROPER_NAME_PATTERN = re.compile(r"\b([A-Z][a-z]+)\s+([A-Z][a-z]+)\b")

DEFAULT_CONTACT_LIMIT = 10
DEFAULT_CONTRIBUTION_LIMIT = 10
DEFAULT_EVENT_LIMIT = 5
DEFAULT_CASE_LIMIT = 10
DEFAULT_ACTIVITY_LIMIT = 10
DEFAULT_SEARCH_LIMIT = 5


@dataclass(frozen=True)
class SectionPlan:
    """A triggered section: its name and the coroutine factory that fetches it."""

    name: str
    fetch: Callable[[], Awaitable[list[CRMSection]]]


class CRMDataGateway:
    """Fetches CRM facts relevant to a message, isolating failures per section."""

    def __init__(self, client: CRMClient, call_timeout: float = 8.0):
        self.client = client
        self.call_timeout = call_timeout

    async def _call(self, awaitable: Awaitable[T], what: str) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self.call_timeout)
        except asyncio.TimeoutError as e:
            raise CRMError(f"CiviCRM {what} timed out after {self.call_timeout}s") from e

    # ── Section fetchers ──────────────────────────────────────────

    async def _stats_section(self) -> list[CRMSection]:
        stats = await self._call(self.client.get_overall_stats(), "overall stats")
        return [CRMSection(label="Overall Statistics", payload=stats)]

    async def _contacts_section(self) -> list[CRMSection]:
        contacts = await self._call(
            self.client.get_contacts(DEFAULT_CONTACT_LIMIT), "recent contacts"
        )
        return [CRMSection(label="Recent Contacts", payload=contacts)]

    async def _contributions_section(self) -> list[CRMSection]:
        contributions = await self._call(
            self.client.get_contributions(DEFAULT_CONTRIBUTION_LIMIT), "recent contributions"
        )
        stats = await self._call(self.client.get_contribution_stats(), "contribution stats")
        return [
            CRMSection(label="Recent Contributions", payload=contributions),
            CRMSection(label="Contribution Statistics", payload=stats),
        ]

    async def _events_section(self) -> list[CRMSection]:
        events = await self._call(
            self.client.get_upcoming_events(DEFAULT_EVENT_LIMIT), "upcoming events"
        )
        return [CRMSection(label="Upcoming Events", payload=events)]

    async def resolve_contact_id(self, email: str) -> int | None:
        """Exact email match to a CRM contact id; None when nobody matches."""
        result = await self._call(
            self.client.api_call("Contact", "get", {
                "email": email,
                "return": CONTACT_FIELDS,
                "options": {"limit": 1},
            }),
            "contact lookup by email",
        )
        contacts = extract_values(result)
        if not contacts:
            return None
        return int(contacts[0]["id"])

    async def _cases_section(self, message_lower: str, profile: UserProfile) -> list[CRMSection]:
        email = profile.verified_email
        if email and contains_any(message_lower, PERSONAL_TRIGGERS):
            contact_id = await self.resolve_contact_id(email)
            if contact_id is not None:
                my_cases = await self._call(
                    self.client.get_cases_by_role(contact_id, "coordinator"), "cases by role"
                )
                open_cases = await self._call(
                    self.client.get_open_cases_by_coordinator(contact_id), "open cases"
                )
                return [
                    CRMSection(label="Your Cases (as Coordinator)", payload=my_cases),
                    CRMSection(label="Your Open Cases", payload=open_cases),
                ]
            logger.info("No CRM contact matches the signed-in email; using recent cases")

        cases = await self._call(self.client.get_cases(DEFAULT_CASE_LIMIT), "recent cases")
        return [CRMSection(label="Recent Cases", payload=cases)]

    async def _case_detail_section(self, case_id: int) -> list[CRMSection]:
        details = await self._call(self.client.get_case_by_id(case_id), f"case {case_id}")
        activities = await self._call(
            self.client.get_case_activities(case_id, DEFAULT_ACTIVITY_LIMIT),
            f"case {case_id} activities",
        )
        return [
            CRMSection(label=f"Case {case_id} Details", payload=details),
            CRMSection(label=f"Case {case_id} Activities", payload=activities),
        ]

    async def _name_search_section(self, name: str) -> list[CRMSection]:
        results = await self._call(
            self.client.search_contacts(name, DEFAULT_SEARCH_LIMIT), "contact search"
        )
        return [CRMSection(label=f'Search Results for "{name}"', payload=results)]

    # ── Planning and execution ────────────────────────────────────

    def plan_sections(self, message: str, profile: UserProfile) -> list[SectionPlan]:
        """Decide which sections a message triggers, in render order."""
        message_lower = message.lower()
        plans: list[SectionPlan] = []

        if contains_any(message_lower, STATS_TRIGGERS):
            plans.append(SectionPlan("statistics", self._stats_section))
        if contains_any(message_lower, CONTACT_TRIGGERS):
            plans.append(SectionPlan("contacts", self._contacts_section))
        if contains_any(message_lower, CONTRIBUTION_TRIGGERS):
            plans.append(SectionPlan("contributions", self._contributions_section))
        if contains_any(message_lower, EVENT_TRIGGERS):
            plans.append(SectionPlan("events", self._events_section))
        if contains_any(message_lower, CASE_TRIGGERS):
            plans.append(
                SectionPlan("cases", lambda: self._cases_section(message_lower, profile))
            )

        case_match = CASE_ID_PATTERN.search(message)
        if case_match:
            case_id = int(case_match.group(1))
            plans.append(SectionPlan("case_details", lambda: self._case_detail_section(case_id)))

        name_match = PROPER_NAME_PATTERN.search(message)
        if name_match:
            name = name_match.group(0)
            plans.append(SectionPlan("name_search", lambda: self._name_search_section(name)))

        return plans

    async def _run_section(self, plan: SectionPlan) -> list[CRMSection] | None:
        try:
            return await plan.fetch()
        except Exception as e:
            logger.warning(f"CRM section '{plan.name}' failed, omitting it: {e}")
            return None

    async def fetch(self, message: str, profile: UserProfile) -> CRMQueryResult:
        """
        Fetch every section the message triggers.

        Returns:
            CRMQueryResult with sections in fixed order; unavailable=True when
            nothing could be fetched because of failures
        """
        try:
            plans = self.plan_sections(message, profile)
            if not plans:
                return CRMQueryResult()

            outcomes = await asyncio.gather(*(self._run_section(plan) for plan in plans))

            sections: list[CRMSection] = []
            failed: list[str] = []
            for plan, outcome in zip(plans, outcomes):
                if outcome is None:
                    failed.append(plan.name)
                else:
                    sections.extend(outcome)

            if len(failed) == len(plans):
                logger.error(f"All CRM sections failed: {failed}")
                return CRMQueryResult(failed_sections=failed, unavailable=True)

            logger.info(
                f"CRM data fetched: sections={[s.label for s in sections]} failed={failed}"
            )
            return CRMQueryResult(sections=sections, failed_sections=failed)

        except Exception as e:
            logger.error(f"CRM data retrieval failed: {e}")
            return CRMQueryResult(unavailable=True)

    async def get_crm_data(self, message: str, profile: UserProfile) -> str:
        """Prompt-ready CRM text for a message ("" when nothing was triggered)."""
        return (await self.fetch(message, profile)).text
