"""CiviCRM APIv3 REST client.

Uses httpx for async HTTP requests against extern/rest.php. Every call
posts entity/action plus a JSON params blob and unwraps the standard
{is_error, count, values} envelope.
"""

from __future__ import annotations

import json
from datetime import date
from typing import Literal, Protocol

import httpx

from advisor_engine.core.exceptions import CRMError
from advisor_engine.core.logging import get_logger

logger = get_logger(__name__)

CaseRole = Literal["client", "coordinator", "manager"]

# Relationship type (a->b label) that records each case role
CASE_ROLE_RELATIONSHIPS: dict[str, str] = {
    "coordinator": "Case Coordinator is",
    "manager": "Case Manager is",
}

CLOSED_CASE_STATUSES = ["Closed", "Resolved"]

CONTACT_FIELDS = "id,contact_type,display_name,first_name,last_name,email,phone,organization_name"
CASE_FIELDS = "id,subject,case_type_id,status_id,start_date,end_date,contact_id"


class CRMClient(Protocol):
    """Read capability the CRM gateway needs."""

    async def api_call(self, entity: str, action: str, params: dict | None = None) -> dict: ...

    async def get_overall_stats(self) -> dict: ...

    async def get_contacts(self, limit: int = 25, offset: int = 0) -> list[dict]: ...

    async def get_contributions(self, limit: int = 25, offset: int = 0) -> list[dict]: ...

    async def get_contribution_stats(self) -> dict: ...

    async def get_upcoming_events(self, limit: int = 10) -> list[dict]: ...

    async def get_cases(self, limit: int = 25, offset: int = 0) -> list[dict]: ...

    async def get_case_by_id(self, case_id: int) -> dict: ...

    async def get_case_activities(self, case_id: int, limit: int = 25) -> list[dict]: ...

    async def get_cases_by_role(self, contact_id: int, role: CaseRole) -> list[dict]: ...

    async def get_open_cases_by_coordinator(self, contact_id: int) -> list[dict]: ...

    async def search_contacts(self, query: str, limit: int = 25) -> list[dict]: ...


def extract_values(result: dict) -> list[dict]:
    """Normalise the APIv3 'values' field (dict keyed by id, or list) to a list."""
    values = result.get("values") or []
    if isinstance(values, dict):
        return list(values.values())
    return list(values)


class CiviCRMClient:
    """Talks to one CiviCRM site through the APIv3 REST endpoint."""

    def __init__(
        self,
        rest_url: str,
        api_key: str,
        site_key: str,
        timeout: float = 8.0,
        verify: bool = True,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.rest_url = rest_url
        self.timeout = timeout
        self.verify = verify
        self.transport = transport
        self._auth = {"api_key": api_key, "key": site_key}

    async def api_call(self, entity: str, action: str, params: dict | None = None) -> dict:
        """
        Call an APIv3 entity action.

        Raises:
            CRMError: On transport failure, non-2xx status, bad JSON or is_error
        """
        form = {
            "entity": entity,
            "action": action,
            "json": json.dumps(params or {}),
            **self._auth,
        }
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, verify=self.verify, transport=self.transport
            ) as client:
                resp = await client.post(self.rest_url, data=form)
                resp.raise_for_status()
                result = resp.json()
        except httpx.HTTPStatusError as e:
            raise CRMError(
                f"CiviCRM {entity}.{action} returned HTTP {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise CRMError(f"CiviCRM {entity}.{action} request failed: {e!r}") from e
        except ValueError as e:
            raise CRMError(f"CiviCRM {entity}.{action} returned invalid JSON") from e

        if result.get("is_error"):
            raise CRMError(
                f"CiviCRM {entity}.{action} error: {result.get('error_message', 'unknown error')}"
            )

        logger.debug(f"CiviCRM {entity}.{action} ok, count={result.get('count')}")
        return result

    async def _get(self, entity: str, params: dict) -> list[dict]:
        return extract_values(await self.api_call(entity, "get", params))

    async def _count(self, entity: str, params: dict | None = None) -> int:
        result = await self.api_call(entity, "getcount", params or {})
        return int(result.get("result", 0))

    async def get_overall_stats(self) -> dict:
        today = date.today().isoformat()
        return {
            "total_contacts": await self._count("Contact", {"is_deleted": 0}),
            "total_contributions": await self._count("Contribution"),
            "total_cases": await self._count("Case", {"is_deleted": 0}),
            "upcoming_events": await self._count(
                "Event", {"is_active": 1, "start_date": {">=": today}}
            ),
        }

    async def get_contacts(self, limit: int = 25, offset: int = 0) -> list[dict]:
        return await self._get("Contact", {
            "is_deleted": 0,
            "return": CONTACT_FIELDS,
            "options": {"limit": limit, "offset": offset, "sort": "modified_date DESC"},
        })

    async def get_contributions(self, limit: int = 25, offset: int = 0) -> list[dict]:
        return await self._get("Contribution", {
            "return": "id,contact_id,display_name,total_amount,currency,receive_date,"
                      "financial_type,contribution_status",
            "options": {"limit": limit, "offset": offset, "sort": "receive_date DESC"},
        })

    async def get_contribution_stats(self) -> dict:
        rows = await self._get("Contribution", {
            "contribution_status_id": "Completed",
            "return": "total_amount,currency",
            "options": {"limit": 0},
        })
        amounts = [float(r.get("total_amount") or 0) for r in rows]
        total = round(sum(amounts), 2)
        return {
            "count": len(amounts),
            "total_amount": total,
            "average_amount": round(total / len(amounts), 2) if amounts else 0.0,
            "currencies": sorted({r.get("currency") for r in rows if r.get("currency")}),
        }

    async def get_upcoming_events(self, limit: int = 10) -> list[dict]:
        return await self._get("Event", {
            "is_active": 1,
            "start_date": {">=": date.today().isoformat()},
            "return": "id,title,event_type_id,start_date,end_date,max_participants",
            "options": {"limit": limit, "sort": "start_date ASC"},
        })

    async def get_cases(self, limit: int = 25, offset: int = 0) -> list[dict]:
        return await self._get("Case", {
            "is_deleted": 0,
            "return": CASE_FIELDS,
            "options": {"limit": limit, "offset": offset, "sort": "start_date DESC"},
        })

    async def get_case_by_id(self, case_id: int) -> dict:
        cases = await self._get("Case", {"id": case_id, "return": CASE_FIELDS})
        return cases[0] if cases else {}

    async def get_case_activities(self, case_id: int, limit: int = 25) -> list[dict]:
        return await self._get("Activity", {
            "case_id": case_id,
            "return": "id,activity_type_id,subject,status_id,activity_date_time,details",
            "options": {"limit": limit, "sort": "activity_date_time DESC"},
        })

    async def _case_ids_for_role(self, contact_id: int, role: str) -> list[int]:
        relationship_name = CASE_ROLE_RELATIONSHIPS[role]
        rel_types = await self._get("RelationshipType", {"name_a_b": relationship_name})
        if not rel_types:
            logger.warning(f"CiviCRM relationship type not found: {relationship_name}")
            return []

        relationships = await self._get("Relationship", {
            "contact_id_b": contact_id,
            "relationship_type_id": rel_types[0]["id"],
            "is_active": 1,
            "case_id": {"IS NOT NULL": 1},
            "return": "case_id",
            "options": {"limit": 0},
        })
        return sorted({int(r["case_id"]) for r in relationships if r.get("case_id")})

    async def get_cases_by_role(self, contact_id: int, role: CaseRole) -> list[dict]:
        if role == "client":
            return await self._get("Case", {
                "contact_id": contact_id,
                "is_deleted": 0,
                "return": CASE_FIELDS,
                "options": {"limit": 0},
            })

        case_ids = await self._case_ids_for_role(contact_id, role)
        if not case_ids:
            return []
        return await self._get("Case", {
            "id": {"IN": case_ids},
            "is_deleted": 0,
            "return": CASE_FIELDS,
            "options": {"limit": 0, "sort": "start_date DESC"},
        })

    async def get_open_cases_by_coordinator(self, contact_id: int) -> list[dict]:
        case_ids = await self._case_ids_for_role(contact_id, "coordinator")
        if not case_ids:
            return []
        return await self._get("Case", {
            "id": {"IN": case_ids},
            "is_deleted": 0,
            "status_id": {"NOT IN": CLOSED_CASE_STATUSES},
            "return": CASE_FIELDS,
            "options": {"limit": 0, "sort": "start_date DESC"},
        })

    async def search_contacts(self, query: str, limit: int = 25) -> list[dict]:
        return await self._get("Contact", {
            "is_deleted": 0,
            "display_name": {"LIKE": f"%{query}%"},
            "return": CONTACT_FIELDS,
            "options": {"limit": limit, "sort": "sort_name ASC"},
        })
