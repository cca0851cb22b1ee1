"""Tests for the CiviCRM APIv3 REST client using httpx.MockTransport."""

import json
from urllib.parse import parse_qsl

import httpx
import pytest

from advisor_engine.core.exceptions import CRMError
from advisor_engine.services.civicrm_client import CiviCRMClient, extract_values

REST_URL = "https://crm.example.org/sites/all/modules/civicrm/extern/rest.php"


def _client(handler) -> CiviCRMClient:
    return CiviCRMClient(
        rest_url=REST_URL,
        api_key="user-key",
        site_key="site-key",
        transport=httpx.MockTransport(handler),
    )


def _form(request: httpx.Request) -> dict:
    return dict(parse_qsl(request.content.decode()))


@pytest.mark.asyncio
async def test_api_call_posts_entity_action_and_keys():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen.update(_form(request))
        return httpx.Response(200, json={"is_error": 0, "count": 1, "values": {"3": {"id": "3"}}})

    result = await _client(handler).api_call("Contact", "get", {"id": 3})

    assert seen["entity"] == "Contact"
    assert seen["action"] == "get"
    assert json.loads(seen["json"]) == {"id": 3}
    assert seen["api_key"] == "user-key"
    assert seen["key"] == "site-key"
    assert result["count"] == 1


@pytest.mark.asyncio
async def test_is_error_raises_crm_error():
    def handler(request):
        return httpx.Response(200, json={"is_error": 1, "error_message": "Permission denied"})

    with pytest.raises(CRMError, match="Permission denied"):
        await _client(handler).api_call("Case", "get")


@pytest.mark.asyncio
async def test_http_error_raises_crm_error():
    def handler(request):
        return httpx.Response(503, text="down")

    with pytest.raises(CRMError, match="503"):
        await _client(handler).get_contacts()


@pytest.mark.asyncio
async def test_invalid_json_raises_crm_error():
    def handler(request):
        return httpx.Response(200, text="<html>login</html>")

    with pytest.raises(CRMError, match="invalid JSON"):
        await _client(handler).get_cases()


@pytest.mark.asyncio
async def test_connection_error_raises_crm_error():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(CRMError):
        await _client(handler).get_upcoming_events()


def test_extract_values_handles_dict_and_list():
    assert extract_values({"values": {"1": {"id": "1"}, "2": {"id": "2"}}}) == [
        {"id": "1"}, {"id": "2"},
    ]
    assert extract_values({"values": [{"id": "1"}]}) == [{"id": "1"}]
    assert extract_values({}) == []


@pytest.mark.asyncio
async def test_contribution_stats_summarise_completed_gifts():
    def handler(request):
        return httpx.Response(200, json={"is_error": 0, "values": [
            {"total_amount": "100.00", "currency": "CAD"},
            {"total_amount": "50.50", "currency": "CAD"},
        ]})

    stats = await _client(handler).get_contribution_stats()

    assert stats == {
        "count": 2, "total_amount": 150.5, "average_amount": 75.25, "currencies": ["CAD"],
    }


@pytest.mark.asyncio
async def test_cases_by_role_goes_through_relationships():
    requests = []

    def handler(request):
        form = _form(request)
        requests.append((form["entity"], json.loads(form["json"])))
        if form["entity"] == "RelationshipType":
            return httpx.Response(200, json={"is_error": 0, "values": [{"id": "14"}]})
        if form["entity"] == "Relationship":
            return httpx.Response(200, json={"is_error": 0, "values": [
                {"case_id": "9"}, {"case_id": "4"}, {"case_id": "9"},
            ]})
        return httpx.Response(200, json={"is_error": 0, "values": [{"id": "4"}, {"id": "9"}]})

    cases = await _client(handler).get_cases_by_role(77, "coordinator")

    assert [entity for entity, _ in requests] == ["RelationshipType", "Relationship", "Case"]
    assert requests[0][1] == {"name_a_b": "Case Coordinator is"}
    assert requests[1][1]["contact_id_b"] == 77
    assert requests[2][1]["id"] == {"IN": [4, 9]}
    assert len(cases) == 2


@pytest.mark.asyncio
async def test_missing_relationship_type_returns_no_cases():
    def handler(request):
        return httpx.Response(200, json={"is_error": 0, "values": []})

    assert await _client(handler).get_open_cases_by_coordinator(77) == []
