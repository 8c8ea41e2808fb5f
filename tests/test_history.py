"""
History query tests — DANs, successful creations and added tenants mined
from stored request/response snapshots.

Results are inserted directly with ``result_factory`` so snapshot content
and execution time are under test control.
"""

from datetime import datetime, timedelta, timezone

import pytest

from ewc_tester.services.history_service import dan_from_endpoint, extract_dan

from conftest import APIKEY_CRED_PAYLOAD


TENANCY = {
    "user_tenancy_reference": "UTR-1",
    "deposit_reference": "DEP-1",
    "property_id": "PROP-9",
    "tenancy_end_date": "2027-01-31",
    "deposit_amount": 1200,
    "people": [
        {"person_classification": "Lead Tenant", "person_id": "P1", "person_firstname": "Ann"},
        {"person_classification": "Tenant", "person_id": "P2", "person_firstname": "Bob",
         "person_email": "bob@example.com"},
        {"person_classification": "Landlord", "person_id": "L1"},
    ],
}


def _creation_request(tenancy=None):
    return {"url": "https://ewc/services/apexrest/depositcreation", "method": "POST",
            "body": {"tenancy": tenancy or TENANCY}}


def _creation_response(dan="EWC00000042", nest=True):
    data = {"success": True, "batch_id": "B-77", "dan": dan}
    return {"status": 201, "headers": {}, "data": data} if nest else {"status": 201, "DAN": dan}


@pytest.fixture()
def add_tenant_test(client, auth_headers, environment, apikey_credential):
    res = client.post("/api/v1/tests", json={
        "environmentId": environment["id"],
        "credentialId": apikey_credential["id"],
        "name": "Add tenant",
        "endpoint": "/services/apexrest/nrla/tenant/add/EWI01261682",
        "method": "POST",
    }, headers=auth_headers)
    return res.get_json()


# ── Helpers ───────────────────────────────────────────────────────────────


@pytest.mark.parametrize("response,expected", [
    ({"data": {"dan": "A", "DAN": "B"}, "dan": "C"}, "A"),
    ({"data": {"DAN": "B"}, "dan": "C"}, "B"),
    ({"data": None, "dan": "C", "DAN": "D"}, "C"),
    ({"DAN": "D"}, "D"),
    ({"data": "text"}, None),
    (None, None),
])
def test_extract_dan_lookup_order(response, expected):
    assert extract_dan(response) == expected


@pytest.mark.parametrize("endpoint,expected", [
    ("/services/apexrest/nrla/tenant/add/EWI01261682", "EWI01261682"),
    ("/services/apexrest/nrla/tenant/add/ewc00000001", "ewc00000001"),
    ("/services/apexrest/nrla/tenant/add/NI00004420", "NI00004420"),
    ("/services/apexrest/nrla/tenant/add/{DAN}", None),
])
def test_dan_from_endpoint(endpoint, expected):
    assert dan_from_endpoint(endpoint) == expected


# ── Available DANs ────────────────────────────────────────────────────────


def test_available_dans(client, auth_headers, api_test, apikey_credential, result_factory):
    row = result_factory(api_test["id"], apikey_credential["id"],
                         request=_creation_request(), response=_creation_response())
    body = client.get("/api/v1/test-results/available-dans", headers=auth_headers).get_json()
    assert len(body) == 1
    entry = body[0]
    assert entry["id"] == row.id
    assert entry["testName"] == "Create deposit"
    assert entry["deposit"] == {"dan": "EWC00000042", "tenancy_end_date": "2027-01-31", "deposit_amount": 1200}
    assert entry["references"] == {
        "user_tenancy_reference": "UTR-1", "deposit_reference": "DEP-1", "property_id": "PROP-9",
    }
    assert entry["credential"]["id"] == apikey_credential["id"]


def test_available_dans_excludes(client, auth_headers, api_test, apikey_credential, result_factory):
    old = datetime.now(timezone.utc) - timedelta(days=31)
    result_factory(api_test["id"], apikey_credential["id"], request=_creation_request(),
                   response=_creation_response(), executed_at=old)
    result_factory(api_test["id"], apikey_credential["id"], status="failed",
                   request=_creation_request(), response=_creation_response())
    result_factory(api_test["id"], apikey_credential["id"], request=_creation_request(),
                   response={"status": 201, "data": {"success": True}})
    assert client.get("/api/v1/test-results/available-dans", headers=auth_headers).get_json() == []


def test_available_dans_credential_filter_and_limit(client, auth_headers, environment, api_test,
                                                     apikey_credential, result_factory):
    other_cred = client.post("/api/v1/credentials", json=dict(
        APIKEY_CRED_PAYLOAD, environmentId=environment["id"], memberId="M999",
    ), headers=auth_headers).get_json()
    now = datetime.now(timezone.utc)
    for i in range(3):
        result_factory(api_test["id"], apikey_credential["id"], request=_creation_request(),
                       response=_creation_response(f"EWC0000010{i}"), executed_at=now - timedelta(hours=i))
    result_factory(api_test["id"], other_cred["id"], request=_creation_request(),
                   response=_creation_response("EWC00000999"))

    body = client.get(f"/api/v1/test-results/available-dans?credentialId={apikey_credential['id']}&limit=2",
                      headers=auth_headers).get_json()
    assert [e["deposit"]["dan"] for e in body] == ["EWC00000100", "EWC00000101"]

    body = client.get(f"/api/v1/test-results/available-dans?credentialId={other_cred['id']}",
                      headers=auth_headers).get_json()
    assert [e["deposit"]["dan"] for e in body] == ["EWC00000999"]


def test_available_dans_other_user(client, other_headers, api_test, apikey_credential, result_factory):
    result_factory(api_test["id"], apikey_credential["id"], request=_creation_request(),
                   response=_creation_response())
    assert client.get("/api/v1/test-results/available-dans", headers=other_headers).get_json() == []


# ── Successful creations ──────────────────────────────────────────────────


def test_successful_creations(client, auth_headers, api_test, apikey_credential, result_factory):
    result_factory(api_test["id"], apikey_credential["id"], request=_creation_request(),
                   response=_creation_response())
    result_factory(api_test["id"], apikey_credential["id"], request=_creation_request(),
                   response={"status": 201, "data": {"success": True, "batch_id": "B-78"}})

    body = client.get("/api/v1/test-results/successful-creations", headers=auth_headers).get_json()
    assert len(body) == 2
    dans = sorted((e["response"]["dan"] or "") for e in body)
    assert dans == ["", "EWC00000042"]
    with_dan = next(e for e in body if e["response"]["dan"])
    assert with_dan["response"]["batch_id"] == "B-77"
    assert with_dan["response"]["success"] is True
    assert with_dan["requestPayload"] == {"tenancy": TENANCY}
    assert with_dan["references"]["deposit_reference"] == "DEP-1"


# ── Added tenants ─────────────────────────────────────────────────────────


def test_added_tenants_requires_credential(client, auth_headers):
    res = client.get("/api/v1/test-results/added-tenants", headers=auth_headers)
    assert res.status_code == 400
    assert res.get_json()["error"] == "credentialId is required"


def test_added_tenants_from_both_sources(client, auth_headers, api_test, add_tenant_test,
                                         apikey_credential, result_factory):
    now = datetime.now(timezone.utc)
    creation = result_factory(api_test["id"], apikey_credential["id"], request=_creation_request(),
                              response=_creation_response(nest=False), executed_at=now - timedelta(hours=1))
    added = result_factory(add_tenant_test["id"], apikey_credential["id"], request={
        "url": "https://ewc/x", "method": "POST",
        "body": {"people": [
            {"person_classification": "tenant", "person_firstname": "Cat", "person_email": "cat@example.com"},
            {"person_classification": "Tenant", "person_firstname": "Dan"},
        ]},
    }, executed_at=now)

    body = client.get(f"/api/v1/test-results/added-tenants?credentialId={apikey_credential['id']}",
                      headers=auth_headers).get_json()
    assert [t["id"] for t in body] == [
        f"{added.id}-cat@example.com",
        f"{added.id}-1",
        f"{creation.id}-P2",
    ]
    first, second, third = body
    assert first["source"] == "add-tenant"
    assert first["dan"] == "EWI01261682"
    assert first["tenant"]["person_firstname"] == "Cat"
    assert set(first["tenant"]) >= {"person_id", "person_surname", "person_postcode", "business_name"}
    assert second["testName"] == "Add tenant"
    assert third["source"] == "deposit-creation"
    assert third["dan"] == "EWC00000042"
    assert third["testResultId"] == creation.id


def test_added_tenants_scoped_to_credential(client, auth_headers, environment, api_test,
                                            apikey_credential, result_factory):
    other_cred = client.post("/api/v1/credentials", json=dict(
        APIKEY_CRED_PAYLOAD, environmentId=environment["id"], memberId="M999",
    ), headers=auth_headers).get_json()
    result_factory(api_test["id"], apikey_credential["id"], request=_creation_request(),
                   response=_creation_response())
    body = client.get(f"/api/v1/test-results/added-tenants?credentialId={other_cred['id']}",
                      headers=auth_headers).get_json()
    assert body == []
