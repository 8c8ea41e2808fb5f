"""
Shared pytest fixtures for the EWC API Tester test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - user / other_user: Pre-created accounts
    - auth_headers / other_headers: Bearer headers for those accounts
    - environment / apikey_credential / oauth_credential / api_test:
      resources created through the API as ``user``
"""

import json
from datetime import datetime, timezone

import pytest

from ewc_tester import create_app
from ewc_tester.models import db as _db
from ewc_tester.models.testing import TestResult
from ewc_tester.services.jwt_service import generate_access_token
from ewc_tester.services.user_service import create_user


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Accounts ─────────────────────────────────────────────────────────────


def bearer(user):
    token = generate_access_token(user.id, user.email)["access_token"]
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def user():
    return create_user("owner@example.com", "correct-horse", "Owner")


@pytest.fixture()
def other_user():
    return create_user("intruder@example.com", "battery-staple", "Intruder")


@pytest.fixture()
def auth_headers(user):
    return bearer(user)


@pytest.fixture()
def other_headers(other_user):
    return bearer(other_user)


# ── Resources ────────────────────────────────────────────────────────────


ENV_PAYLOAD = {
    "name": "UAT",
    "type": "production",
    "instanceUrl": "https://ewc.my.salesforce.com",
    "description": "User acceptance org",
}

APIKEY_CRED_PAYLOAD = {
    "authType": "apikey",
    "orgName": "Acme Lettings",
    "regionScheme": "EW - Custodial",
    "memberId": "M123",
    "branchId": "B456",
    "apiKey": "secret-api-key",
}

OAUTH_CRED_PAYLOAD = {
    "authType": "oauth2",
    "orgName": "Acme OAuth",
    "regionScheme": "NI - Insured",
    "memberId": "M900",
    "branchId": "B901",
    "clientId": "client-abc",
    "clientSecret": "client-secret-xyz",
}


@pytest.fixture()
def environment(client, auth_headers):
    res = client.post("/api/v1/environments", json=ENV_PAYLOAD, headers=auth_headers)
    assert res.status_code == 201, res.get_json()
    return res.get_json()


@pytest.fixture()
def apikey_credential(client, auth_headers, environment):
    payload = dict(APIKEY_CRED_PAYLOAD, environmentId=environment["id"])
    res = client.post("/api/v1/credentials", json=payload, headers=auth_headers)
    assert res.status_code == 201, res.get_json()
    return res.get_json()


@pytest.fixture()
def oauth_credential(client, auth_headers, environment):
    payload = dict(OAUTH_CRED_PAYLOAD, environmentId=environment["id"])
    res = client.post("/api/v1/credentials", json=payload, headers=auth_headers)
    assert res.status_code == 201, res.get_json()
    return res.get_json()


@pytest.fixture()
def api_test(client, auth_headers, environment, apikey_credential):
    payload = {
        "environmentId": environment["id"],
        "credentialId": apikey_credential["id"],
        "name": "Create deposit",
        "endpoint": "/services/apexrest/depositcreation",
        "method": "POST",
        "body": {"tenancy": {"deposit_amount": 1000}},
        "expectedStatus": 201,
    }
    res = client.post("/api/v1/tests", json=payload, headers=auth_headers)
    assert res.status_code == 201, res.get_json()
    return res.get_json()


def make_result(test_id, credential_id=None, status="passed", request=None, response=None,
                executed_at=None, response_time=100, manual_status=None):
    """Insert a TestResult row directly, bypassing execution."""
    row = TestResult(
        test_id=test_id,
        credential_id=credential_id,
        status=status,
        manual_status=manual_status,
        response_time=response_time,
        status_code=200,
        request=json.dumps(request or {"url": "https://example", "method": "POST", "body": None}),
        response=json.dumps(response or {"status": 200, "headers": {}, "data": None}),
        executed_at=executed_at or datetime.now(timezone.utc),
    )
    _db.session.add(row)
    _db.session.commit()
    return row


@pytest.fixture()
def result_factory():
    """Return ``make_result`` for tests that need stored execution history."""
    return make_result
