"""
Salesforce OAuth2 flow tests.

Covers:
  - login host selection, PKCE, state encryption and 5 minute expiry
  - GET  /api/v1/salesforce/authorize  (validation, 302 to the right host)
  - GET  /api/v1/salesforce/callback   (all failure paths render 200)
  - POST /api/v1/salesforce/refresh    (owner only, upstream message passed through)

External calls: ``salesforce_gateway`` is patched; no network traffic.
"""

import base64
import hashlib
import time
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch
from urllib.parse import parse_qs, urlparse

import pytest

from ewc_tester.core.exceptions import UpstreamError
from ewc_tester.integrations.salesforce_gateway import SalesforceGateway, salesforce_gateway
from ewc_tester.models import db
from ewc_tester.models.base import as_utc
from ewc_tester.models.environment import Environment
from ewc_tester.services.salesforce_oauth_service import (
    NO_REFRESH_TOKEN_MESSAGE,
    STATE_MAX_AGE_MS,
    build_authorization_url,
    decrypt_state,
    encrypt_state,
    generate_pkce,
    get_login_host,
)
from ewc_tester.utils.crypto import decrypt_secret, encrypt_secret

from conftest import ENV_PAYLOAD


@pytest.fixture()
def configured_env(client, auth_headers, environment):
    res = client.put(f"/api/v1/environments/{environment['id']}", json={
        "sfConnectedAppClientId": "3MVG9-client",
        "sfConnectedAppClientSecret": "app-secret",
    }, headers=auth_headers)
    assert res.status_code == 200
    return res.get_json()


@pytest.fixture()
def authorized_env(configured_env):
    env = db.session.get(Environment, configured_env["id"])
    env.verification_bearer_token = "00D-old-access"
    env.sf_refresh_token = encrypt_secret("stored-refresh")
    env.sf_token_expires_at = datetime.now(timezone.utc) - timedelta(minutes=5)
    db.session.commit()
    return configured_env


# ═════════════════════════════════════════════════════════════════════════════
# Helpers
# ═════════════════════════════════════════════════════════════════════════════


@pytest.mark.parametrize("url,env_type,expected", [
    ("https://ewc.my.salesforce.com", "production", "https://login.salesforce.com"),
    ("https://ewc--uat.sandbox.my.salesforce.com", "production", "https://test.salesforce.com"),
    ("https://ewc--dev.my.salesforce.com", None, "https://test.salesforce.com"),
    ("https://ewc.my.salesforce.com", "sandbox", "https://test.salesforce.com"),
    ("https://ewc.my.salesforce.com", "scratch", "https://test.salesforce.com"),
])
def test_login_host(url, env_type, expected):
    assert get_login_host(url, env_type) == expected


def test_pkce_challenge_is_s256_of_verifier():
    verifier, challenge = generate_pkce()
    digest = hashlib.sha256(verifier.encode()).digest()
    assert challenge == base64.urlsafe_b64encode(digest).rstrip(b"=").decode()
    assert "=" not in challenge


def test_authorization_url_params():
    url = build_authorization_url("https://login.salesforce.com", "cid", "http://app/cb", "st", "ch")
    parsed = urlparse(url)
    assert parsed.netloc == "login.salesforce.com"
    assert parsed.path == "/services/oauth2/authorize"
    qs = parse_qs(parsed.query)
    assert qs["response_type"] == ["code"]
    assert qs["scope"] == ["api refresh_token"]
    assert qs["code_challenge_method"] == ["S256"]
    assert qs["state"] == ["st"]


def test_state_round_trip():
    state = encrypt_state("env-1", "verifier-1")
    assert decrypt_state(state) == {"environmentId": "env-1", "codeVerifier": "verifier-1"}


def test_state_expires_after_five_minutes():
    state = encrypt_state("env-1", "verifier-1")
    later = int(time.time() * 1000) + STATE_MAX_AGE_MS + 1000
    assert decrypt_state(state, now_ms=later) is None


def test_garbage_state_is_rejected():
    assert decrypt_state("not-a-state") is None
    assert decrypt_state(encrypt_secret('{"no": "fields"}')) is None


# ═════════════════════════════════════════════════════════════════════════════
# Authorize
# ═════════════════════════════════════════════════════════════════════════════


def test_authorize_requires_environment_id(client):
    res = client.get("/api/v1/salesforce/authorize")
    assert res.status_code == 400


def test_authorize_unknown_environment(client):
    res = client.get("/api/v1/salesforce/authorize?environmentId=missing")
    assert res.status_code == 404


def test_authorize_requires_connected_app(client, environment):
    res = client.get(f"/api/v1/salesforce/authorize?environmentId={environment['id']}")
    assert res.status_code == 400
    assert "Connected App credentials not configured" in res.get_json()["error"]


def test_authorize_redirects_to_production_login(client, configured_env):
    res = client.get(f"/api/v1/salesforce/authorize?environmentId={configured_env['id']}")
    assert res.status_code == 302
    location = urlparse(res.headers["Location"])
    assert location.netloc == "login.salesforce.com"
    qs = parse_qs(location.query)
    assert qs["client_id"] == ["3MVG9-client"]
    assert qs["redirect_uri"] == ["http://localhost:3000/api/v1/salesforce/callback"]
    assert decrypt_state(qs["state"][0])["environmentId"] == configured_env["id"]


def test_authorize_redirects_sandbox_to_test_login(client, auth_headers):
    env = client.post("/api/v1/environments", json=dict(
        ENV_PAYLOAD, name="Sandbox", type="sandbox",
        instanceUrl="https://ewc--uat.sandbox.my.salesforce.com",
        sfConnectedAppClientId="cid", sfConnectedAppClientSecret="csecret",
    ), headers=auth_headers).get_json()
    res = client.get(f"/api/v1/salesforce/authorize?environmentId={env['id']}")
    assert res.status_code == 302
    assert urlparse(res.headers["Location"]).netloc == "test.salesforce.com"


# ═════════════════════════════════════════════════════════════════════════════
# Callback
# ═════════════════════════════════════════════════════════════════════════════


def test_callback_success_stores_tokens(client, configured_env):
    state = encrypt_state(configured_env["id"], "the-verifier")
    tokens = {"access_token": "00D-new-access", "refresh_token": "new-refresh"}
    with patch.object(salesforce_gateway, "exchange_code", return_value=tokens) as mock_exchange:
        res = client.get(f"/api/v1/salesforce/callback?code=abc&state={state}")

    assert res.status_code == 200
    page = res.get_data(as_text=True)
    assert "salesforce-oauth-success" in page
    assert "window.opener" in page
    assert "'unsafe-inline'" in res.headers["Content-Security-Policy"]

    args = mock_exchange.call_args[0]
    assert args[0] == "https://login.salesforce.com"
    assert args[1] == "3MVG9-client"
    assert args[2] == "app-secret"
    assert args[3] == "abc"
    assert args[5] == "the-verifier"

    env = db.session.get(Environment, configured_env["id"])
    assert env.verification_bearer_token == "00D-new-access"
    assert decrypt_secret(env.sf_refresh_token) == "new-refresh"
    remaining = as_utc(env.sf_token_expires_at) - datetime.now(timezone.utc)
    assert timedelta(hours=1, minutes=55) < remaining <= timedelta(hours=2)


def test_callback_missing_code(client):
    res = client.get("/api/v1/salesforce/callback?state=x")
    assert res.status_code == 200
    assert "Missing authorization code or state" in res.get_data(as_text=True)


def test_callback_invalid_state(client):
    res = client.get("/api/v1/salesforce/callback?code=abc&state=tampered")
    assert res.status_code == 200
    assert "Invalid or expired state parameter" in res.get_data(as_text=True)


def test_callback_unknown_environment(client):
    state = encrypt_state("gone", "v")
    res = client.get(f"/api/v1/salesforce/callback?code=abc&state={state}")
    assert "Environment not found" in res.get_data(as_text=True)


def test_callback_reports_salesforce_error(client):
    res = client.get("/api/v1/salesforce/callback?error=access_denied&error_description=user+denied")
    page = res.get_data(as_text=True)
    assert res.status_code == 200
    assert "salesforce-oauth-error" in page
    assert "user denied" in page


def test_callback_exchange_failure(client, configured_env):
    state = encrypt_state(configured_env["id"], "v")
    with patch.object(salesforce_gateway, "exchange_code",
                      side_effect=UpstreamError("Token exchange failed: invalid_grant")):
        res = client.get(f"/api/v1/salesforce/callback?code=abc&state={state}")
    assert res.status_code == 200
    assert "Token exchange failed: invalid_grant" in res.get_data(as_text=True)
    assert db.session.get(Environment, configured_env["id"]).verification_bearer_token is None


def test_callback_unexpected_failure_still_renders_page(client, configured_env):
    state = encrypt_state(configured_env["id"], "v")
    with patch.object(salesforce_gateway, "exchange_code", return_value={"refresh_token": "only-refresh"}):
        res = client.get(f"/api/v1/salesforce/callback?code=abc&state={state}")
    assert res.status_code == 200
    page = res.get_data(as_text=True)
    assert "salesforce-oauth-error" in page
    assert "window.opener" in page
    env = db.session.get(Environment, configured_env["id"])
    assert env.verification_bearer_token is None
    assert env.sf_refresh_token is None


# ═════════════════════════════════════════════════════════════════════════════
# Refresh
# ═════════════════════════════════════════════════════════════════════════════


def test_refresh_requires_auth(client, authorized_env):
    res = client.post("/api/v1/salesforce/refresh", json={"environmentId": authorized_env["id"]})
    assert res.status_code == 401


def test_refresh_without_refresh_token(client, auth_headers, configured_env):
    res = client.post("/api/v1/salesforce/refresh", json={"environmentId": configured_env["id"]},
                      headers=auth_headers)
    assert res.status_code == 400
    assert res.get_json()["error"] == NO_REFRESH_TOKEN_MESSAGE


def test_refresh_success(client, auth_headers, authorized_env):
    with patch.object(salesforce_gateway, "refresh_access_token",
                      return_value={"access_token": "00D-refreshed"}) as mock_refresh:
        res = client.post("/api/v1/salesforce/refresh", json={"environmentId": authorized_env["id"]},
                          headers=auth_headers)
    assert res.status_code == 200
    body = res.get_json()
    assert body["success"] is True
    assert body["token"] == "00D-refreshed"
    assert mock_refresh.call_args[0][3] == "stored-refresh"

    env = db.session.get(Environment, authorized_env["id"])
    assert env.verification_bearer_token == "00D-refreshed"
    assert decrypt_secret(env.sf_refresh_token) == "stored-refresh"

    status = client.get(f"/api/v1/environments/{env.id}", headers=auth_headers).get_json()["oauthStatus"]
    assert status == "authorized"


def test_refresh_upstream_failure_passes_message(client, auth_headers, authorized_env):
    with patch.object(salesforce_gateway, "refresh_access_token",
                      side_effect=UpstreamError("Token refresh failed: expired access/refresh token")):
        res = client.post("/api/v1/salesforce/refresh", json={"environmentId": authorized_env["id"]},
                          headers=auth_headers)
    assert res.status_code == 500
    assert res.get_json()["error"] == "Token refresh failed: expired access/refresh token"


def test_refresh_foreign_environment(client, other_headers, authorized_env):
    res = client.post("/api/v1/salesforce/refresh", json={"environmentId": authorized_env["id"]},
                      headers=other_headers)
    assert res.status_code == 403


def test_expired_status_before_refresh(client, auth_headers, authorized_env):
    body = client.get(f"/api/v1/environments/{authorized_env['id']}", headers=auth_headers).get_json()
    assert body["oauthStatus"] == "expired"
    assert body["hasRefreshToken"] is True


# ═════════════════════════════════════════════════════════════════════════════
# Gateway
# ═════════════════════════════════════════════════════════════════════════════


def _response(status, payload):
    resp = MagicMock()
    resp.ok = 200 <= status < 300
    resp.status_code = status
    resp.json.return_value = payload
    return resp


def test_gateway_error_uses_error_description():
    session = MagicMock()
    session.post.return_value = _response(400, {"error": "invalid_grant", "error_description": "bad code"})
    gateway = SalesforceGateway(session=session)
    with pytest.raises(UpstreamError, match="Token exchange failed: bad code"):
        gateway.exchange_code("https://login.salesforce.com", "cid", "cs", "code", "http://cb")


def test_gateway_falls_back_to_error_field():
    session = MagicMock()
    session.post.return_value = _response(400, {"error": "invalid_client"})
    gateway = SalesforceGateway(session=session)
    with pytest.raises(UpstreamError, match="Token refresh failed: invalid_client"):
        gateway.refresh_access_token("https://login.salesforce.com", "cid", "cs", "rt")


def test_gateway_posts_form_to_token_endpoint():
    session = MagicMock()
    session.post.return_value = _response(200, {"access_token": "tok", "refresh_token": "rt"})
    gateway = SalesforceGateway(session=session)
    tokens = gateway.exchange_code("https://test.salesforce.com", "cid", "cs", "code", "http://cb", "ver")
    assert tokens["access_token"] == "tok"
    url = session.post.call_args[0][0]
    form = session.post.call_args[1]["data"]
    assert url == "https://test.salesforce.com/services/oauth2/token"
    assert form["grant_type"] == "authorization_code"
    assert form["code_verifier"] == "ver"
