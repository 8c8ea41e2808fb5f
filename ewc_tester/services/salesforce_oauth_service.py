"""
Salesforce OAuth2 Service — authorization-code flow per Environment.

Flow:
  1. start_authorization(environment_id)
       → PKCE verifier/challenge + encrypted state → login redirect URL
  2. complete_authorization(code, state)
       → decrypt/verify state (5 minute window) → exchange code
       → store access token, encrypted refresh token, expiry = now + 2 h
  3. refresh_environment_token(environment_id, user_id)
       → decrypt client secret + refresh token → refresh grant
       → store new access token, expiry = now + 2 h

Per-environment status (see oauth_status):
  unconfigured → authorized → expired → (refresh) → authorized

All outbound HTTP: delegated to ``salesforce_gateway``.
Concurrent refreshes are not coordinated; the last write wins.
"""

from __future__ import annotations

import base64
import hashlib
import json
import logging
import secrets
import time
from datetime import datetime, timedelta, timezone
from urllib.parse import urlencode

from flask import current_app

from ewc_tester.core.exceptions import NotFoundError, UpstreamError, ValidationError
from ewc_tester.integrations.salesforce_gateway import AUTHORIZE_PATH, salesforce_gateway
from ewc_tester.models import db
from ewc_tester.models.base import as_utc
from ewc_tester.models.environment import Environment
from ewc_tester.services.access import get_owned_environment
from ewc_tester.utils.crypto import CryptoFormatError, decrypt_secret, encrypt_secret

logger = logging.getLogger(__name__)

PRODUCTION_LOGIN_HOST = "https://login.salesforce.com"
SANDBOX_LOGIN_HOST = "https://test.salesforce.com"
CALLBACK_PATH = "/api/v1/salesforce/callback"
OAUTH_SCOPE = "api refresh_token"

STATE_MAX_AGE_MS = 5 * 60 * 1000
TOKEN_LIFETIME = timedelta(hours=2)

STATUS_UNCONFIGURED = "unconfigured"
STATUS_AUTHORIZED = "authorized"
STATUS_EXPIRED = "expired"

NO_REFRESH_TOKEN_MESSAGE = "No refresh token available. Please re-authenticate with Salesforce."


# ═════════════════════════════════════════════════════════════════════════════
# Helpers
# ═════════════════════════════════════════════════════════════════════════════


def get_login_host(instance_url: str, env_type: str | None = None) -> str:
    """Sandbox and scratch orgs log in through test.salesforce.com.

    The instance URL decides when the type alone does not: sandbox hosts
    contain ``.sandbox.`` and scratch org hosts contain ``--``.
    """
    if env_type in ("sandbox", "scratch"):
        return SANDBOX_LOGIN_HOST
    url = instance_url or ""
    if ".sandbox." in url or "--" in url:
        return SANDBOX_LOGIN_HOST
    return PRODUCTION_LOGIN_HOST


def generate_pkce() -> tuple[str, str]:
    """Return (code_verifier, code_challenge) for the S256 method."""
    verifier = secrets.token_urlsafe(32)
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    challenge = base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")
    return verifier, challenge


def get_redirect_uri() -> str:
    return f"{current_app.config['APP_URL'].rstrip('/')}{CALLBACK_PATH}"


def build_authorization_url(
    login_host: str,
    client_id: str,
    redirect_uri: str,
    state: str,
    code_challenge: str | None = None,
) -> str:
    params = {
        "response_type": "code",
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "scope": OAUTH_SCOPE,
        "state": state,
    }
    if code_challenge:
        params["code_challenge"] = code_challenge
        params["code_challenge_method"] = "S256"
    return f"{login_host}{AUTHORIZE_PATH}?{urlencode(params)}"


def encrypt_state(environment_id: str, code_verifier: str) -> str:
    """Opaque CSRF state: encrypted JSON with the environment, PKCE verifier and a timestamp."""
    payload = json.dumps({
        "environmentId": environment_id,
        "codeVerifier": code_verifier,
        "timestamp": int(time.time() * 1000),
        "nonce": secrets.token_hex(8),
    })
    return encrypt_secret(payload)


def decrypt_state(state: str, now_ms: int | None = None) -> dict | None:
    """Return {environmentId, codeVerifier} or None if invalid or older than 5 minutes."""
    try:
        data = json.loads(decrypt_secret(state))
        issued = int(data["timestamp"])
        environment_id = data["environmentId"]
    except (CryptoFormatError, ValueError, KeyError, TypeError):
        return None
    now_ms = int(time.time() * 1000) if now_ms is None else now_ms
    if now_ms - issued > STATE_MAX_AGE_MS:
        return None
    return {"environmentId": environment_id, "codeVerifier": data.get("codeVerifier")}


def oauth_status(environment: Environment, now: datetime | None = None) -> str:
    """Current position of the environment in the OAuth token lifecycle."""
    if not environment.has_client_credentials:
        return STATUS_UNCONFIGURED
    if not environment.verification_bearer_token or not environment.sf_refresh_token:
        return STATUS_UNCONFIGURED
    expires_at = as_utc(environment.sf_token_expires_at)
    now = now or datetime.now(timezone.utc)
    if expires_at is None or expires_at <= now:
        return STATUS_EXPIRED
    return STATUS_AUTHORIZED


def _store_tokens(environment: Environment, access_token: str, refresh_token: str | None = None) -> datetime:
    expires_at = datetime.now(timezone.utc) + TOKEN_LIFETIME
    environment.verification_bearer_token = access_token
    if refresh_token:
        environment.sf_refresh_token = encrypt_secret(refresh_token)
    environment.sf_token_expires_at = expires_at
    db.session.commit()
    return expires_at


# ═════════════════════════════════════════════════════════════════════════════
# Flow
# ═════════════════════════════════════════════════════════════════════════════


def start_authorization(environment_id: str | None) -> str:
    """Return the Salesforce login URL for ``environment_id``.

    Raises:
        ValidationError: environmentId missing or Connected App not configured.
        NotFoundError: unknown environment.
    """
    if not environment_id:
        raise ValidationError("environmentId is required")
    environment = db.session.get(Environment, environment_id)
    if environment is None:
        raise NotFoundError("Environment", environment_id)
    if not environment.has_client_credentials:
        raise ValidationError(
            "Connected App credentials not configured for this environment. "
            "Please add Client ID and Client Secret in environment settings."
        )

    code_verifier, code_challenge = generate_pkce()
    login_host = get_login_host(environment.instance_url, environment.type)
    logger.info("Starting Salesforce OAuth env_id=%s login_host=%s", environment.id, login_host)
    return build_authorization_url(
        login_host,
        environment.sf_client_id,
        get_redirect_uri(),
        encrypt_state(environment.id, code_verifier),
        code_challenge,
    )


def complete_authorization(
    code: str | None,
    state: str | None,
    error: str | None = None,
    error_description: str | None = None,
) -> dict:
    """Finish the flow for the popup callback page.

    Never raises; returns
    {"success": True, "token", "expiresAt"} or {"success": False, "error"}.
    """
    if error:
        logger.warning("Salesforce returned OAuth error: %s", error)
        return {"success": False, "error": error_description or error}
    if not code or not state:
        return {"success": False, "error": "Missing authorization code or state"}

    state_data = decrypt_state(state)
    if state_data is None:
        return {"success": False, "error": "Invalid or expired state parameter"}

    environment = db.session.get(Environment, state_data["environmentId"])
    if environment is None:
        return {"success": False, "error": "Environment not found"}
    if not environment.has_client_credentials:
        return {"success": False, "error": "Connected App credentials not configured"}

    try:
        client_secret = decrypt_secret(environment.sf_client_secret)
        tokens = salesforce_gateway.exchange_code(
            get_login_host(environment.instance_url, environment.type),
            environment.sf_client_id,
            client_secret,
            code,
            get_redirect_uri(),
            state_data.get("codeVerifier"),
        )
    except CryptoFormatError:
        logger.error("Stored client secret could not be decrypted env_id=%s", environment.id)
        return {"success": False, "error": "Stored Connected App secret could not be decrypted"}
    except UpstreamError as exc:
        return {"success": False, "error": str(exc)}

    try:
        expires_at = _store_tokens(environment, tokens["access_token"], tokens.get("refresh_token"))
    except Exception as exc:
        db.session.rollback()
        logger.exception("Storing Salesforce tokens failed env_id=%s", environment.id)
        return {"success": False, "error": str(exc)}

    logger.info("Salesforce OAuth completed env_id=%s", environment.id)
    return {
        "success": True,
        "token": tokens["access_token"],
        "expiresAt": expires_at.isoformat(),
    }


def refresh_environment_token(environment_id: str | None, user_id: str) -> dict:
    """Exchange the stored refresh token for a new access token.

    Returns:
        {"success": True, "token", "expiresAt"}

    Raises:
        ValidationError: missing id, Connected App not configured, no refresh token.
        NotFoundError / AuthorizationError: unknown or foreign environment.
        UpstreamError: Salesforce rejected the refresh ("Token refresh failed: ...").
    """
    if not environment_id:
        raise ValidationError("environmentId is required")
    environment = get_owned_environment(environment_id, user_id)
    if not environment.has_client_credentials:
        raise ValidationError("Connected App credentials not configured")
    if not environment.sf_refresh_token:
        raise ValidationError(NO_REFRESH_TOKEN_MESSAGE)

    try:
        client_secret = decrypt_secret(environment.sf_client_secret)
        refresh_token = decrypt_secret(environment.sf_refresh_token)
    except CryptoFormatError as exc:
        logger.error("Stored OAuth secrets could not be decrypted env_id=%s", environment.id)
        raise UpstreamError("Token refresh failed: stored credentials could not be decrypted") from exc

    tokens = salesforce_gateway.refresh_access_token(
        get_login_host(environment.instance_url, environment.type),
        environment.sf_client_id,
        client_secret,
        refresh_token,
    )
    expires_at = _store_tokens(environment, tokens["access_token"], tokens.get("refresh_token"))
    logger.info("Salesforce token refreshed env_id=%s", environment.id)
    return {
        "success": True,
        "token": tokens["access_token"],
        "expiresAt": expires_at.isoformat(),
    }
