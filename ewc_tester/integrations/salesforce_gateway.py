"""
Salesforce OAuth2 token gateway.

All outbound calls to ``{loginHost}/services/oauth2/token`` go through this
class: authorization-code exchange and refresh-token exchange.  Direct
``requests`` calls in services or blueprints are not allowed.

  - Form-encoded POST, JSON response
  - Timeout: SALESFORCE_HTTP_TIMEOUT (default 30 s)
  - No retries; failures surface as UpstreamError with the upstream
    ``error_description`` (or ``error``) in the message

Testability: pass a mock ``session`` to SalesforceGateway() or patch the
module-level ``salesforce_gateway`` singleton.
"""

from __future__ import annotations

import logging

import requests
from flask import current_app, has_app_context

from ewc_tester.core.exceptions import UpstreamError

logger = logging.getLogger(__name__)

TOKEN_PATH = "/services/oauth2/token"
AUTHORIZE_PATH = "/services/oauth2/authorize"
_DEFAULT_TIMEOUT = 30


def _timeout() -> int:
    if has_app_context():
        return current_app.config.get("SALESFORCE_HTTP_TIMEOUT", _DEFAULT_TIMEOUT)
    return _DEFAULT_TIMEOUT


class SalesforceGateway:
    """Salesforce OAuth2 token endpoint client.

    Instantiate once at module level (module-level singleton pattern).

    Usage:
        from ewc_tester.integrations.salesforce_gateway import salesforce_gateway
        tokens = salesforce_gateway.exchange_code(login_host, client_id, secret, code, redirect_uri)
    """

    def __init__(self, session: requests.Session | None = None) -> None:
        self._session: requests.Session | None = session

    @property
    def session(self) -> requests.Session:
        """Return (or lazily create) the requests.Session."""
        if self._session is None:
            self._session = requests.Session()
        return self._session

    # ── Token grants ─────────────────────────────────────────────────────────

    def exchange_code(
        self,
        login_host: str,
        client_id: str,
        client_secret: str,
        code: str,
        redirect_uri: str,
        code_verifier: str | None = None,
    ) -> dict:
        """Exchange an authorization code for access + refresh tokens.

        Returns:
            Token response dict (access_token, refresh_token, instance_url, ...).

        Raises:
            UpstreamError: "Token exchange failed: <reason>".
        """
        form = {
            "grant_type": "authorization_code",
            "code": code,
            "client_id": client_id,
            "client_secret": client_secret,
            "redirect_uri": redirect_uri,
        }
        if code_verifier:
            form["code_verifier"] = code_verifier
        return self._post_token(login_host, form, "Token exchange failed")

    def refresh_access_token(
        self,
        login_host: str,
        client_id: str,
        client_secret: str,
        refresh_token: str,
    ) -> dict:
        """Obtain a new access token from a stored refresh token.

        Raises:
            UpstreamError: "Token refresh failed: <reason>".
        """
        form = {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": client_id,
            "client_secret": client_secret,
        }
        return self._post_token(login_host, form, "Token refresh failed")

    # ── HTTP ─────────────────────────────────────────────────────────────────

    def _post_token(self, login_host: str, form: dict, failure_prefix: str) -> dict:
        url = f"{login_host}{TOKEN_PATH}"
        try:
            resp = self.session.post(
                url,
                data=form,
                headers={"Accept": "application/json"},
                timeout=_timeout(),
            )
        except requests.RequestException as exc:
            logger.warning("Salesforce token call failed host=%s grant=%s: %s",
                           login_host, form["grant_type"], exc)
            raise UpstreamError(f"{failure_prefix}: {exc}") from exc

        try:
            body = resp.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        if not resp.ok:
            reason = body.get("error_description") or body.get("error") or f"HTTP {resp.status_code}"
            logger.warning("Salesforce token call rejected host=%s grant=%s status=%s error=%s",
                           login_host, form["grant_type"], resp.status_code, body.get("error"))
            raise UpstreamError(f"{failure_prefix}: {reason}", status_code=resp.status_code)

        if not body.get("access_token"):
            raise UpstreamError(f"{failure_prefix}: response did not include an access token",
                                status_code=resp.status_code)

        logger.info("Salesforce token call succeeded host=%s grant=%s", login_host, form["grant_type"])
        return body


# Module-level singleton; import this in services
salesforce_gateway = SalesforceGateway()
