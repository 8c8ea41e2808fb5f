"""
EWC REST API gateway.

All outbound calls to the deposit-protection API hosted on a Salesforce org
(``{instanceUrl}/services/apexrest/...``) go through this class.

  - API-key auth: caller supplies the AccessToken header
  - OAuth2 auth: ``authorise()`` exchanges the auth_code header for a
    short-lived AccessToken (fresh token for every execution, no cache)
  - Timeout: SALESFORCE_HTTP_TIMEOUT (default 30 s)
  - No retries.  ``send()`` never raises: any HTTP status is a result,
    network failures come back with ``status_code=None``.

Testability: pass a mock ``session`` to EWCGateway() or patch the
module-level ``ewc_gateway`` singleton.
"""

from __future__ import annotations

import logging
import time
from typing import Any

import requests
from flask import current_app, has_app_context

logger = logging.getLogger(__name__)

APEX_PREFIX = "/services/apexrest/"
OAUTH_APEX_PREFIX = "/services/apexrest/auth/"
AUTHORISE_PATH = "/services/apexrest/authorise"
_DEFAULT_TIMEOUT = 30


def _timeout() -> int:
    if has_app_context():
        return current_app.config.get("SALESFORCE_HTTP_TIMEOUT", _DEFAULT_TIMEOUT)
    return _DEFAULT_TIMEOUT


def to_oauth_endpoint(path: str) -> str:
    """OAuth2 calls use the ``/services/apexrest/auth/`` variant of every endpoint."""
    if path.startswith(APEX_PREFIX) and path != AUTHORISE_PATH and not path.startswith(OAUTH_APEX_PREFIX):
        return path.replace(APEX_PREFIX, OAUTH_APEX_PREFIX, 1)
    return path


class GatewayResult:
    """Structured return value from EWCGateway calls.

    Attributes:
        ok:           True for an HTTP 2xx response.
        status_code:  HTTP status code (None if no response was received).
        headers:      Response headers.
        data:         Parsed JSON body, raw text when not JSON, else None.
        error:        Human-readable error message or None.
        duration_ms:  Round-trip latency in milliseconds.
    """

    def __init__(
        self,
        ok: bool,
        status_code: int | None,
        data: Any,
        error: str | None,
        duration_ms: int,
        headers: dict | None = None,
    ) -> None:
        self.ok = ok
        self.status_code = status_code
        self.data = data
        self.error = error
        self.duration_ms = duration_ms
        self.headers = headers or {}

    @property
    def responded(self) -> bool:
        return self.status_code is not None


class EWCGateway:
    """EWC deposit-protection API client.

    Usage:
        from ewc_tester.integrations.ewc_gateway import ewc_gateway
        result = ewc_gateway.send("GET", url, headers)
    """

    def __init__(self, session: requests.Session | None = None) -> None:
        self._session: requests.Session | None = session

    @property
    def session(self) -> requests.Session:
        """Return (or lazily create) the requests.Session."""
        if self._session is None:
            self._session = requests.Session()
        return self._session

    # ── OAuth2 authorise ─────────────────────────────────────────────────────

    def authorise(self, instance_url: str, auth_code: str, branch_id: str) -> GatewayResult:
        """Fetch an OAuth2 AccessToken from ``/services/apexrest/authorise``.

        The returned token carries a ``0`` branch placeholder in its third
        dash-separated part; it is replaced with ``branch_id``.

        Returns:
            GatewayResult whose ``data`` is the AccessToken string on success.
        """
        url = f"{instance_url.rstrip('/')}{AUTHORISE_PATH}"
        result = self.send(
            "GET", url,
            {"Content-Type": "application/json", "auth_code": auth_code},
        )
        if not result.ok:
            reason = result.error or f"HTTP {result.status_code}"
            return GatewayResult(False, result.status_code, result.data,
                                 f"OAuth2 authorization failed: {reason}", result.duration_ms,
                                 result.headers)

        data = result.data if isinstance(result.data, dict) else {}
        token = data.get("AccessToken")
        if str(data.get("success")).lower() != "true" or not token:
            return GatewayResult(False, result.status_code, result.data,
                                 "OAuth2 authorization failed: Invalid response format",
                                 result.duration_ms, result.headers)

        parts = token.split("-")
        if len(parts) >= 3 and parts[2].strip() == "0":
            parts[2] = branch_id.strip()
            token = "-".join(parts)

        logger.info("EWC OAuth2 authorisation succeeded instance=%s", instance_url)
        return GatewayResult(True, result.status_code, token, None, result.duration_ms, result.headers)

    # ── HTTP ─────────────────────────────────────────────────────────────────

    def send(
        self,
        method: str,
        url: str,
        headers: dict,
        body: Any = None,
    ) -> GatewayResult:
        """Execute one request; any HTTP status is returned, never raised."""
        timeout = _timeout()
        t0 = time.perf_counter()
        try:
            resp = self.session.request(
                method.upper(), url,
                headers=headers,
                json=body if method.upper() not in ("GET", "DELETE") else None,
                timeout=timeout,
            )
        except requests.Timeout:
            duration_ms = int((time.perf_counter() - t0) * 1000)
            logger.warning("EWC request timed out method=%s url=%s", method, url)
            return GatewayResult(False, None, None, f"Request timed out after {timeout}s", duration_ms)
        except requests.RequestException as exc:
            duration_ms = int((time.perf_counter() - t0) * 1000)
            logger.warning("EWC network error method=%s url=%s error=%s", method, url, exc)
            return GatewayResult(False, None, None, str(exc)[:500], duration_ms)

        duration_ms = int((time.perf_counter() - t0) * 1000)
        try:
            data = resp.json() if resp.content else None
        except ValueError:
            data = resp.text

        error = None
        if not resp.ok:
            error = _error_message(data) or f"HTTP {resp.status_code}"
            logger.info("EWC request returned status=%d method=%s url=%s",
                        resp.status_code, method, url)

        return GatewayResult(resp.ok, resp.status_code, data, error, duration_ms, dict(resp.headers))


def _error_message(data: Any) -> str | None:
    """Pull a message out of an EWC / Salesforce error body."""
    if isinstance(data, list) and data and isinstance(data[0], dict):
        data = data[0]
    if isinstance(data, dict):
        return data.get("message") or data.get("error_description") or data.get("error")
    if isinstance(data, str) and data:
        return data[:500]
    return None


# Module-level singleton; import this instance in services.
ewc_gateway = EWCGateway()
