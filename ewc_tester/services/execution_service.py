"""
Execution Service — runs a Test against its environment and records a TestResult.

Request construction:
  apikey   AccessToken: {regionPrefix}-{memberId}-{branchId}-{apiKey}
           Alias URL (useAliasUrl) from the endpoint catalog; when the alias
           carries the credentials in its path no AccessToken header is sent.
  oauth2   AccessToken fetched fresh from /services/apexrest/authorise,
           endpoint rewritten to /services/apexrest/auth/...

Outcome:
  any HTTP response → passed when the status equals expectedStatus and every
                      validation rule passes, otherwise failed
  no response       → error (network failure, OAuth2 authorisation failure)

Request snapshots never contain the plaintext API key or OAuth token.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone

from ewc_tester.core.exceptions import ValidationError
from ewc_tester.integrations.ewc_gateway import GatewayResult, ewc_gateway, to_oauth_endpoint
from ewc_tester.models import db
from ewc_tester.models.environment import Credential
from ewc_tester.models.testing import Test, TestResult
from ewc_tester.services.access import get_owned_test
from ewc_tester.services.credential_service import decrypted_secrets
from ewc_tester.services.endpoint_catalog import ApiEndpoint, get_endpoint, match_endpoint
from ewc_tester.services.region_scheme import build_api_key_token, build_oauth2_auth_code
from ewc_tester.services.validator import all_validations_passed, validate_response
from ewc_tester.utils.crypto import CryptoFormatError
from ewc_tester.utils.helpers import dump_json, load_json

logger = logging.getLogger(__name__)

_REDACTED = "<redacted>"
_OAUTH_PLACEHOLDER = "<OAuth2 token, fetched per execution>"


def _catalog_entry(test: Test) -> ApiEndpoint | None:
    return get_endpoint(test.endpoint_id) or match_endpoint(test.endpoint)


def build_alias_path(test: Test, credential: Credential, api_key: str) -> tuple[str | None, bool]:
    """Return (alias_path, auth_in_url) or (None, False) when no alias applies.

    Aliases are only used for API-key credentials.  Path parameters are
    copied positionally from the test's endpoint into the alias template.
    """
    if not test.use_alias_url or credential.auth_type != "apikey":
        return None, False
    entry = _catalog_entry(test)
    if entry is None or not entry.supports_alias_url:
        return None, False

    alias = entry.alias_endpoint
    if entry.alias_auth_in_url:
        alias = (
            alias.replace("{member_id}", credential.member_id)
            .replace("{branch_id}", credential.branch_id)
            .replace("{api_key}", api_key)
        )
        if entry.path_param:
            placeholder = "{" + entry.path_param + "}"
            template_parts = entry.endpoint.split("/")
            test_parts = test.endpoint.split("/")
            for i, part in enumerate(template_parts):
                if part == placeholder and i < len(test_parts) and test_parts[i]:
                    alias = alias.replace(placeholder, test_parts[i])
                    break
    return alias, entry.alias_auth_in_url


def _redact(text: str, *secrets: str | None) -> str:
    for secret in secrets:
        if secret:
            text = text.replace(secret, _REDACTED)
    return text


def _record(test: Test, credential: Credential, status: str, result: GatewayResult | None,
            request_snapshot: dict, duration_ms: int, validation_results=None, error=None) -> TestResult:
    status_code = result.status_code if result is not None and result.responded else 0
    response_snapshot = {
        "status": status_code,
        "headers": result.headers if result is not None else {},
        "data": result.data if result is not None and result.responded else None,
    }
    row = TestResult(
        test_id=test.id,
        credential_id=credential.id,
        status=status,
        response_time=duration_ms,
        status_code=status_code,
        request=dump_json(request_snapshot),
        response=dump_json(response_snapshot),
        validation_results=dump_json(validation_results) if validation_results else None,
        error=error,
        executed_at=datetime.now(timezone.utc),
    )
    db.session.add(row)
    db.session.commit()
    logger.info("Test executed test_id=%s result_id=%s status=%s status_code=%s duration_ms=%d",
                test.id, row.id, status, status_code, duration_ms)
    return row


def run_test(test: Test, credential: Credential) -> TestResult:
    """Execute ``test`` with ``credential`` and persist the outcome."""
    environment = test.environment
    instance_url = environment.instance_url.rstrip("/")
    body = load_json(test.body)
    headers = {"Content-Type": "application/json"}
    headers.update(load_json(test.headers, {}) or {})
    started = time.perf_counter()

    plain = decrypted_secrets(credential)
    path = test.endpoint
    snapshot_headers = dict(headers)

    if credential.auth_type == "apikey":
        alias, auth_in_url = build_alias_path(test, credential, plain["apiKey"])
        if alias:
            path = alias
        if not auth_in_url:
            headers["AccessToken"] = build_api_key_token(
                credential.region_scheme, credential.member_id, credential.branch_id, plain["apiKey"],
            )
            snapshot_headers["AccessToken"] = _redact(headers["AccessToken"], plain["apiKey"])
    else:
        path = to_oauth_endpoint(path)
        snapshot_headers["AccessToken"] = _OAUTH_PLACEHOLDER
        auth = ewc_gateway.authorise(
            instance_url,
            build_oauth2_auth_code(
                credential.region_scheme, credential.client_id, plain["clientSecret"], credential.member_id,
            ),
            credential.branch_id,
        )
        if not auth.ok:
            duration_ms = int((time.perf_counter() - started) * 1000)
            request_snapshot = {
                "url": f"{instance_url}{path}", "method": test.method,
                "headers": snapshot_headers, "body": body,
            }
            return _record(test, credential, "error", None, request_snapshot, duration_ms,
                           error=auth.error)
        headers["AccessToken"] = auth.data

    url = f"{instance_url}{path}"
    request_snapshot = {
        "url": _redact(url, plain["apiKey"]),
        "method": test.method,
        "headers": snapshot_headers,
        "body": body,
    }

    result = ewc_gateway.send(test.method, url, headers, body)
    duration_ms = int((time.perf_counter() - started) * 1000)

    if not result.responded:
        return _record(test, credential, "error", result, request_snapshot, duration_ms,
                       error=result.error or "Request failed")

    validation_results = validate_response(result.data, load_json(test.validations, []))
    status_matches = result.status_code == test.expected_status
    passed = status_matches and all_validations_passed(validation_results)
    error = None
    if not status_matches:
        error = f"Expected status code {test.expected_status} but got {result.status_code}"
    elif not passed:
        error = "One or more validations failed"
    return _record(test, credential, "passed" if passed else "failed", result, request_snapshot,
                   duration_ms, validation_results, error)


def execute_test(test_id: str, user_id: str) -> dict:
    """Run a stored test for its owner.

    Raises:
        NotFoundError / AuthorizationError: unknown or foreign test.
        ValidationError: inactive environment, missing or inactive credential,
            or credential secrets that cannot be decrypted.
    """
    test = get_owned_test(test_id, user_id)
    if not test.environment.active:
        raise ValidationError("Environment is not active")
    credential = test.credential
    if credential is None:
        raise ValidationError("Test has no credential configured")
    if not credential.active:
        raise ValidationError("Credential is not active")

    try:
        row = run_test(test, credential)
    except CryptoFormatError as exc:
        logger.error("Credential secrets could not be decrypted cred_id=%s", credential.id)
        raise ValidationError("Stored credential secrets could not be decrypted") from exc
    return row.to_dict(include_test=True)
