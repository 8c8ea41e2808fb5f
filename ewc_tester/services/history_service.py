"""
History Service — data mined from earlier successful executions.

Later tests in a sequence (repayment, deposit update, tenant removal) need
identifiers produced by earlier ones.  These queries read the stored
request/response snapshots of passed results from the last 30 days:

  available_dans        deposit-creation results → DAN + tenancy details
  successful_creations  deposit-creation results → references + full payload
  added_tenants         deposit-creation and add-additional-tenant results
                        → tenants with the DAN they are attached to

Tests are selected by their catalog key (``Test.endpoint_id``).
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta, timezone

from ewc_tester.core.exceptions import ValidationError
from ewc_tester.models.base import isoformat
from ewc_tester.models.testing import Test, TestResult
from ewc_tester.services.access import owned_environment_ids
from ewc_tester.services.endpoint_catalog import ADD_ADDITIONAL_TENANT, DEPOSIT_CREATION
from ewc_tester.utils.helpers import clamp_pagination, load_json

logger = logging.getLogger(__name__)

HISTORY_WINDOW = timedelta(days=30)
DAN_PATTERN = re.compile(r"(EWCS?|EWI|NI|SDS)\d+", re.IGNORECASE)

TENANT_FIELDS = (
    "person_classification", "person_id", "person_reference", "person_title",
    "person_firstname", "person_surname", "is_business", "person_paon",
    "person_saon", "person_street", "person_locality", "person_town",
    "person_postcode", "person_country", "person_phone", "person_email",
    "person_mobile", "business_name",
)


# ═════════════════════════════════════════════════════════════════════════════
# Snapshot helpers
# ═════════════════════════════════════════════════════════════════════════════


def _as_dict(value) -> dict:
    return value if isinstance(value, dict) else {}


def extract_dan(response: dict | None):
    """DAN lookup order: data.dan, data.DAN, dan, DAN."""
    response = _as_dict(response)
    data = _as_dict(response.get("data"))
    for candidate in (data.get("dan"), data.get("DAN"), response.get("dan"), response.get("DAN")):
        if candidate:
            return candidate
    return None


def dan_from_endpoint(endpoint: str | None):
    match = DAN_PATTERN.search(endpoint or "")
    return match.group(0) if match else None


def _tenancy(request: dict | None) -> dict:
    return _as_dict(_as_dict(_as_dict(request).get("body")).get("tenancy"))


def _references(tenancy: dict) -> dict:
    return {
        "user_tenancy_reference": tenancy.get("user_tenancy_reference"),
        "deposit_reference": tenancy.get("deposit_reference"),
        "property_id": tenancy.get("property_id"),
    }


def _credential_summary(result: TestResult):
    cred = result.credential
    if cred is None:
        return None
    return {"id": cred.id, "orgName": cred.org_name, "authType": cred.auth_type}


def _passed_results(user_id: str, endpoint_ids, credential_id: str | None, limit: int,
                    now: datetime | None = None):
    cutoff = (now or datetime.now(timezone.utc)) - HISTORY_WINDOW
    q = (
        TestResult.query.join(Test, TestResult.test_id == Test.id)
        .filter(Test.environment_id.in_(owned_environment_ids(user_id)))
        .filter(Test.endpoint_id.in_(endpoint_ids))
        .filter(TestResult.status == "passed")
        .filter(TestResult.executed_at >= cutoff)
    )
    if credential_id:
        q = q.filter(TestResult.credential_id == credential_id)
    return q.order_by(TestResult.executed_at.desc()).limit(limit).all()


def _limit(value, default: int) -> int:
    return clamp_pagination(1, value, default_limit=default)[1]


# ═════════════════════════════════════════════════════════════════════════════
# Queries
# ═════════════════════════════════════════════════════════════════════════════


def available_dans(user_id: str, credential_id: str | None = None, limit=None,
                   now: datetime | None = None) -> list[dict]:
    """Deposits available for follow-up calls; results without a DAN are dropped."""
    rows = _passed_results(user_id, [DEPOSIT_CREATION], credential_id, _limit(limit, 20), now)
    out = []
    for result in rows:
        request = load_json(result.request, {})
        dan = extract_dan(load_json(result.response, {}))
        if not dan:
            continue
        tenancy = _tenancy(request)
        out.append({
            "id": result.id,
            "testId": result.test_id,
            "testName": result.test.name,
            "executedAt": isoformat(result.executed_at),
            "responseTime": result.response_time,
            "credential": _credential_summary(result),
            "deposit": {
                "dan": dan,
                "tenancy_end_date": tenancy.get("tenancy_end_date"),
                "deposit_amount": tenancy.get("deposit_amount"),
            },
            "references": _references(tenancy),
        })
    logger.debug("Available DANs user_id=%s found=%d returned=%d", user_id, len(rows), len(out))
    return out


def successful_creations(user_id: str, credential_id: str | None = None, limit=None,
                         now: datetime | None = None) -> list[dict]:
    rows = _passed_results(user_id, [DEPOSIT_CREATION], credential_id, _limit(limit, 10), now)
    out = []
    for result in rows:
        request = _as_dict(load_json(result.request, {}))
        response = _as_dict(load_json(result.response, {}))
        data = _as_dict(response.get("data"))
        out.append({
            "id": result.id,
            "testId": result.test_id,
            "testName": result.test.name,
            "executedAt": isoformat(result.executed_at),
            "responseTime": result.response_time,
            "credential": _credential_summary(result),
            "references": _references(_tenancy(request)),
            "response": {
                "dan": extract_dan(response),
                "batch_id": data.get("batch_id") or response.get("batch_id"),
                "success": data.get("success") or response.get("success"),
            },
            "requestPayload": request.get("body"),
        })
    return out


def added_tenants(user_id: str, credential_id: str | None, limit=None,
                  now: datetime | None = None) -> list[dict]:
    """Tenants known to exist on a deposit, for tenant-removal tests.

    Raises:
        ValidationError: credentialId missing.
    """
    if not credential_id:
        raise ValidationError("credentialId is required")
    rows = _passed_results(
        user_id, [DEPOSIT_CREATION, ADD_ADDITIONAL_TENANT], credential_id, _limit(limit, 100), now,
    )

    tenants = []
    for result in rows:
        request = _as_dict(load_json(result.request, {}))
        body = _as_dict(request.get("body"))
        if result.test.endpoint_id == DEPOSIT_CREATION:
            source = "deposit-creation"
            dan = extract_dan(load_json(result.response, {}))
            people = _tenancy(request).get("people")
        else:
            source = "add-tenant"
            dan = dan_from_endpoint(result.test.endpoint)
            people = body.get("people")
        if not dan or not isinstance(people, list):
            continue

        for index, person in enumerate(people):
            if not isinstance(person, dict):
                continue
            if str(person.get("person_classification") or "").lower() != "tenant":
                continue
            key = person.get("person_id") or person.get("person_email") or index
            tenants.append({
                "id": f"{result.id}-{key}",
                "testResultId": result.id,
                "dan": dan,
                "source": source,
                "tenant": {field: person.get(field) for field in TENANT_FIELDS},
                "addedAt": isoformat(result.executed_at),
                "testName": result.test.name,
                "credential": _credential_summary(result),
            })
    logger.debug("Added tenants user_id=%s results=%d tenants=%d", user_id, len(rows), len(tenants))
    return tenants
