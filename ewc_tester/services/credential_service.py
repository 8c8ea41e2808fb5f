"""
Credential Service — EWC member credentials, discriminated by ``authType``.

  apikey  → apiKey required; clientId / clientSecret cleared
  oauth2  → clientId + clientSecret required; apiKey cleared

Secrets (apiKey, clientSecret) are encrypted at rest and decrypted for the
owning user on read, since the tester needs them to build request headers.
"""

from __future__ import annotations

import logging

from ewc_tester.core.exceptions import ValidationError
from ewc_tester.models import db
from ewc_tester.models.environment import AUTH_TYPES, Credential, Environment
from ewc_tester.models.testing import Test, TestResult
from ewc_tester.services.access import get_owned_credential, get_owned_environment
from ewc_tester.utils.crypto import CryptoFormatError, decrypt_secret, encrypt_secret
from ewc_tester.utils.helpers import check_optional_text

logger = logging.getLogger(__name__)

_REQUIRED_TEXT = {
    "orgName": "Organization name is required",
    "regionScheme": "Region & Scheme is required",
    "memberId": "Member ID is required",
    "branchId": "Branch ID is required",
}
_TYPE_SECRETS = {
    "apikey": {"apiKey": "API Key is required"},
    "oauth2": {"clientId": "Client ID is required", "clientSecret": "Client Secret is required"},
}
_COLUMNS = {
    "orgName": "org_name",
    "regionScheme": "region_scheme",
    "memberId": "member_id",
    "branchId": "branch_id",
}


def _blank(value) -> bool:
    return not isinstance(value, str) or not value.strip()


def _validate(data: dict, existing: Credential | None = None) -> dict:
    errors = {}
    auth_type = data.get("authType", existing.auth_type if existing else None)
    if auth_type not in AUTH_TYPES:
        errors["authType"] = f"authType must be one of: {', '.join(AUTH_TYPES)}"

    for field, message in _REQUIRED_TEXT.items():
        if (existing is None or field in data) and _blank(data.get(field)):
            errors[field] = message

    if auth_type in _TYPE_SECRETS:
        switching = existing is not None and auth_type != existing.auth_type
        for field, message in _TYPE_SECRETS[auth_type].items():
            # Updates may omit secrets that are already stored for this auth type
            if existing is not None and not switching and field not in data:
                continue
            if _blank(data.get(field)):
                errors[field] = message

    if existing is None and _blank(data.get("environmentId")):
        errors["environmentId"] = "Environment is required"
    if "active" in data and not isinstance(data["active"], bool):
        errors["active"] = "Must be a boolean"
    check_optional_text(data, ("description",), errors)
    return errors


def _apply(cred: Credential, data: dict) -> None:
    for field, column in _COLUMNS.items():
        if field in data:
            setattr(cred, column, data[field].strip())
    if "description" in data:
        cred.description = data["description"] or None
    if "active" in data:
        cred.active = data["active"]
    if "authType" in data:
        cred.auth_type = data["authType"]

    if cred.auth_type == "apikey":
        if data.get("apiKey"):
            cred.api_key = encrypt_secret(data["apiKey"].strip())
        cred.client_id = None
        cred.client_secret = None
    else:
        if data.get("clientId"):
            cred.client_id = data["clientId"].strip()
        if data.get("clientSecret"):
            cred.client_secret = encrypt_secret(data["clientSecret"].strip())
        cred.api_key = None


def decrypted_secrets(cred: Credential) -> dict:
    """Return {"apiKey", "clientSecret"} in plaintext (None where not set).

    Raises:
        CryptoFormatError: stored value is corrupt or was written with another key.
    """
    return {
        "apiKey": decrypt_secret(cred.api_key) if cred.api_key else None,
        "clientSecret": decrypt_secret(cred.client_secret) if cred.client_secret else None,
    }


def serialize_credential(cred: Credential) -> dict:
    d = cred.to_dict()
    try:
        d.update(decrypted_secrets(cred))
    except CryptoFormatError:
        logger.error("Stored credential secret could not be decrypted cred_id=%s", cred.id)
        d.update({"apiKey": None, "clientSecret": None})
    d["environment"] = {
        "id": cred.environment.id,
        "name": cred.environment.name,
        "type": cred.environment.type,
    }
    return d


# ═════════════════════════════════════════════════════════════════════════════
# CRUD
# ═════════════════════════════════════════════════════════════════════════════


def list_credentials(user_id: str, environment_id: str | None = None) -> list[dict]:
    q = Credential.query.join(Environment).filter(Environment.user_id == user_id)
    if environment_id:
        q = q.filter(Credential.environment_id == environment_id)
    return [serialize_credential(c) for c in q.order_by(Credential.created_at.desc()).all()]


def get_credential(credential_id: str, user_id: str) -> dict:
    return serialize_credential(get_owned_credential(credential_id, user_id))


def create_credential(user_id: str, data: dict) -> dict:
    errors = _validate(data)
    if errors:
        raise ValidationError("Validation failed", details=errors)
    env = get_owned_environment(data["environmentId"], user_id)

    cred = Credential(environment_id=env.id, active=True)
    _apply(cred, data)
    db.session.add(cred)
    db.session.commit()
    logger.info("Credential created cred_id=%s env_id=%s auth_type=%s", cred.id, env.id, cred.auth_type)
    return serialize_credential(cred)


def update_credential(credential_id: str, user_id: str, data: dict) -> dict:
    cred = get_owned_credential(credential_id, user_id)
    errors = _validate(data, existing=cred)
    if errors:
        raise ValidationError("Validation failed", details=errors)
    if "environmentId" in data and data["environmentId"] != cred.environment_id:
        env = get_owned_environment(data["environmentId"], user_id)
        # Tests and results keep their environment; detach them from the moved credential
        Test.query.filter_by(credential_id=cred.id).update({"credential_id": None})
        TestResult.query.filter_by(credential_id=cred.id).update({"credential_id": None})
        cred.environment_id = env.id

    _apply(cred, data)
    db.session.commit()
    logger.info("Credential updated cred_id=%s", cred.id)
    return serialize_credential(cred)


def delete_credential(credential_id: str, user_id: str) -> None:
    cred = get_owned_credential(credential_id, user_id)
    Test.query.filter_by(credential_id=cred.id).update({"credential_id": None})
    TestResult.query.filter_by(credential_id=cred.id).update({"credential_id": None})
    db.session.delete(cred)
    db.session.commit()
    logger.info("Credential deleted cred_id=%s", credential_id)
