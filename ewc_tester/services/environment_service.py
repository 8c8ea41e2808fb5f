"""
Environment Service — CRUD for target Salesforce orgs.

Connected App client secrets are encrypted on write and never returned;
payloads report ``hasClientSecret`` / ``hasRefreshToken`` / ``oauthStatus``
instead.  Environment names are unique per owner.
"""

from __future__ import annotations

import logging
from urllib.parse import urlparse

from ewc_tester.core.exceptions import ConflictError, ValidationError
from ewc_tester.models import db
from ewc_tester.models.environment import ENVIRONMENT_TYPES, Environment
from ewc_tester.services.access import get_owned_environment
from ewc_tester.services.salesforce_oauth_service import oauth_status
from ewc_tester.utils.crypto import CryptoFormatError, decrypt_secret, encrypt_secret
from ewc_tester.utils.helpers import check_optional_text, commit_or_conflict

logger = logging.getLogger(__name__)


def _is_valid_url(value) -> bool:
    if not isinstance(value, str):
        return False
    parsed = urlparse(value.strip())
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def _validate(data: dict, partial: bool = False) -> dict:
    """Validate an environment payload; return {field: message} errors."""
    errors = {}
    if not partial or "name" in data:
        name = data.get("name")
        if not isinstance(name, str) or not name.strip():
            errors["name"] = "Name is required"
        elif len(name.strip()) > 200:
            errors["name"] = "Name must be at most 200 characters"
    if not partial or "type" in data:
        if data.get("type") not in ENVIRONMENT_TYPES:
            errors["type"] = f"Type must be one of: {', '.join(ENVIRONMENT_TYPES)}"
    if not partial or "instanceUrl" in data:
        if not _is_valid_url(data.get("instanceUrl")):
            errors["instanceUrl"] = "Must be a valid URL"
    for flag in ("active", "verificationEnabled"):
        if flag in data and not isinstance(data[flag], bool):
            errors[flag] = "Must be a boolean"
    check_optional_text(data, ("description", "sfConnectedAppClientId", "sfConnectedAppClientSecret"), errors)
    return errors


def _ensure_unique_name(user_id: str, name: str, exclude_id: str | None = None) -> None:
    q = Environment.query_for_user(user_id).filter(Environment.name == name)
    if exclude_id:
        q = q.filter(Environment.id != exclude_id)
    if q.first() is not None:
        raise ConflictError("Environment", "name", name)


def _apply(env: Environment, data: dict) -> None:
    if "name" in data:
        env.name = data["name"].strip()
    if "type" in data:
        env.type = data["type"]
    if "instanceUrl" in data:
        env.instance_url = data["instanceUrl"].strip().rstrip("/")
    if "description" in data:
        env.description = data["description"] or None
    if "active" in data:
        env.active = data["active"]
    if "verificationEnabled" in data:
        env.verification_enabled = data["verificationEnabled"]
    if _connected_app_changed(env, data):
        # Tokens issued to the previous Connected App are no longer usable
        env.verification_bearer_token = None
        env.sf_refresh_token = None
        env.sf_token_expires_at = None
    if "sfConnectedAppClientId" in data:
        env.sf_client_id = (data["sfConnectedAppClientId"] or "").strip() or None
    if "sfConnectedAppClientSecret" in data:
        secret = data["sfConnectedAppClientSecret"]
        env.sf_client_secret = encrypt_secret(secret) if secret else None


def _connected_app_changed(env: Environment, data: dict) -> bool:
    if "sfConnectedAppClientId" in data:
        if ((data["sfConnectedAppClientId"] or "").strip() or None) != env.sf_client_id:
            return True
    if "sfConnectedAppClientSecret" in data:
        secret = data["sfConnectedAppClientSecret"] or None
        if env.sf_client_secret is None or secret is None:
            return secret != env.sf_client_secret
        try:
            return decrypt_secret(env.sf_client_secret) != secret
        except CryptoFormatError:
            return True
    return False


def serialize_environment(env: Environment, include_credentials: bool = True) -> dict:
    d = env.to_dict()
    d["oauthStatus"] = oauth_status(env)
    d["_count"] = {"credentials": env.credentials.count(), "tests": env.tests.count()}
    if include_credentials:
        d["credentials"] = [c.to_summary() for c in env.credentials]
    return d


# ═════════════════════════════════════════════════════════════════════════════
# CRUD
# ═════════════════════════════════════════════════════════════════════════════


def list_environments(user_id: str) -> list[dict]:
    envs = Environment.query_for_user(user_id).order_by(Environment.created_at.desc()).all()
    return [serialize_environment(e) for e in envs]


def get_environment(environment_id: str, user_id: str) -> dict:
    return serialize_environment(get_owned_environment(environment_id, user_id))


def create_environment(user_id: str, data: dict) -> dict:
    errors = _validate(data)
    if errors:
        raise ValidationError("Validation failed", details=errors)
    name = data["name"].strip()
    _ensure_unique_name(user_id, name)

    env = Environment(user_id=user_id, active=True, verification_enabled=False)
    _apply(env, data)
    db.session.add(env)
    commit_or_conflict("Environment", "name", name)
    logger.info("Environment created env_id=%s type=%s", env.id, env.type)
    return serialize_environment(env)


def update_environment(environment_id: str, user_id: str, data: dict) -> dict:
    env = get_owned_environment(environment_id, user_id)
    errors = _validate(data, partial=True)
    if errors:
        raise ValidationError("Validation failed", details=errors)
    if "name" in data:
        _ensure_unique_name(user_id, data["name"].strip(), exclude_id=env.id)

    _apply(env, data)
    commit_or_conflict("Environment", "name", env.name)
    logger.info("Environment updated env_id=%s", env.id)
    return serialize_environment(env)


def delete_environment(environment_id: str, user_id: str) -> None:
    """Delete an environment with its credentials, tests and results."""
    env = get_owned_environment(environment_id, user_id)
    db.session.delete(env)
    db.session.commit()
    logger.info("Environment deleted env_id=%s", environment_id)
