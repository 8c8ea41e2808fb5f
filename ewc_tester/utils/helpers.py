"""Shared utility functions used by services and blueprints.

commit_or_conflict:  commit the session, IntegrityError → ConflictError
dump_json/load_json: JSON-text columns (headers, body, snapshots, resultIds)
clamp_pagination:    page/limit normalisation for result listings
paginate:            apply offset/limit and build the pagination envelope
check_optional_text: field-level type check for nullable string fields
"""
import json
import logging
import math

from sqlalchemy.exc import IntegrityError

from ewc_tester.core.exceptions import ConflictError
from ewc_tester.models import db

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 500


# ── Database commit helper ───────────────────────────────────────────────────

def commit_or_conflict(resource: str, field: str, value=None):
    """Commit the current session, translating unique violations to ConflictError.

    IntegrityError → rollback + ConflictError (409)
    Anything else  → rollback + re-raise (500 via the app error handler)
    """
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        logger.warning("Integrity error on commit (%s.%s): %s", resource, field, exc.orig)
        raise ConflictError(resource, field, value) from exc
    except Exception:
        db.session.rollback()
        logger.exception("Unexpected database error on commit")
        raise


# ── JSON text columns ────────────────────────────────────────────────────────

def dump_json(value):
    """Serialise a value for a JSON-text column. None stays NULL."""
    if value is None:
        return None
    return json.dumps(value)


def load_json(text, default=None):
    """Parse a JSON-text column, returning ``default`` for NULL or bad data."""
    if text is None or text == "":
        return default
    try:
        return json.loads(text)
    except (TypeError, ValueError):
        logger.warning("Stored JSON could not be parsed; returning default")
        return default


# ── Validation ───────────────────────────────────────────────────────────────

def check_optional_text(data: dict, fields, errors: dict) -> dict:
    """Record an error for each present field that is neither None nor a string."""
    for field in fields:
        if field in data and data[field] is not None and not isinstance(data[field], str):
            errors[field] = "Must be a string"
    return errors


# ── Pagination ───────────────────────────────────────────────────────────────

def _to_int(value, default):
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def clamp_pagination(page, limit, default_limit=DEFAULT_PAGE_SIZE):
    """Normalise raw page/limit values.

    page  → at least 1
    limit → clamped to [1, MAX_PAGE_SIZE]
    Unparseable input falls back to page 1 / ``default_limit``.
    """
    page = max(1, _to_int(page, 1))
    limit = min(max(1, _to_int(limit, default_limit)), MAX_PAGE_SIZE)
    return page, limit


def paginate(query, page, limit):
    """Run ``query`` for one page.

    Returns:
        (items, pagination) where pagination is
        {page, limit, totalCount, totalPages, hasNext, hasPrev}.
    """
    total_count = query.order_by(None).count()
    items = query.offset((page - 1) * limit).limit(limit).all()
    total_pages = math.ceil(total_count / limit) if total_count else 0
    return items, {
        "page": page,
        "limit": limit,
        "totalCount": total_count,
        "totalPages": total_pages,
        "hasNext": page < total_pages,
        "hasPrev": page > 1,
    }
