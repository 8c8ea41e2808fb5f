"""
Result Service — browsing, annotating and deleting TestResults.

Results are immutable execution records; only ``manual_status`` (tester
override of the computed status) and ``notes`` change after creation.
Every query is scoped to the caller's environments.
"""

from __future__ import annotations

import logging

from ewc_tester.core.exceptions import ValidationError
from ewc_tester.models import db
from ewc_tester.models.testing import RESULT_STATUSES, Test, TestResult
from ewc_tester.services.access import get_owned_result, owned_environment_ids
from ewc_tester.utils.helpers import clamp_pagination, paginate

logger = logging.getLogger(__name__)

MANUAL_STATUS_ERROR = 'Invalid manual status. Must be "passed", "failed", "error", or null'


def _scoped_query(user_id: str):
    return (
        TestResult.query.join(Test, TestResult.test_id == Test.id)
        .filter(Test.environment_id.in_(owned_environment_ids(user_id)))
    )


def list_results(
    user_id: str,
    *,
    environment_id: str | None = None,
    test_id: str | None = None,
    status: str | None = None,
    page=None,
    limit=None,
) -> dict:
    """Paginated results, newest first.

    Returns:
        {"results": [...], "pagination": {page, limit, totalCount,
        totalPages, hasNext, hasPrev}}
    """
    page, limit = clamp_pagination(page, limit)
    q = _scoped_query(user_id)
    if environment_id:
        q = q.filter(Test.environment_id == environment_id)
    if test_id:
        q = q.filter(TestResult.test_id == test_id)
    if status:
        if status not in RESULT_STATUSES:
            raise ValidationError(
                "Validation failed",
                details={"status": f"Status must be one of: {', '.join(RESULT_STATUSES)}"},
            )
        q = q.filter(TestResult.status == status)

    items, pagination = paginate(q.order_by(TestResult.executed_at.desc()), page, limit)
    return {
        "results": [r.to_dict(include_test=True) for r in items],
        "pagination": pagination,
    }


def get_result(result_id: str, user_id: str) -> dict:
    return get_owned_result(result_id, user_id).to_dict(include_test=True)


def update_notes(result_id: str, user_id: str, data: dict) -> dict:
    result = get_owned_result(result_id, user_id)
    if "notes" not in data:
        raise ValidationError("Validation failed", details={"notes": "notes is required"})
    notes = data["notes"]
    if notes is not None and not isinstance(notes, str):
        raise ValidationError("Validation failed", details={"notes": "Notes must be a string or null"})
    result.notes = notes or None
    db.session.commit()
    return result.to_dict(include_test=True)


def set_manual_status(result_id: str, user_id: str, data: dict) -> dict:
    """Set or clear the tester override. ``manualStatus`` must be present."""
    if "manualStatus" not in data:
        raise ValidationError(MANUAL_STATUS_ERROR)
    value = data["manualStatus"]
    if value is not None and value not in RESULT_STATUSES:
        raise ValidationError(MANUAL_STATUS_ERROR)

    result = get_owned_result(result_id, user_id)
    result.manual_status = value
    db.session.commit()
    logger.info("Manual status set result_id=%s manual_status=%s", result.id, value)
    return {"success": True, "result": result.to_dict(include_test=True)}


def delete_result(result_id: str, user_id: str) -> None:
    result = get_owned_result(result_id, user_id)
    db.session.delete(result)
    db.session.commit()
    logger.info("Test result deleted result_id=%s", result_id)


def bulk_delete(user_id: str, ids) -> dict:
    """Delete the caller's results among ``ids``.

    Ids that are unknown or belong to another user are ignored, so
    ``deletedCount`` is the number of rows actually removed.
    """
    if not isinstance(ids, list) or not ids:
        raise ValidationError('Invalid request. "ids" array is required.')
    wanted = [i for i in ids if isinstance(i, str)]
    owned = [r.id for r in _scoped_query(user_id).filter(TestResult.id.in_(wanted)).all()] if wanted else []
    deleted = 0
    if owned:
        deleted = (
            TestResult.query.filter(TestResult.id.in_(owned))
            .delete(synchronize_session=False)
        )
    db.session.commit()
    logger.info("Bulk deleted test results requested=%d deleted=%d", len(ids), deleted)
    return {"success": True, "deletedCount": deleted}
