"""
Result Blueprint — execution history.

Endpoints:
    GET    /api/v1/results?environmentId=&testId=&status=&page=&limit=
    DELETE /api/v1/results                        — bulk delete { ids: [...] }
    GET    /api/v1/results/<id>
    PATCH  /api/v1/results/<id>                   — { notes }
    DELETE /api/v1/results/<id>
    PATCH  /api/v1/results/<id>/manual-status     — { manualStatus }

    GET    /api/v1/test-results?page=&limit=      — unfiltered paginated listing
    GET    /api/v1/test-results/available-dans?credentialId=&limit=
    GET    /api/v1/test-results/successful-creations?credentialId=&limit=
    GET    /api/v1/test-results/added-tenants?credentialId=&limit=
"""

from flask import Blueprint, g, jsonify, request

from ewc_tester.auth import require_user
from ewc_tester.blueprints import get_json_body
from ewc_tester.services import history_service, result_service

result_bp = Blueprint("result_bp", __name__, url_prefix="/api/v1")


# ── /results ─────────────────────────────────────────────────────────────────


@result_bp.route("/results", methods=["GET"])
@require_user
def list_results():
    body = result_service.list_results(
        g.current_user.id,
        environment_id=request.args.get("environmentId"),
        test_id=request.args.get("testId"),
        status=request.args.get("status"),
        page=request.args.get("page"),
        limit=request.args.get("limit"),
    )
    return jsonify(body), 200


@result_bp.route("/results", methods=["DELETE"])
@require_user
def bulk_delete_results():
    data = get_json_body()
    return jsonify(result_service.bulk_delete(g.current_user.id, data.get("ids"))), 200


@result_bp.route("/results/<result_id>", methods=["GET"])
@require_user
def get_result(result_id):
    return jsonify(result_service.get_result(result_id, g.current_user.id)), 200


@result_bp.route("/results/<result_id>", methods=["PATCH", "PUT"])
@require_user
def update_result(result_id):
    return jsonify(result_service.update_notes(result_id, g.current_user.id, get_json_body())), 200


@result_bp.route("/results/<result_id>", methods=["DELETE"])
@require_user
def delete_result(result_id):
    result_service.delete_result(result_id, g.current_user.id)
    return jsonify({"success": True}), 200


@result_bp.route("/results/<result_id>/manual-status", methods=["PATCH"])
@require_user
def set_manual_status(result_id):
    return jsonify(result_service.set_manual_status(result_id, g.current_user.id, get_json_body())), 200


# ── /test-results ────────────────────────────────────────────────────────────


@result_bp.route("/test-results", methods=["GET"])
@require_user
def list_test_results():
    body = result_service.list_results(
        g.current_user.id,
        page=request.args.get("page"),
        limit=request.args.get("limit"),
    )
    return jsonify(body), 200


@result_bp.route("/test-results/available-dans", methods=["GET"])
@require_user
def available_dans():
    rows = history_service.available_dans(
        g.current_user.id, request.args.get("credentialId"), request.args.get("limit"),
    )
    return jsonify(rows), 200


@result_bp.route("/test-results/successful-creations", methods=["GET"])
@require_user
def successful_creations():
    rows = history_service.successful_creations(
        g.current_user.id, request.args.get("credentialId"), request.args.get("limit"),
    )
    return jsonify(rows), 200


@result_bp.route("/test-results/added-tenants", methods=["GET"])
@require_user
def added_tenants():
    rows = history_service.added_tenants(
        g.current_user.id, request.args.get("credentialId"), request.args.get("limit"),
    )
    return jsonify(rows), 200
