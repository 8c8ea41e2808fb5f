"""
Test Blueprint — test definitions, execution and the endpoint catalog.

Endpoints:
    GET    /api/v1/tests?environmentId=    — list
    POST   /api/v1/tests                   — create
    GET    /api/v1/tests/<id>              — detail
    PUT    /api/v1/tests/<id>              — partial update (PATCH accepted)
    DELETE /api/v1/tests/<id>              — delete with results
    POST   /api/v1/tests/<id>/execute      — run against the EWC API, store result
    GET    /api/v1/endpoints?category=     — EWC endpoint catalog
"""

from flask import Blueprint, g, jsonify, request

from ewc_tester.auth import require_user
from ewc_tester.blueprints import get_json_body
from ewc_tester.services import execution_service, test_service
from ewc_tester.services.endpoint_catalog import API_CATEGORIES, list_endpoints

tests_bp = Blueprint("tests_bp", __name__, url_prefix="/api/v1")


@tests_bp.route("/tests", methods=["GET"])
@require_user
def list_tests():
    return jsonify(test_service.list_tests(g.current_user.id, request.args.get("environmentId"))), 200


@tests_bp.route("/tests", methods=["POST"])
@require_user
def create_test():
    """
    Body: { "environmentId", "credentialId"?, "name", "endpoint", "endpointId"?,
            "method", "headers"?, "body"?, "expectedStatus"?, "validations"?,
            "useAliasUrl"? }
    """
    return jsonify(test_service.create_test(g.current_user.id, get_json_body())), 201


@tests_bp.route("/tests/<test_id>", methods=["GET"])
@require_user
def get_test(test_id):
    return jsonify(test_service.get_test(test_id, g.current_user.id)), 200


@tests_bp.route("/tests/<test_id>", methods=["PUT", "PATCH"])
@require_user
def update_test(test_id):
    return jsonify(test_service.update_test(test_id, g.current_user.id, get_json_body())), 200


@tests_bp.route("/tests/<test_id>", methods=["DELETE"])
@require_user
def delete_test(test_id):
    test_service.delete_test(test_id, g.current_user.id)
    return jsonify({"success": True}), 200


@tests_bp.route("/tests/<test_id>/execute", methods=["POST"])
@require_user
def execute_test(test_id):
    """Always 200 once the call is attempted; the outcome is in ``status``."""
    return jsonify(execution_service.execute_test(test_id, g.current_user.id)), 200


@tests_bp.route("/endpoints", methods=["GET"])
@require_user
def endpoint_catalog():
    category = request.args.get("category")
    return jsonify({
        "categories": list(API_CATEGORIES),
        "endpoints": [e.to_dict() for e in list_endpoints(category)],
    }), 200
