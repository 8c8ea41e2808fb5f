"""
Environment Blueprint — target Salesforce orgs.

Endpoints:
    GET    /api/v1/environments          — list (owner's, newest first)
    POST   /api/v1/environments          — create
    GET    /api/v1/environments/<id>     — detail
    PUT    /api/v1/environments/<id>     — partial update (PATCH accepted)
    DELETE /api/v1/environments/<id>     — delete with credentials, tests, results

Layer contract:
    - No ORM calls here — all DB work delegated to environment_service.
"""

from flask import Blueprint, g, jsonify

from ewc_tester.auth import require_user
from ewc_tester.blueprints import get_json_body
from ewc_tester.services import environment_service

environment_bp = Blueprint("environment_bp", __name__, url_prefix="/api/v1/environments")


@environment_bp.route("", methods=["GET"])
@require_user
def list_environments():
    return jsonify(environment_service.list_environments(g.current_user.id)), 200


@environment_bp.route("", methods=["POST"])
@require_user
def create_environment():
    """
    Body: { "name", "type", "instanceUrl", "description"?, "active"?,
            "sfConnectedAppClientId"?, "sfConnectedAppClientSecret"? }
    """
    env = environment_service.create_environment(g.current_user.id, get_json_body())
    return jsonify(env), 201


@environment_bp.route("/<environment_id>", methods=["GET"])
@require_user
def get_environment(environment_id):
    return jsonify(environment_service.get_environment(environment_id, g.current_user.id)), 200


@environment_bp.route("/<environment_id>", methods=["PUT", "PATCH"])
@require_user
def update_environment(environment_id):
    env = environment_service.update_environment(environment_id, g.current_user.id, get_json_body())
    return jsonify(env), 200


@environment_bp.route("/<environment_id>", methods=["DELETE"])
@require_user
def delete_environment(environment_id):
    environment_service.delete_environment(environment_id, g.current_user.id)
    return jsonify({"success": True}), 200
