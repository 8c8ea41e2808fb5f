"""
Credential Blueprint — EWC member credentials.

Endpoints:
    GET    /api/v1/credentials?environmentId=   — list
    POST   /api/v1/credentials                  — create
    GET    /api/v1/credentials/<id>             — detail (secrets decrypted)
    PUT    /api/v1/credentials/<id>             — partial update (PATCH accepted)
    DELETE /api/v1/credentials/<id>             — delete
"""

from flask import Blueprint, g, jsonify, request

from ewc_tester.auth import require_user
from ewc_tester.blueprints import get_json_body
from ewc_tester.services import credential_service

credential_bp = Blueprint("credential_bp", __name__, url_prefix="/api/v1/credentials")


@credential_bp.route("", methods=["GET"])
@require_user
def list_credentials():
    creds = credential_service.list_credentials(g.current_user.id, request.args.get("environmentId"))
    return jsonify(creds), 200


@credential_bp.route("", methods=["POST"])
@require_user
def create_credential():
    """
    Body (apikey): { "environmentId", "authType": "apikey", "orgName", "regionScheme",
                     "memberId", "branchId", "apiKey", "description"? }
    Body (oauth2): same with "clientId" + "clientSecret" instead of "apiKey"
    """
    cred = credential_service.create_credential(g.current_user.id, get_json_body())
    return jsonify(cred), 201


@credential_bp.route("/<credential_id>", methods=["GET"])
@require_user
def get_credential(credential_id):
    return jsonify(credential_service.get_credential(credential_id, g.current_user.id)), 200


@credential_bp.route("/<credential_id>", methods=["PUT", "PATCH"])
@require_user
def update_credential(credential_id):
    cred = credential_service.update_credential(credential_id, g.current_user.id, get_json_body())
    return jsonify(cred), 200


@credential_bp.route("/<credential_id>", methods=["DELETE"])
@require_user
def delete_credential(credential_id):
    credential_service.delete_credential(credential_id, g.current_user.id)
    return jsonify({"success": True}), 200
