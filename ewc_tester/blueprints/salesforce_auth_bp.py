"""
Salesforce OAuth Blueprint — per-environment authorization-code flow.

  GET  /api/v1/salesforce/authorize?environmentId=  → 302 to the Salesforce login
  GET  /api/v1/salesforce/callback?code=&state=     → popup page posting the result
  POST /api/v1/salesforce/refresh                   → new access token (owner only)

authorize and callback run inside a browser popup without the bearer
token; the encrypted ``state`` ties the callback to the environment.
"""

import logging

from flask import Blueprint, current_app, g, jsonify, redirect, render_template, request

from ewc_tester.auth import require_user
from ewc_tester.blueprints import get_json_body
from ewc_tester.services import salesforce_oauth_service as oauth

logger = logging.getLogger(__name__)

salesforce_auth_bp = Blueprint("salesforce_auth_bp", __name__, url_prefix="/api/v1/salesforce")


@salesforce_auth_bp.route("/authorize", methods=["GET"])
def authorize():
    url = oauth.start_authorization(request.args.get("environmentId"))
    return redirect(url, code=302)


@salesforce_auth_bp.route("/callback", methods=["GET"])
def callback():
    """Always 200: the page reports success or failure to the opener window."""
    outcome = oauth.complete_authorization(
        request.args.get("code"),
        request.args.get("state"),
        error=request.args.get("error"),
        error_description=request.args.get("error_description"),
    )
    if not outcome["success"]:
        logger.warning("Salesforce OAuth callback failed: %s", outcome["error"])

    message = {
        "type": "salesforce-oauth-success" if outcome["success"] else "salesforce-oauth-error",
        "success": outcome["success"],
    }
    if outcome["success"]:
        message["token"] = outcome["token"]
        message["expiresAt"] = outcome["expiresAt"]
    else:
        message["error"] = outcome["error"]

    return render_template(
        "oauth_callback.html",
        message=message,
        target_origin=current_app.config["APP_URL"],
    ), 200


@salesforce_auth_bp.route("/refresh", methods=["POST"])
@require_user
def refresh():
    """
    Body: { "environmentId": "..." }
    """
    data = get_json_body()
    result = oauth.refresh_environment_token(data.get("environmentId"), g.current_user.id)
    return jsonify(result), 200
