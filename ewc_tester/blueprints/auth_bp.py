"""
Auth Blueprint — local accounts and JWT access tokens.

  POST /api/v1/auth/register    — Email + password → account + access token
  POST /api/v1/auth/login       — Email + password → access token
  GET  /api/v1/auth/me          — Current user profile
"""

from flask import Blueprint, g, jsonify

from ewc_tester.auth import require_user
from ewc_tester.blueprints import get_json_body
from ewc_tester.services.jwt_service import generate_access_token
from ewc_tester.services.user_service import UserServiceError, authenticate_user, create_user

auth_bp = Blueprint("auth_bp", __name__, url_prefix="/api/v1/auth")


def _token_response(user, status):
    tokens = generate_access_token(user.id, user.email)
    return jsonify({
        "access_token": tokens["access_token"],
        "token_type": tokens["token_type"],
        "expires_in": tokens["expires_in"],
        "user": user.to_dict(),
    }), status


# ═══════════════════════════════════════════════════════════════
# POST /api/v1/auth/register
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/register", methods=["POST"])
def register():
    """
    Body: { "email": "...", "password": "...", "name": "..." }
    """
    data = get_json_body()
    user = create_user(
        (data.get("email") or "").strip(),
        data.get("password") or "",
        data.get("name"),
    )
    return _token_response(user, 201)


# ═══════════════════════════════════════════════════════════════
# POST /api/v1/auth/login
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/login", methods=["POST"])
def login():
    """
    Body: { "email": "...", "password": "..." }
    """
    data = get_json_body()
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""
    if not email or not password:
        return jsonify({"error": "Email and password are required"}), 400

    try:
        user = authenticate_user(email, password)
    except UserServiceError as e:
        return jsonify({"error": e.message}), e.status_code
    return _token_response(user, 200)


# ═══════════════════════════════════════════════════════════════
# GET /api/v1/auth/me
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/me", methods=["GET"])
@require_user
def me():
    return jsonify(g.current_user.to_dict()), 200
