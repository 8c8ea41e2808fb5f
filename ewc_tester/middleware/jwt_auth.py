"""
JWT Auth Middleware — Parses JWT from Authorization header, sets g.jwt_user_id.

The hook never rejects a request: it only records who the caller is.
Routes that need a user are wrapped with ``require_user`` (ewc_tester.auth),
which turns a missing or invalid token into 401.
"""

import jwt as pyjwt
from flask import g, request

from ewc_tester.services.jwt_service import decode_access_token


# Paths that skip JWT parsing entirely
JWT_SKIP_PREFIXES = (
    "/api/v1/auth/login",
    "/api/v1/auth/register",
    "/api/v1/health",
    "/api/v1/salesforce/authorize",
    "/api/v1/salesforce/callback",
)


def init_jwt_middleware(app):
    """Register JWT middleware as a before_request hook."""

    @app.before_request
    def _jwt_auth():
        g.jwt_user_id = None
        g.jwt_error = None

        path = request.path
        if not path.startswith("/api/v1/"):
            return
        for prefix in JWT_SKIP_PREFIXES:
            if path.startswith(prefix):
                return

        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            return

        token = auth_header[7:]
        try:
            payload = decode_access_token(token)
            g.jwt_user_id = payload.get("sub")
        except pyjwt.ExpiredSignatureError:
            g.jwt_error = "Token has expired"
        except pyjwt.InvalidTokenError:
            g.jwt_error = "Invalid token"
