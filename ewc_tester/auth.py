"""
EWC API Tester
Authentication decorator for user-scoped endpoints.

The JWT middleware (ewc_tester.middleware.jwt_auth) records the caller in
``g.jwt_user_id``.  Every resource endpoint is owned by a user, so routes
are wrapped with ``require_user``, which loads the account into
``g.current_user`` or answers 401.
"""

import functools
import logging

from flask import g

from ewc_tester.services.user_service import get_user_by_id
from ewc_tester.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def require_user(f):
    """Decorator: require a valid bearer token for an existing user."""
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        user_id = getattr(g, "jwt_user_id", None)
        if not user_id:
            message = getattr(g, "jwt_error", None) or "Authentication required"
            return api_error(E.UNAUTHORIZED, message)

        user = get_user_by_id(user_id)
        if user is None:
            logger.warning("Token for unknown user user_id=%s", user_id)
            return api_error(E.UNAUTHORIZED, "User no longer exists")

        g.current_user = user
        return f(*args, **kwargs)

    return decorated


def current_user_id() -> str:
    return g.current_user.id
