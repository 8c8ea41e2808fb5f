"""
EWC API Tester
Blueprint registry and app-wide error handlers.

Services raise the exceptions in ewc_tester.core.exceptions; the handlers
below map them to JSON responses once for every blueprint.
"""

import logging

from flask import request

from ewc_tester.core.exceptions import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    UpstreamError,
    ValidationError,
)
from ewc_tester.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def get_json_body() -> dict:
    """Request JSON as a dict; anything else (missing, list, bad JSON) is {}."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def register_error_handlers(app):
    """Register JSON handlers for the service-layer exception hierarchy."""

    @app.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        code = E.VALIDATION_INVALID if error.details else E.VALIDATION_REQUIRED
        return api_error(code, str(error), details=error.details or None)

    @app.errorhandler(NotFoundError)
    def _handle_not_found(error: NotFoundError):
        logger.info("Not found: %s id=%s", error.resource, error.resource_id)
        return api_error(E.NOT_FOUND, str(error))

    @app.errorhandler(AuthorizationError)
    def _handle_forbidden(error: AuthorizationError):
        logger.warning("Forbidden: %s %s", request.method, request.path)
        return api_error(E.FORBIDDEN, str(error))

    @app.errorhandler(ConflictError)
    def _handle_conflict(error: ConflictError):
        return api_error(E.CONFLICT_DUPLICATE, str(error))

    @app.errorhandler(UpstreamError)
    def _handle_upstream(error: UpstreamError):
        logger.error("Upstream failure: %s (status=%s)", error, error.status_code)
        return api_error(E.UPSTREAM, str(error))
