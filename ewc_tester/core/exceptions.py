"""
Application-wide exception hierarchy.

Services raise these types; the app registers one JSON handler per type
(see ``ewc_tester.blueprints.register_error_handlers``) so every endpoint
maps failures to the same HTTP status codes.

Usage:
    from ewc_tester.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Environment", resource_id=env_id)
    raise ValidationError("Validation failed", details={"name": "Name is required"})
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist.

    Args:
        resource: Human-readable model/entity name (e.g. "Environment", "Test").
        resource_id: The PK that was looked up. Included in logs, not in HTTP response.
    """

    def __init__(self, resource: str, resource_id: str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(f"{resource} not found")


class ValidationError(Exception):
    """Raised when input fails validation in the service layer.

    Maps to HTTP 400.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
                 Keys are field names; values are error descriptions.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation would violate a unique constraint.

    Maps to HTTP 409.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = f"{resource} with {field}={value!r} already exists"
        super().__init__(msg)


class AuthorizationError(Exception):
    """Raised when the caller does not own the resource they are acting on.

    Maps to HTTP 403.
    """

    def __init__(self, message: str = "You do not have access to this resource") -> None:
        super().__init__(message)


class UpstreamError(Exception):
    """Raised when Salesforce (OAuth or EWC API) rejects a call.

    The message is safe to pass through to the caller: it carries the
    upstream ``error_description`` and never a secret.

    Args:
        message: Human-readable message including the upstream reason.
        status_code: Upstream HTTP status, when a response was received.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)
