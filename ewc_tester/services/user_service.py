"""
User Service — registration and credential checks for local accounts.
"""

import logging

from email_validator import EmailNotValidError, validate_email

from ewc_tester.core.exceptions import ValidationError
from ewc_tester.models import db
from ewc_tester.models.auth import User
from ewc_tester.utils.crypto import hash_password, verify_password
from ewc_tester.utils.helpers import commit_or_conflict

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8


class UserServiceError(Exception):
    """Authentication failure with the HTTP status the blueprint should return."""
    def __init__(self, message, status_code=400):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


def _normalise_email(email: str) -> str:
    try:
        return validate_email(email, check_deliverability=False).normalized.lower()
    except EmailNotValidError as e:
        raise ValidationError("Validation failed", details={"email": f"Invalid email: {e}"})


def create_user(email: str, password: str, name: str | None = None) -> User:
    """Create a local user account.

    Raises:
        ValidationError: bad email or short password.
        ConflictError: email already registered.
    """
    errors = {}
    if not email:
        errors["email"] = "Email is required"
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        errors["password"] = f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
    if errors:
        raise ValidationError("Validation failed", details=errors)

    email = _normalise_email(email)
    user = User(email=email, password_hash=hash_password(password), name=(name or "").strip() or None)
    db.session.add(user)
    commit_or_conflict("User", "email", email)
    logger.info("User registered user_id=%s", user.id)
    return user


def get_user_by_id(user_id: str) -> User | None:
    if not user_id:
        return None
    return db.session.get(User, user_id)


def get_user_by_email(email: str) -> User | None:
    return User.query.filter_by(email=(email or "").strip().lower()).first()


def authenticate_user(email: str, password: str) -> User:
    """Return the user for valid credentials, else raise UserServiceError(401)."""
    user = get_user_by_email(email)
    if not user or not verify_password(password, user.password_hash):
        logger.info("Failed login attempt")
        raise UserServiceError("Invalid email or password", 401)
    return user
