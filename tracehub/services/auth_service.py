"""
Auth collaborator: the only two questions the core asks about identity:

    verify_password(user_id, plaintext) → bool
    current_principal()                 → acting user id

`require_password` turns the boolean into the error taxonomy used by the
lifecycle and test execution services:

    missing password        → BadRequestError("Password required")
    wrong password / user   → UnauthorizedError("Invalid password")

Password checks always run before the mutating transaction is opened.
"""

import logging

from email_validator import EmailNotValidError, validate_email
from flask import g, has_request_context

from tracehub.core.exceptions import (
    BadRequestError,
    ConflictError,
    UnauthorizedError,
    ValidationError,
)
from tracehub.models import db
from tracehub.models.auth import User
from tracehub.utils.crypto import hash_password, verify_password_hash
from tracehub.utils.helpers import atomic

logger = logging.getLogger(__name__)


def verify_password(user_id: int | None, plaintext: str | None) -> bool:
    """Return True when *plaintext* matches the stored hash of an active user."""
    if user_id is None or not plaintext:
        return False
    user = db.session.get(User, user_id)
    if user is None or not user.is_active:
        return False
    return verify_password_hash(plaintext, user.password_hash)


def require_password(user_id: int | None, password: str | None) -> None:
    """Raise unless *password* is present and correct for *user_id*."""
    if not password:
        raise BadRequestError("Password required")
    if not verify_password(user_id, password):
        logger.info("Password re-verification failed for user %s", user_id)
        raise UnauthorizedError("Invalid password")


def current_principal() -> int:
    """Return the acting user id from the request context."""
    user_id = getattr(g, "current_user_id", None) if has_request_context() else None
    if user_id is None:
        raise UnauthorizedError("Authentication required")
    return user_id


def create_user(email: str, password: str, full_name: str | None = None) -> User:
    """Provision a local user (CLI / fixtures); login itself lives elsewhere."""
    try:
        valid = validate_email((email or "").strip(), check_deliverability=False)
    except EmailNotValidError as e:
        raise ValidationError(f"Invalid email: {e}", details={"email": "invalid"}) from None
    if not password:
        raise ValidationError("Password is required", details={"password": "required"})
    # Stored lower-case so uniqueness ignores case
    email = valid.normalized.lower()
    if User.query.filter_by(email=email).first() is not None:
        raise ConflictError("User", "email", email)

    with atomic():
        user = User(email=email, full_name=full_name, password_hash=hash_password(password))
        db.session.add(user)
    return user
