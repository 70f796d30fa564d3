"""Standardised API error responses.

Usage
-----
    from tracehub.utils.errors import api_error, E

    return api_error(E.NOT_FOUND, "Source not found")
    return api_error(E.VALIDATION_INVALID, "Title is required", details={"title": "required"})
"""

from __future__ import annotations

from flask import jsonify


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants (ERR_ prefix)."""

    # Validation – HTTP 422
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"

    # Wrong operation for current state – HTTP 400
    BAD_REQUEST = "ERR_BAD_REQUEST"

    # Password re-verification / missing principal – HTTP 401
    UNAUTHORIZED = "ERR_UNAUTHORIZED"

    # Not-found – HTTP 404
    NOT_FOUND = "ERR_NOT_FOUND"

    # Conflict / duplicate – HTTP 409
    CONFLICT_DUPLICATE = "ERR_CONFLICT_DUPLICATE"

    # Method not allowed – HTTP 405
    METHOD_NOT_ALLOWED = "ERR_METHOD_NOT_ALLOWED"

    # Server – HTTP 500
    INTERNAL = "ERR_INTERNAL"


# ── Default HTTP status mapping ───────────────────────────────────────
_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_INVALID: 422,
    E.BAD_REQUEST: 400,
    E.UNAUTHORIZED: 401,
    E.NOT_FOUND: 404,
    E.CONFLICT_DUPLICATE: 409,
    E.METHOD_NOT_ALLOWED: 405,
    E.INTERNAL: 500,
}


def api_error(
    code: str,
    message: str,
    *,
    status: int | None = None,
    details: dict | None = None,
):
    """Return a standard JSON error response.

    Parameters
    ----------
    code : str
        Machine-readable error code (use ``E.*`` constants).
    message : str
        Human-readable explanation.
    status : int, optional
        HTTP status override.  Falls back to ``_DEFAULT_STATUS[code]``,
        then to ``400``.
    details : dict, optional
        Field-level breakdown.

    Returns
    -------
    tuple[Response, int]
        ``(jsonify(body), http_status)`` – drop-in for Flask views.
    """

    http_status = status or _DEFAULT_STATUS.get(code, 400)

    body: dict = {
        "error": message,
        "code": code,
    }
    if details:
        body["details"] = details

    return jsonify(body), http_status


# ── Application-wide handlers ─────────────────────────────────────────
def register_error_handlers(app):
    """Map service-layer exceptions to JSON error responses."""
    import logging

    from flask import request
    from werkzeug.exceptions import HTTPException

    from tracehub.core.exceptions import (
        BadRequestError,
        ConflictError,
        NotFoundError,
        UnauthorizedError,
        ValidationError,
    )
    from tracehub.models import db

    logger = logging.getLogger(__name__)

    @app.errorhandler(ValidationError)
    def _handle_validation(error):
        return api_error(E.VALIDATION_INVALID, str(error), details=error.details)

    @app.errorhandler(BadRequestError)
    def _handle_bad_request(error):
        return api_error(E.BAD_REQUEST, str(error), details=error.details)

    @app.errorhandler(UnauthorizedError)
    def _handle_unauthorized(error):
        return api_error(E.UNAUTHORIZED, str(error))

    @app.errorhandler(NotFoundError)
    def _handle_not_found(error):
        logger.debug("Not found: %s (%s=%s)", error, error.resource, error.resource_id)
        return api_error(E.NOT_FOUND, str(error))

    @app.errorhandler(ConflictError)
    def _handle_conflict(error):
        return api_error(E.CONFLICT_DUPLICATE, str(error))

    @app.errorhandler(404)
    def _handle_404(error):
        return api_error(E.NOT_FOUND, "Not found")

    @app.errorhandler(405)
    def _handle_405(error):
        return api_error(E.METHOD_NOT_ALLOWED, "Method not allowed")

    @app.errorhandler(Exception)
    def _handle_unexpected(error):
        if isinstance(error, HTTPException):
            status = error.code or 500
            code = E.INTERNAL if status >= 500 else E.BAD_REQUEST
            return api_error(code, error.description or error.name, status=status)
        db.session.rollback()
        logger.exception("Unhandled error on %s %s", request.method, request.path)
        return api_error(E.INTERNAL, "Internal server error")
