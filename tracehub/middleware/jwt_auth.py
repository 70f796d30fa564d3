"""
JWT Auth Middleware: parses a bearer token and sets g.current_user_id.

The middleware only identifies the acting principal. It never rejects a
request itself: endpoints that mutate state ask the auth service for the
principal and fail with 401 when none is present.
"""

import logging

import jwt as pyjwt
from flask import g, request

from tracehub.services.jwt_service import decode_access_token

logger = logging.getLogger(__name__)

# Paths that skip JWT parsing entirely
JWT_SKIP_PREFIXES = (
    "/api/v1/health",
)


def init_jwt_middleware(app):
    """Register JWT middleware as a before_request hook."""

    @app.before_request
    def _jwt_auth():
        g.current_user_id = None

        path = request.path
        if not path.startswith("/api/v1/"):
            return
        if path.startswith(JWT_SKIP_PREFIXES):
            return

        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            return

        token = auth_header[7:]  # Strip "Bearer "

        try:
            payload = decode_access_token(token)
            g.current_user_id = int(payload["sub"])
        except pyjwt.ExpiredSignatureError:
            logger.info("Expired access token on %s", path)
        except (pyjwt.InvalidTokenError, KeyError, TypeError, ValueError):
            logger.info("Invalid access token on %s", path)
