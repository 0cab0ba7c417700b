"""
JWT Auth Middleware — Parses the Bearer token and resolves the session user.

Sets, for every /api/v1/ request:
  g.current_user  →  approved ``AppUser`` or None
  g.auth_error    →  why the token was rejected ("expired", "invalid",
                     "not_approved"), or None

The middleware never blocks a request; route decorators in
``tracker.middleware.permission_required`` decide whether a user is needed.
"""

import logging

import jwt as pyjwt
from flask import g, request

from tracker.services import user_service
from tracker.services.jwt_service import decode_access_token

logger = logging.getLogger(__name__)

# Paths that skip JWT auth entirely
JWT_SKIP_PREFIXES = (
    "/api/v1/auth/login",
    "/api/v1/auth/register",
    "/api/v1/health",
)


def init_jwt_middleware(app):
    """Register JWT middleware as a before_request hook."""

    @app.before_request
    def _jwt_auth():
        g.current_user = None
        g.auth_error = None

        path = request.path
        if not path.startswith("/api/v1/"):
            return
        for prefix in JWT_SKIP_PREFIXES:
            if path.startswith(prefix):
                return

        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            return

        token = auth_header[7:]  # Strip "Bearer "

        try:
            claims = decode_access_token(token)
        except pyjwt.ExpiredSignatureError:
            g.auth_error = "expired"
            return
        except pyjwt.InvalidTokenError as e:
            logger.debug("Rejected token: %s", e)
            g.auth_error = "invalid"
            return

        g.current_user = user_service.resolve_session(claims)
        if g.current_user is None:
            g.auth_error = "not_approved"
