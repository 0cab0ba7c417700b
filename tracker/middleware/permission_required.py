"""
Permission Decorators — JWT-aware role decorators for route protection.

Usage:
    @bp.route("/api/v1/tasks", methods=["GET"])
    @require_auth
    def list_tasks():
        ...

    @bp.route("/api/v1/users", methods=["GET"])
    @require_role(UserRole.SUPER_USER)
    def list_users():
        ...

Finer rules (task ownership, who may supply an estimate) stay in the
services; these decorators only answer "is somebody signed in, and is
their role high enough".
"""

import functools
import logging

from flask import g

from tracker.core.types import UserRole
from tracker.services.identity import role_rank
from tracker.utils.errors import E, api_error

logger = logging.getLogger(__name__)

_AUTH_MESSAGES = {
    "expired": "Token has expired",
    "invalid": "Invalid token",
    "not_approved": "Account is not approved or no longer exists",
}


def current_user():
    return getattr(g, "current_user", None)


def _unauthorized():
    reason = getattr(g, "auth_error", None)
    if reason:
        return api_error(E.AUTH_INVALID, _AUTH_MESSAGES.get(reason, "Invalid token"))
    return api_error(E.AUTH_REQUIRED, "Authentication required")


def require_auth(f):
    """Decorator: require an approved, signed-in user."""
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        if current_user() is None:
            return _unauthorized()
        return f(*args, **kwargs)
    return decorated


def require_role(minimum: UserRole):
    """
    Decorator: require a signed-in user whose role ranks at least ``minimum``.

    Args:
        minimum: Lowest accepted role, e.g. UserRole.ADMIN for managers.
    """
    def decorator(f):
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            user = current_user()
            if user is None:
                return _unauthorized()
            if role_rank(user.role) < role_rank(minimum):
                logger.warning(
                    "User %s denied: role '%s' below '%s' on %s",
                    user.id, user.role.value, minimum.value, f.__name__,
                    extra={"user_id": user.id},
                )
                return api_error(E.FORBIDDEN, "Permission denied", details={"required_role": minimum.value})
            return f(*args, **kwargs)
        return decorated
    return decorator


require_manager = require_role(UserRole.ADMIN)
require_super_user = require_role(UserRole.SUPER_USER)
