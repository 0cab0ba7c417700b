"""
Change Request Tracker
Blueprint registry.
"""

import logging

from flask import request

from tracker.core.exceptions import (
    AccessDenied,
    ConflictError,
    PersistenceError,
    TrackerError,
)
from tracker.utils.errors import api_error

logger = logging.getLogger(__name__)


def json_body() -> dict:
    """Request JSON as a dict; anything else (missing, list, scalar) is {}."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def register_error_handlers(bp):
    """Map ``TrackerError`` subclasses to ``api_error`` responses on ``bp``."""

    @bp.errorhandler(TrackerError)
    def _handle_tracker_error(error: TrackerError):
        if isinstance(error, (AccessDenied, ConflictError)):
            logger.warning("%s on %s: %s", type(error).__name__, request.endpoint, error)
        elif isinstance(error, PersistenceError):
            logger.error("Persistence failure on %s: %s", request.endpoint, error)
        return api_error(error.code, str(error), status=error.status, details=error.details)

    return bp
