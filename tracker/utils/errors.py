"""Standardised API error responses.

Usage
-----
    from tracker.utils.errors import api_error, E

    return api_error(E.NOT_FOUND, "Task not found")
    return api_error(E.VALIDATION_REQUIRED, "status is required")
    return api_error(e.code, str(e), status=e.status, details=e.details)
"""

from __future__ import annotations

from flask import jsonify


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants.

    Convention:
     • ERR_  prefix for every application error
     • workflow codes mirror the exception classes in tracker.core.exceptions
    """

    # Validation – HTTP 400 / 422
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"
    IMPORT_INVALID = "ERR_IMPORT_INVALID"

    # Auth – HTTP 401 / 403
    AUTH_REQUIRED = "ERR_AUTH_REQUIRED"
    AUTH_INVALID = "ERR_AUTH_INVALID"
    AUTH_NOT_APPROVED = "ERR_AUTH_NOT_APPROVED"
    FORBIDDEN = "ERR_FORBIDDEN"

    # Not-found – HTTP 404
    NOT_FOUND = "ERR_NOT_FOUND"

    # Conflict – HTTP 409
    CONFLICT_STATE = "ERR_CONFLICT_STATE"

    # Workflow – HTTP 422
    WORKFLOW = "ERR_WORKFLOW"
    INVALID_TRANSITION = "ERR_INVALID_TRANSITION"
    ROLLBACK_REASON_REQUIRED = "ERR_ROLLBACK_REASON_REQUIRED"
    STATUS_DATE_REQUIRED = "ERR_STATUS_DATE_REQUIRED"
    ESTIMATE_REQUIRED = "ERR_ESTIMATE_REQUIRED"
    DELIVERY_DATE_REQUIRED = "ERR_DELIVERY_DATE_REQUIRED"
    INVALID_HOURS = "ERR_INVALID_HOURS"

    # Server – HTTP 500 / 503
    DATABASE = "ERR_DATABASE"
    INTERNAL = "ERR_INTERNAL"


# ── Default HTTP status mapping ───────────────────────────────────────
_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 422,
    E.IMPORT_INVALID: 400,
    E.AUTH_REQUIRED: 401,
    E.AUTH_INVALID: 401,
    E.AUTH_NOT_APPROVED: 403,
    E.FORBIDDEN: 403,
    E.NOT_FOUND: 404,
    E.CONFLICT_STATE: 409,
    E.WORKFLOW: 422,
    E.INVALID_TRANSITION: 422,
    E.ROLLBACK_REASON_REQUIRED: 422,
    E.STATUS_DATE_REQUIRED: 422,
    E.ESTIMATE_REQUIRED: 422,
    E.DELIVERY_DATE_REQUIRED: 422,
    E.INVALID_HOURS: 422,
    E.DATABASE: 503,
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
        Human-readable explanation for developers / UI.
    status : int, optional
        HTTP status override.  Falls back to ``_DEFAULT_STATUS[code]``,
        then to ``400``.
    details : dict, optional
        Field-level breakdown (which input is missing or invalid).

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
