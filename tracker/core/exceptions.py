"""
Tracker-wide exception hierarchy.

Services raise these types; blueprints register handlers against them once
(see ``tracker.blueprints.register_error_handlers``) and get consistent HTTP
status codes and machine-readable error codes everywhere.

Every workflow rejection happens before any state is touched, so catching
one of these means the task snapshot the caller holds is still valid.

Usage:
    from tracker.core.exceptions import NotFoundError, InvalidTransition

    raise NotFoundError(resource="Task", resource_id="abc")
    raise InvalidTransition("Requested", "Approved")
"""


class TrackerError(Exception):
    """Base class: carries a machine code and the HTTP status it maps to."""

    code = "ERR_INTERNAL"
    status = 500

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class NotFoundError(TrackerError):
    """Raised when a task, user or weekly plan does not exist.

    Also used when a client asks for a task it does not own: a 403 would
    confirm the task exists, a 404 does not.

    Args:
        resource: Human-readable entity name (e.g. "Task", "User").
        resource_id: The id that was looked up.
    """

    code = "ERR_NOT_FOUND"
    status = 404

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(TrackerError):
    """Raised when input is well-formed but violates a business rule.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown. Keys are field names.
    """

    code = "ERR_VALIDATION_INVALID"
    status = 422


class ConflictError(TrackerError):
    """Raised when a write would clobber a newer version or duplicate a unique value.

    Maps to HTTP 409.

    Args:
        resource: Model name.
        field: The field that conflicts ("version", "email", ...).
        value: The conflicting value.
    """

    code = "ERR_CONFLICT_STATE"
    status = 409

    def __init__(self, resource: str, field: str, value=None, message: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        if message is None:
            if field == "version":
                message = f"{resource} was modified by someone else (expected version {value})"
            else:
                message = f"{resource} with {field}={value!r} already exists"
        super().__init__(message, details={"field": field})


class AccessDenied(TrackerError):
    """Raised when the acting user's role or ownership does not allow the action."""

    code = "ERR_FORBIDDEN"
    status = 403


class AuthenticationError(TrackerError):
    """Raised for missing/invalid credentials or tokens."""

    code = "ERR_AUTH_INVALID"
    status = 401


class AccountNotApproved(TrackerError):
    """Raised on login when the account is pending or was rejected.

    Args:
        account_status: "pending" or "rejected".
    """

    code = "ERR_AUTH_NOT_APPROVED"
    status = 403

    def __init__(self, account_status: str) -> None:
        self.account_status = account_status
        if account_status == "rejected":
            message = "Account was rejected."
        else:
            message = "Account is pending approval."
        super().__init__(message, details={"account_status": account_status})


class TaskImportError(TrackerError):
    """Raised when an import payload cannot be decoded into any task."""

    code = "ERR_IMPORT_INVALID"
    status = 400


class PersistenceError(TrackerError):
    """Raised when the store rejected a write; the session has been rolled back."""

    code = "ERR_DATABASE"
    status = 503


# ── Workflow rejections ──────────────────────────────────────────────────────


class WorkflowError(TrackerError):
    """Base for every rejection raised by the workflow engine (HTTP 422)."""

    code = "ERR_WORKFLOW"
    status = 422


class InvalidTransition(WorkflowError):
    """The requested status is not reachable from the current one."""

    code = "ERR_INVALID_TRANSITION"

    def __init__(self, current: str, requested: str, reason: str | None = None) -> None:
        self.current_status = current
        self.requested_status = requested
        msg = f"Cannot move task from '{current}' to '{requested}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg, details={"from": current, "to": requested})


class RollbackReasonRequired(WorkflowError):
    code = "ERR_ROLLBACK_REASON_REQUIRED"

    def __init__(self) -> None:
        super().__init__("Rollback reason is required", details={"note": "required"})


class StatusDateRequired(WorkflowError):
    code = "ERR_STATUS_DATE_REQUIRED"

    def __init__(self, status: str, field: str = "status_date") -> None:
        self.target_status = status
        super().__init__(f"{status} date is required", details={field: "required"})


class EstimateRequired(WorkflowError):
    code = "ERR_ESTIMATE_REQUIRED"

    def __init__(self, status: str) -> None:
        self.target_status = status
        super().__init__(
            f"Estimated hours must be greater than zero for {status}",
            details={"estimated_hours": "required"},
        )


class DeliveryDateRequired(WorkflowError):
    """Entering Confirmed needs a delivery date; the caller collects it and retries."""

    code = "ERR_DELIVERY_DATE_REQUIRED"

    def __init__(self) -> None:
        super().__init__(
            "Delivery date is required to confirm a request",
            details={"delivery_date": "required"},
        )


class InvalidHours(WorkflowError):
    code = "ERR_INVALID_HOURS"

    def __init__(self, field: str, value=None) -> None:
        self.field = field
        self.value = value
        super().__init__(f"{field} must be a number >= 0", details={field: "must be >= 0"})
