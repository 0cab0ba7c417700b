"""
Task Lifecycle Service — the workflow engine.

Validates and applies every change to a task:
  - create_task          new request, seeded history
  - request_transition   single status move (with two-step confirm)
  - edit_task            bulk edit from the task-details editor
  - update_hours         estimate/logged/rate maintenance
  - validate_transition  non-raising dry run for status pickers
  - merge_imported       imported record over a stored one, ledgers kept

All functions are pure: they take frozen snapshots and return new ones.
Validation fully precedes construction of the result, so a raised
``WorkflowError`` never leaves anything half-applied. Persistence and the
version check belong to the caller (``tracker.services.task_service``).

Transition checks run in this order:
  1. actor may edit the task (manager or owner); only managers set hours
  2. legality (same / next / rollback to Client Review)  → InvalidTransition
  3. rollback needs a note                               → RollbackReasonRequired
  4. estimate override >= 0                              → InvalidHours
  5. advanced stages need estimate > 0                   → EstimateRequired
  6. Confirmed needs a delivery date                     → DeliveryDateRequired
  7. a real status change needs a date                   → StatusDateRequired

Usage:
    from tracker.services.task_lifecycle import request_transition

    result = request_transition(
        task, meta, actor, "Confirmed",
        estimated_hours=8, delivery_date="2025-01-10",
    )
    result.task.status   # TaskStatus.CONFIRMED
    result.meta.approval_status
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace
from datetime import date, datetime

from tracker.core.exceptions import (
    AccessDenied,
    DeliveryDateRequired,
    EstimateRequired,
    InvalidHours,
    InvalidTransition,
    RollbackReasonRequired,
    StatusDateRequired,
    ValidationError,
    WorkflowError,
)
from tracker.core.types import (
    MILESTONE_FIELDS,
    AppUser,
    HourRevision,
    ProjectTask,
    TaskAccessMeta,
    TaskHistoryEntry,
    TaskStatus,
    new_id,
    utcnow,
)
from tracker.services.identity import is_manager
from tracker.services.task_access import ensure_can_edit, ensure_manager, meta_after_edit
from tracker.services.task_status import (
    can_transition,
    is_rollback,
    requires_estimate,
    status_index,
)
from tracker.utils.helpers import parse_date_input

logger = logging.getLogger(__name__)

# Dates wiped by a rollback to Client Review.
ROLLBACK_CLEARED_FIELDS = (
    "delivery_date",
    "confirmed_date",
    "approved_date",
    "start_date",
    "completed_date",
    "handover_date",
)

DESCRIPTIVE_FIELDS = ("title", "client_name", "requested_date", "change_points")
PROTECTED_FIELDS = (
    "status",
    "estimated_hours",
    "logged_hours",
    "hourly_rate",
    "delivery_date",
    *MILESTONE_FIELDS.values(),
)

STATUS_UPDATE_REASON = "Status update"
EDIT_REASON = "Task edited"
EDIT_NOTE = "Request details updated"


@dataclass(frozen=True)
class WorkflowResult:
    """Next task snapshot plus the access meta the change produced."""
    task: ProjectTask
    meta: TaskAccessMeta


# ═════════════════════════════════════════════════════════════════════════════
# Parsing helpers
# ═════════════════════════════════════════════════════════════════════════════

def _fmt_hours(value: float) -> str:
    return f"{value:g}"


def _parse_hours(value, field: str) -> float | None:
    """None/"" → None; anything negative, non-numeric or non-finite → InvalidHours."""
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise InvalidHours(field, value)
    try:
        hours = float(value)
    except (TypeError, ValueError):
        raise InvalidHours(field, value)
    if not math.isfinite(hours) or hours < 0:
        raise InvalidHours(field, value)
    return hours


def _parse_date(value, field: str) -> date | None:
    try:
        return parse_date_input(value)
    except ValueError as e:
        raise ValidationError(str(e), details={field: "invalid"})


def _parse_status(task: ProjectTask, value) -> TaskStatus:
    status = TaskStatus.parse(value)
    if status is None:
        raise InvalidTransition(task.status.value, str(value), "unknown status")
    return status


def _clean_points(value) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        value = value.splitlines()
    return tuple(p.strip() for p in value if isinstance(p, str) and p.strip())


def _history_note(note: str | None, status_date: date | None) -> str | None:
    parts = [p for p in (note, f"Status date: {status_date.isoformat()}" if status_date else None) if p]
    return " | ".join(parts) or None


def _append_history(task: ProjectTask, status: TaskStatus, note: str | None, now: datetime):
    entry = TaskHistoryEntry(id=new_id(), status=status, changed_at=now, note=note)
    return task.history + (entry,)


def _revisions_after(
    task: ProjectTask, next_estimate: float, reason: str | None, now: datetime,
) -> tuple[HourRevision, ...]:
    """Append one revision iff the estimate value changes."""
    if next_estimate == task.estimated_hours:
        return task.hour_revisions
    revision = HourRevision(
        id=new_id(),
        previous_estimated_hours=task.estimated_hours,
        next_estimated_hours=next_estimate,
        changed_at=now,
        reason=reason,
    )
    return task.hour_revisions + (revision,)


def _ensure_estimate(target: TaskStatus, estimate: float) -> None:
    if requires_estimate(target) and not (math.isfinite(estimate) and estimate > 0):
        raise EstimateRequired(target.value)


# ═════════════════════════════════════════════════════════════════════════════
# Milestones
# ═════════════════════════════════════════════════════════════════════════════

def _apply_milestones(
    dates: dict[str, date | None],
    target: TaskStatus,
    *,
    rollback: bool,
    effective_date: date | None,
    overwrite: bool = False,
) -> dict[str, date | None]:
    """Single place where milestone dates are set and cleared.

    ``dates`` maps ``delivery_date`` and every ``MILESTONE_FIELDS`` value.
    Rollback clears Confirmed-onward dates and stamps Client Review.
    Otherwise dates of stages beyond ``target`` are cleared and the
    target's own date is stamped (only if unset, unless ``overwrite``).
    """
    result = dict(dates)
    if rollback:
        for name in ROLLBACK_CLEARED_FIELDS:
            result[name] = None
        result[MILESTONE_FIELDS[TaskStatus.CLIENT_REVIEW]] = effective_date
        return result

    target_idx = status_index(target)
    for status, name in MILESTONE_FIELDS.items():
        if status_index(status) > target_idx:
            result[name] = None

    name = MILESTONE_FIELDS.get(target)
    if name and effective_date is not None and (overwrite or result.get(name) is None):
        result[name] = effective_date
    return result


def _milestone_dates(task: ProjectTask) -> dict[str, date | None]:
    dates = {name: getattr(task, name) for name in MILESTONE_FIELDS.values()}
    dates["delivery_date"] = task.delivery_date
    return dates


# ═════════════════════════════════════════════════════════════════════════════
# Create
# ═════════════════════════════════════════════════════════════════════════════

def create_task(data: dict, now: datetime | None = None) -> ProjectTask:
    """Build a new request in status Requested.

    Args:
        data: title (required), change_points, requested_date (defaults to
              today), client_name, estimated_hours, hourly_rate.

    Raises:
        ValidationError: missing title or unparseable date.
        InvalidHours: negative estimate or rate.
    """
    now = now or utcnow()
    title = str(data.get("title") or "").strip()
    if not title:
        raise ValidationError("Title is required", details={"title": "required"})

    requested = _parse_date(data.get("requested_date"), "requested_date") or now.date()
    estimate = _parse_hours(data.get("estimated_hours"), "estimated_hours") or 0.0
    rate = _parse_hours(data.get("hourly_rate"), "hourly_rate")
    client_name = str(data.get("client_name") or "").strip() or None

    if estimate > 0:
        note = f"Request captured with estimate {_fmt_hours(estimate)}h"
    else:
        note = "Request captured (estimate pending)"

    return ProjectTask(
        id=new_id(),
        title=title,
        requested_date=requested,
        status=TaskStatus.REQUESTED,
        created_at=now,
        updated_at=now,
        change_points=_clean_points(data.get("change_points")),
        client_name=client_name,
        estimated_hours=estimate,
        hourly_rate=rate,
        history=(TaskHistoryEntry(id=new_id(), status=TaskStatus.REQUESTED, changed_at=now, note=note),),
    )


# ═════════════════════════════════════════════════════════════════════════════
# Transition
# ═════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class _TransitionPlan:
    target: TaskStatus
    rollback: bool
    changing: bool
    estimate: float
    note: str
    status_date: date | None
    effective_date: date | None
    delivery_date: date | None


def _plan_transition(
    task: ProjectTask,
    meta: TaskAccessMeta,
    actor: AppUser,
    next_status,
    note: str | None,
    status_date,
    estimated_hours,
    delivery_date,
) -> _TransitionPlan:
    ensure_can_edit(meta, actor)
    if estimated_hours not in (None, "") and not is_manager(actor):
        raise AccessDenied("Only an admin or super user can change hours.")

    target = _parse_status(task, next_status)
    if not can_transition(task.status, target):
        raise InvalidTransition(task.status.value, target.value)

    rollback = is_rollback(task.status, target)
    note = (note or "").strip()
    if rollback and not note:
        raise RollbackReasonRequired()

    override = _parse_hours(estimated_hours, "estimated_hours")
    estimate = override if override is not None else task.estimated_hours
    _ensure_estimate(target, estimate)

    delivery = _parse_date(delivery_date, "delivery_date")
    if target is TaskStatus.CONFIRMED and task.delivery_date is None and delivery is None:
        raise DeliveryDateRequired()

    status_day = _parse_date(status_date, "status_date")
    changing = target is not task.status
    effective = status_day
    if target is TaskStatus.CONFIRMED and effective is None:
        effective = delivery
    if changing and effective is None:
        raise StatusDateRequired(target.value)

    return _TransitionPlan(
        target=target,
        rollback=rollback,
        changing=changing,
        estimate=0.0 if rollback else estimate,
        note=note,
        status_date=status_day,
        effective_date=effective,
        delivery_date=delivery,
    )


def request_transition(
    task: ProjectTask,
    meta: TaskAccessMeta,
    actor: AppUser,
    next_status,
    note: str | None = None,
    status_date=None,
    estimated_hours=None,
    delivery_date=None,
    now: datetime | None = None,
) -> WorkflowResult:
    """Move a task to ``next_status`` (or re-save it in place).

    Two-step confirm: moving to Confirmed without any delivery date raises
    ``DeliveryDateRequired``; the caller collects the date and retries with
    ``delivery_date``, which then also serves as the status date.

    Raises:
        AccessDenied, InvalidTransition, RollbackReasonRequired,
        InvalidHours, EstimateRequired, DeliveryDateRequired,
        StatusDateRequired, ValidationError (unparseable date).
    """
    plan = _plan_transition(
        task, meta, actor, next_status, note, status_date, estimated_hours, delivery_date,
    )
    now = now or utcnow()

    dates = _milestone_dates(task)
    if plan.delivery_date is not None and not plan.rollback:
        dates["delivery_date"] = plan.delivery_date
    if plan.changing or plan.rollback:
        dates = _apply_milestones(
            dates, plan.target, rollback=plan.rollback, effective_date=plan.effective_date,
        )

    if plan.rollback:
        revision_reason = plan.note
        history_note = f"Rollback: {plan.note}"
    else:
        revision_reason = STATUS_UPDATE_REASON
        history_note = plan.note or None
    history_date = plan.effective_date if plan.changing else plan.status_date

    next_task = replace(
        task,
        status=plan.target,
        estimated_hours=plan.estimate,
        updated_at=now,
        hour_revisions=_revisions_after(task, plan.estimate, revision_reason, now),
        history=_append_history(task, plan.target, _history_note(history_note, history_date), now),
        **dates,
    )
    logger.info(
        "Task %s: %s -> %s%s", task.id, task.status.value, plan.target.value,
        " (rollback)" if plan.rollback else "",
        extra={"task_id": task.id, "user_id": actor.id,
               "event_type": "rollback" if plan.rollback else "status_change"},
    )
    return WorkflowResult(task=next_task, meta=meta_after_edit(meta, actor, now))


def validate_transition(
    task: ProjectTask,
    meta: TaskAccessMeta,
    actor: AppUser,
    next_status,
    note: str | None = None,
    status_date=None,
    estimated_hours=None,
    delivery_date=None,
) -> dict:
    """
    Dry-run a transition without raising.

    Returns:
        {"valid": bool, "from": str, "to": str, "is_rollback": bool,
         "error": code|None, "reason": str|None, "requires": [field, ...]}
    """
    target = TaskStatus.parse(next_status)
    result = {
        "valid": True,
        "from": task.status.value,
        "to": target.value if target else next_status,
        "is_rollback": bool(target) and is_rollback(task.status, target),
        "error": None,
        "reason": None,
        "requires": [],
    }
    try:
        _plan_transition(
            task, meta, actor, next_status, note, status_date, estimated_hours, delivery_date,
        )
    except (WorkflowError, AccessDenied, ValidationError) as e:
        result.update(
            valid=False,
            error=e.code,
            reason=str(e),
            requires=[k for k, v in e.details.items() if v == "required"],
        )
    return result


# ═════════════════════════════════════════════════════════════════════════════
# Bulk edit
# ═════════════════════════════════════════════════════════════════════════════

def _descriptive_changes(task: ProjectTask, payload: dict) -> dict:
    changes = {}
    if "title" in payload:
        title = str(payload.get("title") or "").strip()
        if not title:
            raise ValidationError("Title is required", details={"title": "required"})
        changes["title"] = title
    if "client_name" in payload:
        changes["client_name"] = str(payload.get("client_name") or "").strip() or None
    if "requested_date" in payload:
        requested = _parse_date(payload.get("requested_date"), "requested_date")
        if requested is None:
            raise ValidationError("Requested date is required", details={"requested_date": "required"})
        changes["requested_date"] = requested
    if "change_points" in payload:
        changes["change_points"] = _clean_points(payload.get("change_points"))
    return changes


def _protected_value(task: ProjectTask, name: str, raw):
    if name == "status":
        return TaskStatus.parse(raw) or raw
    if name in ("estimated_hours", "logged_hours", "hourly_rate"):
        return _parse_hours(raw, name)
    return _parse_date(raw, name)


def _touches_protected(task: ProjectTask, payload: dict) -> list[str]:
    """Protected fields in ``payload`` whose value differs from the task."""
    touched = []
    for name in PROTECTED_FIELDS:
        if name not in payload:
            continue
        current = getattr(task, name)
        value = _protected_value(task, name, payload.get(name))
        if name == "estimated_hours" and value is None:
            value = 0.0
        if value != current:
            touched.append(name)
    return touched


def edit_task(
    task: ProjectTask,
    meta: TaskAccessMeta,
    actor: AppUser,
    payload: dict,
    now: datetime | None = None,
) -> WorkflowResult:
    """Apply a bulk edit from the task-details editor.

    Clients may change descriptive fields of their own tasks only
    (title, client_name, requested_date, change_points); sending a
    different status, hours or date raises ``AccessDenied``. Their edit
    always resets approval to pending.

    Managers may also change status, hours and milestone dates. Status
    changes follow the transition rules; each milestone date comes from the
    payload field of that stage, and the target stage's date is required
    when the status changes (Confirmed falls back to the delivery date).
    """
    ensure_can_edit(meta, actor)
    now = now or utcnow()
    changes = _descriptive_changes(task, payload)
    note = str(payload.get("note") or "").strip()

    if not is_manager(actor):
        touched = _touches_protected(task, payload)
        if touched:
            raise AccessDenied(
                "Clients can only edit request details.",
                details={name: "forbidden" for name in touched},
            )
        next_task = replace(
            task,
            **changes,
            updated_at=now,
            history=_append_history(task, task.status, note or EDIT_NOTE, now),
        )
        return WorkflowResult(task=next_task, meta=meta_after_edit(meta, actor, now))

    target = _parse_status(task, payload.get("status", task.status))
    if not can_transition(task.status, target):
        raise InvalidTransition(task.status.value, target.value)
    rollback = is_rollback(task.status, target)
    if rollback and not note:
        raise RollbackReasonRequired()
    changing = target is not task.status

    estimate = _parse_hours(payload.get("estimated_hours"), "estimated_hours")
    estimate = task.estimated_hours if estimate is None else estimate
    logged = _parse_hours(payload.get("logged_hours"), "logged_hours")
    logged = task.logged_hours if logged is None else logged
    rate = task.hourly_rate
    if "hourly_rate" in payload:
        rate = _parse_hours(payload.get("hourly_rate"), "hourly_rate")
    if rollback:
        estimate = 0.0
    _ensure_estimate(target, estimate)

    dates = _milestone_dates(task)
    for name in dates:
        if name in payload:
            dates[name] = _parse_date(payload.get(name), name)

    if (not rollback and status_index(target) >= status_index(TaskStatus.CONFIRMED)
            and dates["delivery_date"] is None):
        raise DeliveryDateRequired()

    milestone_name = MILESTONE_FIELDS.get(target)
    effective = dates.get(milestone_name) if milestone_name else None
    if target is TaskStatus.CONFIRMED and effective is None:
        effective = dates["delivery_date"]
    if changing and milestone_name and effective is None:
        raise StatusDateRequired(target.value, field=milestone_name)

    dates = _apply_milestones(
        dates, target, rollback=rollback, effective_date=effective, overwrite=True,
    )

    if rollback:
        history_note = f"Rollback: {note}"
        revision_reason = note
    else:
        history_note = note or EDIT_NOTE
        revision_reason = note or EDIT_REASON

    next_task = replace(
        task,
        **changes,
        **dates,
        status=target,
        estimated_hours=estimate,
        logged_hours=logged,
        hourly_rate=rate,
        updated_at=now,
        hour_revisions=_revisions_after(task, estimate, revision_reason, now),
        history=_append_history(
            task, target, _history_note(history_note, effective if changing else None), now,
        ),
    )
    if changing:
        logger.info(
            "Task %s edited: %s -> %s", task.id, task.status.value, target.value,
            extra={"task_id": task.id, "user_id": actor.id,
                   "event_type": "rollback" if rollback else "status_change"},
        )
    return WorkflowResult(task=next_task, meta=meta_after_edit(meta, actor, now))


# ═════════════════════════════════════════════════════════════════════════════
# Hours
# ═════════════════════════════════════════════════════════════════════════════

def update_hours(
    task: ProjectTask,
    meta: TaskAccessMeta,
    actor: AppUser,
    estimated_hours=None,
    logged_hours=None,
    hourly_rate=None,
    reason: str | None = None,
    now: datetime | None = None,
) -> WorkflowResult:
    """Change estimate/logged hours (and optionally the hourly rate).

    Omitted values keep their current value. Approval state is untouched.
    Stages that require an estimate cannot have it dropped to zero.
    """
    ensure_manager(actor, "update hours")
    estimate = _parse_hours(estimated_hours, "estimated_hours")
    logged = _parse_hours(logged_hours, "logged_hours")
    rate = _parse_hours(hourly_rate, "hourly_rate")
    estimate = task.estimated_hours if estimate is None else estimate
    logged = task.logged_hours if logged is None else logged
    rate = task.hourly_rate if rate is None else rate
    _ensure_estimate(task.status, estimate)

    now = now or utcnow()
    reason = (reason or "").strip() or None
    summary = f"Hours updated: estimate {_fmt_hours(estimate)}h, logged {_fmt_hours(logged)}h"
    if reason:
        summary += f" ({reason})"

    next_task = replace(
        task,
        estimated_hours=estimate,
        logged_hours=logged,
        hourly_rate=rate,
        updated_at=now,
        hour_revisions=_revisions_after(task, estimate, reason or "Hours updated", now),
        history=_append_history(task, task.status, summary, now),
    )
    return WorkflowResult(task=next_task, meta=meta)


def merge_imported(current: ProjectTask, incoming: ProjectTask, now: datetime | None = None) -> ProjectTask:
    """Lay an imported record over the stored task with the same id.

    Imported fields win. History and hour revisions the import does not
    carry are kept, and an estimate change adds a revision like any other
    edit. The stored version is kept for the optimistic save.
    """
    now = now or utcnow()
    incoming_events = {e.id for e in incoming.history}
    history = tuple(e for e in current.history if e.id not in incoming_events) + incoming.history
    incoming_revisions = {r.id for r in incoming.hour_revisions}
    revisions = tuple(r for r in current.hour_revisions if r.id not in incoming_revisions)
    revisions += incoming.hour_revisions

    if not (revisions and revisions[-1].next_estimated_hours == incoming.estimated_hours):
        merged = replace(current, hour_revisions=revisions)
        revisions = _revisions_after(merged, incoming.estimated_hours, "Imported", now)
    return replace(incoming, history=history, hour_revisions=revisions, version=current.version)
