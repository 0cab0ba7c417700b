"""
Task import/export and ingress normalization.

Canonical on-disk schema (v2) is the snake_case ``ProjectTask.to_dict()``
shape. Legacy v1 payloads (camelCase keys, a free-text ``description``
instead of change points, missing history) are migrated on ingress by
``normalize_task``; the rest of the code only ever sees canonical
``ProjectTask`` snapshots.

An element is discarded (normalize_task returns None) when it is not an
object, has no title, carries an unknown status, or carries hours that are
not non-negative numbers. Confirmed or later records must also carry a
positive estimate and a delivery date. Missing optional values get defaults.

Usage:
    from tracker.services.task_io import export_tasks, import_tasks

    raw = export_tasks(tasks)
    tasks = import_tasks(raw)   # TaskImportError on a bad payload
"""

from __future__ import annotations

import json
import logging
import math
from datetime import datetime, timezone

from tracker.core.exceptions import TaskImportError
from tracker.core.types import (
    HourRevision,
    ProjectTask,
    TaskHistoryEntry,
    TaskStatus,
    new_id,
    utcnow,
)
from tracker.services.task_status import is_advanced
from tracker.utils.helpers import parse_date, parse_datetime

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 2

# canonical key → legacy v1 key
_LEGACY_KEYS = {
    "change_points": "changePoints",
    "requested_date": "requestedDate",
    "client_name": "clientName",
    "delivery_date": "deliveryDate",
    "client_review_date": "clientReviewDate",
    "confirmed_date": "confirmedDate",
    "approved_date": "approvedDate",
    "start_date": "startDate",
    "completed_date": "completedDate",
    "handover_date": "handoverDate",
    "estimated_hours": "estimatedHours",
    "logged_hours": "loggedHours",
    "hourly_rate": "hourlyRate",
    "created_at": "createdAt",
    "updated_at": "updatedAt",
    "hour_revisions": "hourRevisions",
    "changed_at": "changedAt",
    "previous_estimated_hours": "previousEstimatedHours",
    "next_estimated_hours": "nextEstimatedHours",
}

_MISSING = object()


class _Invalid(Exception):
    """Element-level rejection inside normalize_task."""


def detect_schema(raw: dict) -> int:
    return 1 if any(legacy in raw for legacy in _LEGACY_KEYS.values()) else SCHEMA_VERSION


def _pick(raw: dict, key: str, default=None):
    value = raw.get(key, _MISSING)
    if value is _MISSING and key in _LEGACY_KEYS:
        value = raw.get(_LEGACY_KEYS[key], _MISSING)
    return default if value is _MISSING or value is None else value


def _text(raw: dict, key: str) -> str | None:
    value = _pick(raw, key)
    if not isinstance(value, str):
        return None
    return value.strip() or None


def _hours(raw: dict, key: str, default: float | None = 0.0) -> float | None:
    value = _pick(raw, key, _MISSING)
    if value is _MISSING:
        return default
    if isinstance(value, bool):
        raise _Invalid(key)
    try:
        hours = float(value)
    except (TypeError, ValueError):
        raise _Invalid(key)
    if not math.isfinite(hours) or hours < 0:
        raise _Invalid(key)
    return hours


def _timestamp(raw: dict, key: str, fallback: datetime) -> datetime:
    value = parse_datetime(_pick(raw, key))
    if value is None:
        return fallback
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def _status(value, default: TaskStatus | None = TaskStatus.REQUESTED) -> TaskStatus:
    if value is None:
        if default is None:
            raise _Invalid("status")
        return default
    status = TaskStatus.parse(value)
    if status is None:
        raise _Invalid("status")
    return status


def _history(raw: dict, task_id: str, now: datetime) -> tuple[TaskHistoryEntry, ...]:
    items = _pick(raw, "history", [])
    if not isinstance(items, list):
        return ()
    entries = []
    for idx, item in enumerate(i for i in items if isinstance(i, dict)):
        entries.append(TaskHistoryEntry(
            id=str(item.get("id") or f"{task_id}-h-{idx}"),
            status=TaskStatus.parse(item.get("status")) or TaskStatus.REQUESTED,
            changed_at=_timestamp(item, "changed_at", now),
            note=_text(item, "note"),
        ))
    return tuple(entries)


def _revisions(raw: dict, task_id: str, now: datetime) -> tuple[HourRevision, ...]:
    items = _pick(raw, "hour_revisions", [])
    if not isinstance(items, list):
        return ()
    revisions = []
    for idx, item in enumerate(i for i in items if isinstance(i, dict)):
        revisions.append(HourRevision(
            id=str(item.get("id") or f"{task_id}-r-{idx}"),
            previous_estimated_hours=_hours(item, "previous_estimated_hours"),
            next_estimated_hours=_hours(item, "next_estimated_hours"),
            changed_at=_timestamp(item, "changed_at", now),
            reason=_text(item, "reason"),
        ))
    return tuple(revisions)


def _change_points(raw: dict) -> tuple[str, ...]:
    points = _pick(raw, "change_points", [])
    if isinstance(points, list):
        cleaned = tuple(p.strip() for p in points if isinstance(p, str) and p.strip())
    else:
        cleaned = ()
    if cleaned:
        return cleaned
    description = raw.get("description")
    if isinstance(description, str) and description.strip():
        return (description.strip(),)
    return ()


def normalize_task(raw, now: datetime | None = None) -> ProjectTask | None:
    """Migrate one stored/imported record to a canonical ``ProjectTask``.

    Returns None when the element cannot be a valid task.
    """
    if not isinstance(raw, dict):
        return None
    title = _text(raw, "title")
    if not title:
        return None

    now = now or utcnow()
    task_id = str(raw.get("id") or new_id())
    try:
        status = _status(raw.get("status"))
        estimated = _hours(raw, "estimated_hours")
        logged = _hours(raw, "logged_hours")
        rate = _hours(raw, "hourly_rate", default=None)
        revisions = _revisions(raw, task_id, now)
    except _Invalid as e:
        logger.debug("Discarding task %s: invalid %s", task_id, e)
        return None

    delivery_date = parse_date(_pick(raw, "delivery_date"))
    if is_advanced(status) and (estimated <= 0 or delivery_date is None):
        logger.debug("Discarding task %s: %s without estimate or delivery date", task_id, status.value)
        return None

    created_at = _timestamp(raw, "created_at", now)
    history = _history(raw, task_id, now)
    if not history:
        history = (TaskHistoryEntry(
            id=f"{task_id}-h-0", status=status, changed_at=created_at, note="Imported",
        ),)

    version = raw.get("version")
    if isinstance(version, bool) or not isinstance(version, int) or version < 1:
        version = 1

    return ProjectTask(
        id=task_id,
        title=title,
        requested_date=parse_date(_pick(raw, "requested_date")) or created_at.date(),
        status=status,
        created_at=created_at,
        updated_at=_timestamp(raw, "updated_at", created_at),
        change_points=_change_points(raw),
        client_name=_text(raw, "client_name"),
        delivery_date=delivery_date,
        client_review_date=parse_date(_pick(raw, "client_review_date")),
        confirmed_date=parse_date(_pick(raw, "confirmed_date")),
        approved_date=parse_date(_pick(raw, "approved_date")),
        start_date=parse_date(_pick(raw, "start_date")),
        completed_date=parse_date(_pick(raw, "completed_date")),
        handover_date=parse_date(_pick(raw, "handover_date")),
        estimated_hours=estimated,
        logged_hours=logged,
        hourly_rate=rate,
        history=history,
        hour_revisions=revisions,
        version=version,
    )


def export_tasks(tasks: list[ProjectTask]) -> str:
    """Pretty-printed JSON array in the canonical schema."""
    return json.dumps([t.to_dict() for t in tasks], indent=2, ensure_ascii=False)


def import_tasks(raw: str | bytes) -> list[ProjectTask]:
    """Decode an import payload into canonical tasks.

    Invalid elements are dropped. A non-empty array that yields no valid
    task at all is rejected.

    Raises:
        TaskImportError: malformed JSON, non-array payload, or no valid task.
    """
    try:
        parsed = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise TaskImportError(f"Invalid JSON: {e}")
    if not isinstance(parsed, list):
        raise TaskImportError("Invalid JSON format. Expected a task array.")

    now = utcnow()
    tasks = [t for t in (normalize_task(item, now) for item in parsed) if t is not None]
    if parsed and not tasks:
        raise TaskImportError("No valid tasks found in imported JSON.")

    dropped = len(parsed) - len(tasks)
    if dropped:
        logger.warning("Import dropped %d invalid task(s) of %d", dropped, len(parsed))
    legacy = sum(1 for item in parsed if isinstance(item, dict) and detect_schema(item) < SCHEMA_VERSION)
    if legacy:
        logger.info("Import migrated %d legacy task record(s)", legacy)
    return tasks
