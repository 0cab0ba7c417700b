"""
Task status model — ordered stages and the legal-transition rule.

A task may:
  - stay where it is (re-save),
  - move forward exactly one stage,
  - roll back to Client Review from Confirmed or any later stage.

Every other jump is illegal. Rollback never targets any stage other than
Client Review.

Usage:
    from tracker.services.task_status import can_transition, allowed_targets

    can_transition(TaskStatus.CONFIRMED, TaskStatus.APPROVED)   # True
    allowed_targets(TaskStatus.APPROVED)
    # -> [CLIENT_REVIEW, APPROVED, WORKING_ON_IT]
"""

from __future__ import annotations

from tracker.core.types import STATUS_ORDER, TaskStatus

ROLLBACK_TARGET = TaskStatus.CLIENT_REVIEW

# Stages that require estimated_hours > 0 on entry.
ESTIMATE_REQUIRED_STATUSES = frozenset({
    TaskStatus.CONFIRMED,
    TaskStatus.APPROVED,
    TaskStatus.WORKING_ON_IT,
    TaskStatus.COMPLETED,
    TaskStatus.HANDOVER,
})

CLOSED_STATUSES = frozenset({TaskStatus.COMPLETED, TaskStatus.HANDOVER})


def status_index(status: TaskStatus) -> int:
    return STATUS_ORDER.index(status)


def next_status(status: TaskStatus) -> TaskStatus | None:
    """Immediate successor, or None for Handover."""
    idx = status_index(status)
    if idx + 1 >= len(STATUS_ORDER):
        return None
    return STATUS_ORDER[idx + 1]


def is_advanced(status: TaskStatus) -> bool:
    """Confirmed or later: the stages a rollback may start from."""
    return status_index(status) >= status_index(TaskStatus.CONFIRMED)


def is_rollback(current: TaskStatus, target: TaskStatus) -> bool:
    return target is ROLLBACK_TARGET and is_advanced(current)


def requires_estimate(status: TaskStatus) -> bool:
    return status in ESTIMATE_REQUIRED_STATUSES


def is_closed(status: TaskStatus) -> bool:
    return status in CLOSED_STATUSES


def can_transition(current: TaskStatus, target: TaskStatus) -> bool:
    if target is current:
        return True
    if target is next_status(current):
        return True
    return is_rollback(current, target)


def allowed_targets(current: TaskStatus) -> list[TaskStatus]:
    """Legal targets from ``current`` in stage order."""
    return [s for s in STATUS_ORDER if can_transition(current, s)]
