"""
Task hour accounting — pending/total hours, cost, dashboard summary.

Closed tasks (Completed, Handover) have no pending hours; their total is
the larger of logged and estimated hours, so an under-logged delivery
still counts its full estimate.
"""

from __future__ import annotations

from tracker.core.types import ProjectTask, TaskStatus
from tracker.services.task_status import is_closed


def is_closed_task(task: ProjectTask) -> bool:
    return is_closed(task.status)


def pending_hours(task: ProjectTask) -> float:
    if is_closed_task(task):
        return 0.0
    return max(task.estimated_hours - task.logged_hours, 0.0)


def total_hours(task: ProjectTask) -> float:
    if is_closed_task(task):
        return max(task.logged_hours, task.estimated_hours)
    return task.logged_hours


def estimated_cost(task: ProjectTask) -> float | None:
    if task.hourly_rate is None:
        return None
    return round(task.estimated_hours * task.hourly_rate, 2)


def hours_view(task: ProjectTask) -> dict:
    """Derived hour figures attached to task API payloads."""
    return {
        "pending_hours": pending_hours(task),
        "total_hours": total_hours(task),
        "estimated_cost": estimated_cost(task),
        "is_closed": is_closed_task(task),
    }


def hour_summary(tasks: list[ProjectTask]) -> dict:
    """Dashboard totals over a (visible) task list."""
    return {
        "total_requests": len(tasks),
        "estimated_hours": sum(t.estimated_hours for t in tasks),
        "logged_hours": sum(t.logged_hours for t in tasks),
        "pending_hours": sum(pending_hours(t) for t in tasks),
        "total_hours": sum(total_hours(t) for t in tasks),
        "completed": sum(1 for t in tasks if t.status in (TaskStatus.COMPLETED, TaskStatus.HANDOVER)),
        "estimated_cost": round(sum(estimated_cost(t) or 0.0 for t in tasks), 2),
    }
