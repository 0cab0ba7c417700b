"""
Task list projections — filtering, ordering, per-status counts, paging.

Everything here is a pure function of the task list, recomputed on every
read.

Usage:
    from tracker.services.task_query import TaskFilters, filter_tasks

    filters = TaskFilters.from_args(request.args)
    rows = sort_tasks(filter_tasks(tasks, filters))
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date

from tracker.core.exceptions import ValidationError
from tracker.core.types import STATUS_ORDER, ProjectTask, TaskStatus
from tracker.utils.helpers import parse_date_input

ALL_STATUSES = "All"


@dataclass(frozen=True)
class TaskFilters:
    status: TaskStatus | None = None
    from_date: date | None = None
    to_date: date | None = None
    query: str = ""

    @classmethod
    def from_args(cls, args) -> "TaskFilters":
        """Build filters from a query-string mapping.

        Raises:
            ValidationError: unknown status or unparseable date.
        """
        raw_status = (args.get("status") or ALL_STATUSES).strip()
        status = None
        if raw_status != ALL_STATUSES:
            status = TaskStatus.parse(raw_status)
            if status is None:
                raise ValidationError(
                    f"Unknown status '{raw_status}'",
                    details={"status": [s.value for s in STATUS_ORDER]},
                )
        try:
            from_date = parse_date_input(args.get("from"))
            to_date = parse_date_input(args.get("to"))
        except ValueError as e:
            raise ValidationError(str(e))
        return cls(
            status=status,
            from_date=from_date,
            to_date=to_date,
            query=(args.get("q") or "").strip().lower(),
        )


def _matches_query(task: ProjectTask, query: str) -> bool:
    if not query:
        return True
    if query in task.title.lower():
        return True
    if any(query in point.lower() for point in task.change_points):
        return True
    return query in (task.client_name or "").lower()


def filter_tasks(tasks: list[ProjectTask], filters: TaskFilters) -> list[ProjectTask]:
    result = []
    for task in tasks:
        if filters.status is not None and task.status is not filters.status:
            continue
        if filters.from_date and task.requested_date < filters.from_date:
            continue
        if filters.to_date and task.requested_date > filters.to_date:
            continue
        if not _matches_query(task, filters.query):
            continue
        result.append(task)
    return result


def sort_tasks(tasks: list[ProjectTask]) -> list[ProjectTask]:
    """Newest requested first, then most recently updated."""
    return sorted(tasks, key=lambda t: (t.requested_date, t.updated_at), reverse=True)


def status_counts(tasks: list[ProjectTask]) -> dict[str, int]:
    counts = {status.value: 0 for status in STATUS_ORDER}
    for task in tasks:
        counts[task.status.value] += 1
    return counts


def paginate(items: list, limit=None, offset=None, default_limit=50, max_limit=500) -> tuple[list, int]:
    """Slice a list the way ``paginate_query`` slices a query.

    Returns:
        (page_items, total_count)
    """
    try:
        limit = min(int(limit if limit is not None else default_limit), max_limit)
    except (ValueError, TypeError):
        limit = default_limit
    try:
        offset = max(int(offset or 0), 0)
    except (ValueError, TypeError):
        offset = 0
    limit = max(limit, 0)
    return items[offset:offset + limit], len(items)
