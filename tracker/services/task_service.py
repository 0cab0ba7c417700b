"""
Task Service — application layer between the blueprints and the engines.

Every mutating call follows the same shape:
    1. load the task + meta snapshots (and repair meta drift)
    2. hide tasks the actor may not see (404, not 403)
    3. run the pure engine (task_lifecycle / task_access)
    4. persist task + meta in one unit of work, with the version check

The version the client last read may be passed as ``version`` in the
request body; without it the freshly loaded version is used.

Usage:
    from tracker.services import task_service

    view = task_service.transition(user, task_id, {"status": "Confirmed", ...})
"""

import logging

from tracker.core.exceptions import NotFoundError, ValidationError
from tracker.core.types import AppUser, ProjectTask, TaskAccessMeta
from tracker.services import task_io, task_lifecycle
from tracker.services.task_access import (
    decide_task_approval,
    ensure_can_delete,
    ensure_can_view,
    ensure_manager,
    ensure_task_meta_sync,
    get_visible_tasks,
    meta_for_new_task,
)
from tracker.services.task_hours import hour_summary, hours_view
from tracker.services.task_query import (
    TaskFilters,
    filter_tasks,
    paginate,
    sort_tasks,
    status_counts,
)
from tracker.services.task_status import allowed_targets
from tracker.services.task_store import AccessMetaStore, TaskStore
from tracker.utils.helpers import parse_bool, unit_of_work

logger = logging.getLogger(__name__)

_tasks = TaskStore()
_meta = AccessMetaStore()


# ═══════════════════════════════════════════════════════════════
# Views
# ═══════════════════════════════════════════════════════════════
def task_view(task: ProjectTask, meta: TaskAccessMeta | None) -> dict:
    """API payload: task fields, derived hours, access meta, legal targets."""
    data = task.to_dict()
    data.update(hours_view(task))
    data["access"] = meta.to_dict() if meta else None
    data["allowed_transitions"] = [s.value for s in allowed_targets(task.status)]
    return data


# ═══════════════════════════════════════════════════════════════
# Loading
# ═══════════════════════════════════════════════════════════════
def sync_meta(user: AppUser | None) -> tuple[list[ProjectTask], dict[str, TaskAccessMeta]]:
    """Load tasks + meta and persist any reconciliation the sync produced."""
    tasks = _tasks.read()
    changed, meta_by_id = ensure_task_meta_sync(tasks, user, _meta.read())
    if changed:
        with unit_of_work("sync task meta"):
            _meta.write(meta_by_id)
    return tasks, meta_by_id


def _load(actor: AppUser, task_id: str) -> tuple[ProjectTask, TaskAccessMeta]:
    task = _tasks.get(task_id)
    if task is None:
        raise NotFoundError("Task", task_id)
    meta = _meta.get(task_id)
    if meta is None:
        _, meta_by_id = sync_meta(actor)
        meta = meta_by_id[task_id]
    ensure_can_view(task_id, meta, actor)
    return task, meta


def _expected_version(task: ProjectTask, data: dict) -> int:
    raw = data.get("version")
    if raw is None:
        return task.version
    if isinstance(raw, bool):
        raise ValidationError("version must be an integer", details={"version": "invalid"})
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise ValidationError("version must be an integer", details={"version": "invalid"})


def _persist(action: str, task: ProjectTask, meta: TaskAccessMeta, expected_version: int) -> dict:
    with unit_of_work(action):
        saved = _tasks.save(task, expected_version)
        _meta.put(meta)
    return task_view(saved, meta)


# ═══════════════════════════════════════════════════════════════
# Queries
# ═══════════════════════════════════════════════════════════════
def list_tasks(actor: AppUser, args) -> dict:
    tasks, meta_by_id = sync_meta(actor)
    visible = get_visible_tasks(tasks, meta_by_id, actor)
    rows = sort_tasks(filter_tasks(visible, TaskFilters.from_args(args)))
    page, total = paginate(rows, args.get("limit"), args.get("offset"))
    return {
        "items": [task_view(t, meta_by_id.get(t.id)) for t in page],
        "total": total,
        "status_counts": status_counts(visible),
    }


def get_task(actor: AppUser, task_id: str) -> dict:
    task, meta = _load(actor, task_id)
    return task_view(task, meta)


def dashboard(actor: AppUser) -> dict:
    tasks, meta_by_id = sync_meta(actor)
    visible = get_visible_tasks(tasks, meta_by_id, actor)
    return {
        "summary": hour_summary(visible),
        "status_counts": status_counts(visible),
        "pending_approval": sum(
            1 for t in visible if meta_by_id[t.id].approval_status.value == "pending"
        ),
    }


# ═══════════════════════════════════════════════════════════════
# Mutations
# ═══════════════════════════════════════════════════════════════
def create(actor: AppUser, data: dict) -> dict:
    task = task_lifecycle.create_task(data)
    meta = meta_for_new_task(task.id, actor)
    with unit_of_work("create task"):
        task = _tasks.add(task)
        _meta.put(meta)
    logger.info("Task created: %s '%s'", task.id, task.title,
                extra={"task_id": task.id, "user_id": actor.id})
    return task_view(task, meta)


def transition(actor: AppUser, task_id: str, data: dict) -> dict:
    task, meta = _load(actor, task_id)
    expected = _expected_version(task, data)
    result = task_lifecycle.request_transition(
        task, meta, actor,
        data.get("status"),
        note=data.get("note"),
        status_date=data.get("status_date"),
        estimated_hours=data.get("estimated_hours"),
        delivery_date=data.get("delivery_date"),
    )
    return _persist("transition task", result.task, result.meta, expected)


def validate(actor: AppUser, task_id: str, data: dict) -> dict:
    task, meta = _load(actor, task_id)
    return task_lifecycle.validate_transition(
        task, meta, actor,
        data.get("status"),
        note=data.get("note"),
        status_date=data.get("status_date"),
        estimated_hours=data.get("estimated_hours"),
        delivery_date=data.get("delivery_date"),
    )


def edit(actor: AppUser, task_id: str, data: dict) -> dict:
    task, meta = _load(actor, task_id)
    expected = _expected_version(task, data)
    payload = {k: v for k, v in data.items() if k != "version"}
    result = task_lifecycle.edit_task(task, meta, actor, payload)
    return _persist("edit task", result.task, result.meta, expected)


def update_hours(actor: AppUser, task_id: str, data: dict) -> dict:
    task, meta = _load(actor, task_id)
    expected = _expected_version(task, data)
    result = task_lifecycle.update_hours(
        task, meta, actor,
        estimated_hours=data.get("estimated_hours"),
        logged_hours=data.get("logged_hours"),
        hourly_rate=data.get("hourly_rate"),
        reason=data.get("reason"),
    )
    return _persist("update hours", result.task, result.meta, expected)


def decide(actor: AppUser, task_id: str, data: dict) -> dict:
    if "approve" not in data:
        raise ValidationError("Field 'approve' is required.", details={"approve": "required"})
    task, meta = _load(actor, task_id)
    expected = _expected_version(task, data)
    next_task, next_meta = decide_task_approval(
        task, meta, actor, parse_bool(data.get("approve")), data.get("note"),
    )
    logger.info("Task %s %s by %s", task_id, next_meta.approval_status.value, actor.email,
                extra={"task_id": task_id, "user_id": actor.id})
    if next_task is task:
        with unit_of_work("approve task"):
            _meta.put(next_meta)
        return task_view(task, next_meta)
    return _persist("reject task", next_task, next_meta, expected)


def delete(actor: AppUser, task_id: str) -> None:
    _, meta = _load(actor, task_id)
    ensure_can_delete(meta, actor)
    with unit_of_work("delete task"):
        _tasks.delete(task_id)
    logger.info("Task deleted: %s", task_id, extra={"task_id": task_id, "user_id": actor.id})


# ═══════════════════════════════════════════════════════════════
# Import / export
# ═══════════════════════════════════════════════════════════════
def export(actor: AppUser) -> str:
    tasks, meta_by_id = sync_meta(actor)
    return task_io.export_tasks(sort_tasks(get_visible_tasks(tasks, meta_by_id, actor)))


def import_tasks(actor: AppUser, raw, replace_all: bool = False) -> dict:
    """Import a JSON task array.

    Merge mode (default) upserts imported tasks by id and keeps the rest.
    A task that already exists keeps its ledgers, and an estimate change
    is recorded as an hour revision. ``replace_all`` makes the import the
    whole collection.
    """
    ensure_manager(actor, "import tasks")
    imported = task_io.import_tasks(raw)
    current = _tasks.read()

    if replace_all:
        with unit_of_work("import tasks"):
            _tasks.write(imported)
    else:
        by_id = {t.id: t for t in current}
        for task in imported:
            existing = by_id.get(task.id)
            by_id[task.id] = task if existing is None else task_lifecycle.merge_imported(existing, task)
        with unit_of_work("import tasks"):
            _tasks.write_delta(current, list(by_id.values()))

    tasks, _ = sync_meta(actor)
    logger.info("Imported %d task(s) (%s)", len(imported), "replace" if replace_all else "merge",
                extra={"user_id": actor.id})
    return {"imported": len(imported), "total": len(tasks)}
