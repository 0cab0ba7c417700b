"""
Access/Approval Engine — visibility, ownership and the task approval gate.

Every task has exactly one ``TaskAccessMeta`` (owner + approval state).
Tasks and metas are stored separately, so ``ensure_task_meta_sync`` must
run after every load, import and login to repair drift.

Approval state machine (per task):
    pending ──decide(approve)──▶ approved
       └────decide(reject)────▶ rejected
    approved/rejected ──edit by client──▶ pending
    any ──edit by manager──▶ approved ("Workflow updated by manager/super user")

Usage:
    from tracker.services.task_access import get_visible_tasks, ensure_task_meta_sync

    changed, meta_by_id = ensure_task_meta_sync(tasks, user, meta_by_id)
    visible = get_visible_tasks(tasks, meta_by_id, user)
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime

from tracker.core.exceptions import AccessDenied, NotFoundError
from tracker.core.types import (
    ApprovalStatus,
    AppUser,
    ProjectTask,
    TaskAccessMeta,
    TaskHistoryEntry,
    new_id,
    utcnow,
)
from tracker.services.identity import approval_for_creator, is_manager, is_super_user

logger = logging.getLogger(__name__)

SYSTEM_APPROVAL_NOTE = "Workflow updated by manager/super user"
DEFAULT_APPROVE_NOTE = "Approved by super user"
DEFAULT_REJECT_NOTE = "Rejected by super user"


# ═════════════════════════════════════════════════════════════════════════════
# Visibility & guards
# ═════════════════════════════════════════════════════════════════════════════

def is_owner(meta: TaskAccessMeta | None, user: AppUser | None) -> bool:
    return meta is not None and user is not None and meta.owner_user_id == user.id


def can_view_task(meta: TaskAccessMeta | None, user: AppUser | None) -> bool:
    if user is None:
        return False
    return is_manager(user) or is_owner(meta, user)


def get_visible_tasks(
    tasks: list[ProjectTask],
    meta_by_id: dict[str, TaskAccessMeta],
    user: AppUser | None,
) -> list[ProjectTask]:
    """Managers see every task; anyone else sees the tasks they own."""
    if user is None:
        return []
    if is_manager(user):
        return list(tasks)
    return [t for t in tasks if is_owner(meta_by_id.get(t.id), user)]


def ensure_manager(user: AppUser | None, action: str = "manage tasks") -> None:
    if not is_manager(user):
        raise AccessDenied(f"Only an admin or super user can {action}.")


def ensure_super_user(user: AppUser | None, action: str) -> None:
    if not is_super_user(user):
        raise AccessDenied(f"Only a super user can {action}.")


def ensure_can_view(task_id: str, meta: TaskAccessMeta | None, user: AppUser | None) -> None:
    """Tasks the user may not see read as missing."""
    if not can_view_task(meta, user):
        raise NotFoundError("Task", task_id)


def ensure_can_edit(meta: TaskAccessMeta | None, user: AppUser | None) -> None:
    """Managers may edit any task; clients only the ones they own."""
    if not can_view_task(meta, user):
        raise AccessDenied("You can only edit your own requests.")


def ensure_can_delete(meta: TaskAccessMeta | None, user: AppUser | None) -> None:
    if not (is_manager(user) or is_owner(meta, user)):
        raise AccessDenied("You can only delete your own requests.")


# ═════════════════════════════════════════════════════════════════════════════
# Meta construction
# ═════════════════════════════════════════════════════════════════════════════

def meta_for_new_task(task_id: str, user: AppUser | None, now: datetime | None = None) -> TaskAccessMeta:
    """Owner is the creator; managers' requests start approved."""
    return TaskAccessMeta(
        task_id=task_id,
        owner_user_id=user.id if user else None,
        approval_status=approval_for_creator(user),
        updated_at=now or utcnow(),
    )


def meta_after_edit(
    meta: TaskAccessMeta,
    actor: AppUser,
    now: datetime | None = None,
) -> TaskAccessMeta:
    """Apply the approval gate after an edit or transition by ``actor``."""
    now = now or utcnow()
    if is_manager(actor):
        return replace(
            meta,
            approval_status=ApprovalStatus.APPROVED,
            decision_note=SYSTEM_APPROVAL_NOTE,
            decided_by_user_id=actor.id,
            decided_at=now,
            updated_at=now,
        )
    return replace(
        meta,
        approval_status=ApprovalStatus.PENDING,
        decision_note=None,
        decided_by_user_id=None,
        decided_at=None,
        updated_at=now,
    )


def decide_task_approval(
    task: ProjectTask,
    meta: TaskAccessMeta,
    actor: AppUser,
    approve: bool,
    note: str | None = None,
    now: datetime | None = None,
) -> tuple[ProjectTask, TaskAccessMeta]:
    """Record a super user's approve/reject decision.

    Rejecting also appends a history entry to the task; the task's status
    and dates are left as they are.

    Returns:
        (task, meta) — the task is unchanged on approval.
    """
    ensure_super_user(actor, "approve or reject requests")
    now = now or utcnow()
    note = (note or "").strip() or (DEFAULT_APPROVE_NOTE if approve else DEFAULT_REJECT_NOTE)

    next_meta = replace(
        meta,
        approval_status=ApprovalStatus.APPROVED if approve else ApprovalStatus.REJECTED,
        decision_note=note,
        decided_by_user_id=actor.id,
        decided_at=now,
        updated_at=now,
    )
    if approve:
        return task, next_meta

    entry = TaskHistoryEntry(
        id=new_id(),
        status=task.status,
        changed_at=now,
        note=f"Rejected: {note}",
    )
    next_task = replace(task, history=task.history + (entry,), updated_at=now)
    return next_task, next_meta


# ═════════════════════════════════════════════════════════════════════════════
# Reconciliation
# ═════════════════════════════════════════════════════════════════════════════

def ensure_task_meta_sync(
    tasks: list[ProjectTask],
    current_user: AppUser | None,
    meta_by_id: dict[str, TaskAccessMeta],
    now: datetime | None = None,
) -> tuple[bool, dict[str, TaskAccessMeta]]:
    """Give every task a meta and drop metas whose task is gone.

    Returns:
        (changed, next_meta_by_id). Running it again on the result yields
        ``changed=False``.
    """
    task_ids = {t.id for t in tasks}
    next_meta = {tid: m for tid, m in meta_by_id.items() if tid in task_ids}
    pruned = len(meta_by_id) - len(next_meta)

    created = 0
    for task in tasks:
        if task.id not in next_meta:
            next_meta[task.id] = meta_for_new_task(task.id, current_user, now)
            created += 1

    changed = bool(pruned or created)
    if changed:
        logger.info(
            "Task meta reconciled: %d created, %d pruned", created, pruned,
            extra={"user_id": current_user.id if current_user else None},
        )
    return changed, next_meta
