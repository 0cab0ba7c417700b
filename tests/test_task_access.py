"""
Access/approval engine tests.

Covers visibility per role, the approve/reject decision, meta
construction for new tasks and the meta reconciliation pass.
"""

from dataclasses import replace

import pytest

from tracker.core.exceptions import AccessDenied, NotFoundError
from tracker.core.types import ApprovalStatus, TaskStatus, UserRole
from tracker.services.task_access import (
    DEFAULT_APPROVE_NOTE,
    can_view_task,
    decide_task_approval,
    ensure_can_delete,
    ensure_can_view,
    ensure_task_meta_sync,
    get_visible_tasks,
    meta_for_new_task,
)


@pytest.fixture()
def people(make_user):
    return {
        "client": make_user(UserRole.CLIENT),
        "other": make_user(UserRole.CLIENT),
        "admin": make_user(UserRole.ADMIN),
        "chief": make_user(UserRole.SUPER_USER),
    }


# ═════════════════════════════════════════════════════════════════════════
# Visibility
# ═════════════════════════════════════════════════════════════════════════

class TestVisibility:
    def test_clients_see_only_their_tasks(self, make_task, make_meta, people):
        mine, theirs = make_task(), make_task()
        meta = {
            mine.id: make_meta(mine, owner=people["client"]),
            theirs.id: make_meta(theirs, owner=people["other"]),
        }
        assert get_visible_tasks([mine, theirs], meta, people["client"]) == [mine]

    @pytest.mark.parametrize("role", ["admin", "chief"])
    def test_managers_see_everything(self, make_task, make_meta, people, role):
        tasks = [make_task(), make_task()]
        meta = {t.id: make_meta(t, owner=people["client"]) for t in tasks}
        assert get_visible_tasks(tasks, meta, people[role]) == tasks

    def test_anonymous_sees_nothing(self, make_task, make_meta):
        task = make_task()
        assert get_visible_tasks([task], {task.id: make_meta(task)}, None) == []

    def test_ownerless_task_hidden_from_clients(self, make_task, make_meta, people):
        task = make_task()
        assert not can_view_task(make_meta(task), people["client"])
        assert can_view_task(make_meta(task), people["admin"])

    def test_hidden_task_reads_as_missing(self, make_task, make_meta, people):
        task = make_task()
        meta = make_meta(task, owner=people["other"])
        ensure_can_view(task.id, meta, people["other"])
        ensure_can_view(task.id, meta, people["admin"])
        with pytest.raises(NotFoundError):
            ensure_can_view(task.id, meta, people["client"])

    def test_delete_rights(self, make_task, make_meta, people):
        task = make_task()
        meta = make_meta(task, owner=people["client"])
        ensure_can_delete(meta, people["client"])
        ensure_can_delete(meta, people["admin"])
        with pytest.raises(AccessDenied):
            ensure_can_delete(meta, people["other"])


# ═════════════════════════════════════════════════════════════════════════
# New-task meta
# ═════════════════════════════════════════════════════════════════════════

class TestNewTaskMeta:
    def test_client_task_starts_pending(self, people):
        meta = meta_for_new_task("t1", people["client"])
        assert meta.owner_user_id == people["client"].id
        assert meta.approval_status is ApprovalStatus.PENDING

    @pytest.mark.parametrize("role", ["admin", "chief"])
    def test_manager_task_starts_approved(self, people, role):
        assert meta_for_new_task("t1", people[role]).approval_status is ApprovalStatus.APPROVED


# ═════════════════════════════════════════════════════════════════════════
# Approve / reject
# ═════════════════════════════════════════════════════════════════════════

class TestDecision:
    def test_approve(self, make_task, make_meta, people):
        task = make_task(TaskStatus.CLIENT_REVIEW)
        meta = make_meta(task, owner=people["client"])
        next_task, next_meta = decide_task_approval(task, meta, people["chief"], True)
        assert next_task is task
        assert next_meta.approval_status is ApprovalStatus.APPROVED
        assert next_meta.decision_note == DEFAULT_APPROVE_NOTE
        assert next_meta.decided_by_user_id == people["chief"].id

    def test_reject_appends_history_and_keeps_status(self, make_task, make_meta, people):
        task = make_task(TaskStatus.CLIENT_REVIEW)
        meta = make_meta(task, owner=people["client"])
        next_task, next_meta = decide_task_approval(task, meta, people["chief"], False, note="too vague")
        assert next_meta.approval_status is ApprovalStatus.REJECTED
        assert next_meta.decision_note == "too vague"
        assert next_task.status is TaskStatus.CLIENT_REVIEW
        assert len(next_task.history) == len(task.history) + 1
        assert next_task.history[-1].note == "Rejected: too vague"

    @pytest.mark.parametrize("role", ["client", "admin"])
    def test_only_super_user_decides(self, make_task, make_meta, people, role):
        task = make_task()
        with pytest.raises(AccessDenied):
            decide_task_approval(task, make_meta(task), people[role], True)


# ═════════════════════════════════════════════════════════════════════════
# Reconciliation
# ═════════════════════════════════════════════════════════════════════════

class TestMetaSync:
    def test_creates_missing_and_prunes_orphans(self, make_task, make_meta, people):
        task = make_task()
        ghost = make_task()
        changed, meta = ensure_task_meta_sync([task], people["client"], {ghost.id: make_meta(ghost)})
        assert changed is True
        assert set(meta) == {task.id}
        assert meta[task.id].owner_user_id == people["client"].id

    def test_idempotent(self, make_task, people):
        tasks = [make_task(), make_task()]
        changed, meta = ensure_task_meta_sync(tasks, people["admin"], {})
        assert changed is True
        changed_again, meta_again = ensure_task_meta_sync(tasks, people["admin"], meta)
        assert changed_again is False
        assert meta_again == meta

    def test_existing_meta_untouched(self, make_task, make_meta, people):
        task = make_task()
        existing = replace(make_meta(task, owner=people["other"]), approval_status=ApprovalStatus.REJECTED)
        changed, meta = ensure_task_meta_sync([task], people["admin"], {task.id: existing})
        assert changed is False
        assert meta[task.id] is existing
