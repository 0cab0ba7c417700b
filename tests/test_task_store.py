"""
Task store tests — versioned saves, ledger idempotence, delta writes and
the access-meta store.
"""

from dataclasses import replace

import pytest

from tracker.core.exceptions import ConflictError, NotFoundError
from tracker.core.types import ApprovalStatus, TaskHistoryEntry, TaskStatus, new_id, utcnow
from tracker.models.task import TaskEventRecord
from tracker.services.task_store import AccessMetaStore, TaskStore
from tracker.utils.helpers import unit_of_work


@pytest.fixture()
def store():
    return TaskStore()


@pytest.fixture()
def meta_store():
    return AccessMetaStore()


def _persist(store, task):
    with unit_of_work("add task"):
        return store.add(task)


class TestVersionedSave:
    def test_add_starts_at_version_one(self, store, make_task):
        task = _persist(store, make_task())
        assert task.version == 1
        assert store.get(task.id).title == "Add export button"

    def test_save_bumps_version(self, store, make_task):
        task = _persist(store, make_task())
        with unit_of_work("save task"):
            saved = store.save(replace(task, title="Add import button"), task.version)
        assert saved.version == 2
        stored = store.get(task.id)
        assert stored.title == "Add import button"
        assert stored.version == 2

    def test_stale_save_is_rejected(self, store, make_task):
        task = _persist(store, make_task())
        with unit_of_work("save task"):
            store.save(replace(task, title="First writer"), 1)
        with pytest.raises(ConflictError) as exc:
            with unit_of_work("save task"):
                store.save(replace(task, title="Second writer"), 1)
        assert exc.value.status == 409
        assert store.get(task.id).title == "First writer"

    def test_save_missing_task(self, store, make_task):
        with pytest.raises(NotFoundError):
            store.save(make_task(), 1)


class TestLedgers:
    def test_history_rows_are_not_duplicated(self, store, make_task):
        task = _persist(store, make_task())
        entry = TaskHistoryEntry(id=new_id(), status=TaskStatus.CLIENT_REVIEW, changed_at=utcnow(), note="Sent")
        moved = replace(task, status=TaskStatus.CLIENT_REVIEW, history=task.history + (entry,))
        with unit_of_work("save task"):
            saved = store.save(moved, 1)
        with unit_of_work("save task"):
            store.save(saved, saved.version)

        assert TaskEventRecord.query.filter_by(task_id=task.id).count() == 2
        assert [h.note for h in store.get(task.id).history] == ["Seed", "Sent"]


class TestCollectionWrites:
    def test_write_delta(self, store, make_task):
        keep = _persist(store, make_task(title="Keep"))
        drop = _persist(store, make_task(title="Drop"))
        same = _persist(store, make_task(title="Same"))
        new = make_task(title="New")
        edited = replace(keep, title="Kept and edited")

        with unit_of_work("write tasks"):
            written = store.write_delta([keep, drop, same], [edited, same, new])

        assert {t.title: t.version for t in written} == {"Kept and edited": 2, "Same": 1, "New": 1}
        assert store.get(drop.id) is None
        assert len(store.read()) == 3

    def test_write_replaces_collection(self, store, make_task):
        old = _persist(store, make_task(title="Old"))
        fresh = make_task(title="Fresh")
        with unit_of_work("write tasks"):
            store.write([fresh])
        assert store.get(old.id) is None
        assert [t.title for t in store.read()] == ["Fresh"]


class TestAccessMetaStore:
    def test_put_and_prune(self, store, meta_store, make_task, make_meta):
        a = _persist(store, make_task())
        b = _persist(store, make_task())
        with unit_of_work("write meta"):
            meta_store.write({a.id: make_meta(a), b.id: make_meta(b)})
        with unit_of_work("write meta"):
            meta_store.write({a.id: replace(make_meta(a), approval_status=ApprovalStatus.APPROVED)})

        stored = meta_store.read()
        assert set(stored) == {a.id}
        assert stored[a.id].approval_status is ApprovalStatus.APPROVED

    def test_deleting_task_drops_meta(self, store, meta_store, make_task, make_meta):
        task = _persist(store, make_task())
        with unit_of_work("write meta"):
            meta_store.put(make_meta(task))
        with unit_of_work("delete task"):
            store.delete(task.id)
        assert meta_store.get(task.id) is None
