"""
Task & access-meta stores — the persistence contract behind the engines.

TaskStore
    read()                         all tasks, newest requested first
    get(task_id)                   one task or None
    add(task)                      insert a new task (version 1)
    save(task, expected_version)   conditional update on (id, version)
    delete(task_id)
    write(tasks)                   full replace
    write_delta(previous, next)    change-detected insert/update/delete

AccessMetaStore
    read() / get() / put() / delete()
    write(mapping)                 upsert every entry, prune the rest

Stores only stage changes in the session; callers wrap them in
``unit_of_work`` so a task and its meta commit (or roll back) together.

History and hour-revision rows are inserted by source id and never
updated or deleted, so saving the same snapshot twice is a no-op.
"""

from __future__ import annotations

import logging
from dataclasses import replace

from sqlalchemy import select, update

from tracker.core.exceptions import ConflictError, NotFoundError
from tracker.core.types import ProjectTask, TaskAccessMeta
from tracker.models import db
from tracker.models.task import (
    TaskAccessMetaRecord,
    TaskEventRecord,
    TaskHourRevisionRecord,
    TaskRecord,
)

logger = logging.getLogger(__name__)


class TaskStore:
    """Relational task store (project_tasks + ledgers)."""

    def read(self) -> list[ProjectTask]:
        records = (
            TaskRecord.query
            .order_by(TaskRecord.requested_date.desc(), TaskRecord.updated_at.desc())
            .all()
        )
        return [r.to_domain() for r in records]

    def get(self, task_id: str) -> ProjectTask | None:
        record = db.session.get(TaskRecord, task_id)
        return record.to_domain() if record else None

    def add(self, task: ProjectTask) -> ProjectTask:
        task = replace(task, version=max(task.version, 1))
        record = TaskRecord(id=task.id, version=task.version, **TaskRecord.columns_for(task))
        db.session.add(record)
        db.session.flush()
        self._sync_ledgers(task)
        return task

    def save(self, task: ProjectTask, expected_version: int) -> ProjectTask:
        """Write ``task`` only if the stored version still equals ``expected_version``.

        Returns:
            The snapshot with its new version.

        Raises:
            NotFoundError: the task no longer exists.
            ConflictError: someone else saved a newer version first.
        """
        next_version = expected_version + 1
        result = db.session.execute(
            update(TaskRecord)
            .where(TaskRecord.id == task.id, TaskRecord.version == expected_version)
            .values(version=next_version, **TaskRecord.columns_for(task))
            .execution_options(synchronize_session="fetch")
        )
        if result.rowcount == 0:
            current = db.session.scalar(select(TaskRecord.version).where(TaskRecord.id == task.id))
            if current is None:
                raise NotFoundError("Task", task.id)
            logger.warning(
                "Stale write rejected for task %s: expected v%s, stored v%s",
                task.id, expected_version, current,
                extra={"task_id": task.id, "event_type": "conflict"},
            )
            raise ConflictError("Task", "version", expected_version)

        saved = replace(task, version=next_version)
        self._sync_ledgers(saved)
        return saved

    def delete(self, task_id: str) -> None:
        record = db.session.get(TaskRecord, task_id)
        if record is None:
            raise NotFoundError("Task", task_id)
        TaskAccessMetaRecord.query.filter_by(task_id=task_id).delete()
        db.session.delete(record)

    def write(self, tasks: list[ProjectTask]) -> list[ProjectTask]:
        """Replace the whole collection with ``tasks``."""
        keep = {t.id for t in tasks}
        for record in TaskRecord.query.all():
            if record.id not in keep:
                TaskAccessMetaRecord.query.filter_by(task_id=record.id).delete()
                db.session.delete(record)

        written = []
        for task in tasks:
            record = db.session.get(TaskRecord, task.id)
            if record is None:
                written.append(self.add(task))
                continue
            version = record.version + 1
            for name, value in TaskRecord.columns_for(task).items():
                setattr(record, name, value)
            record.version = version
            saved = replace(task, version=version)
            self._sync_ledgers(saved)
            written.append(saved)
        db.session.flush()
        return written

    def write_delta(self, previous: list[ProjectTask], next_tasks: list[ProjectTask]) -> list[ProjectTask]:
        """Persist only what differs between two snapshots of the collection.

        Updated tasks are checked against the version they had in
        ``previous``.
        """
        before = {t.id: t for t in previous}
        after_ids = {t.id for t in next_tasks}

        for task_id in before.keys() - after_ids:
            self.delete(task_id)

        written = []
        for task in next_tasks:
            old = before.get(task.id)
            if old is None:
                written.append(self.add(task))
            elif old != task:
                written.append(self.save(task, old.version))
            else:
                written.append(task)
        return written

    # ── Ledgers ────────────────────────────────────────────────────────────

    def _sync_ledgers(self, task: ProjectTask) -> None:
        known_events = set(db.session.scalars(
            select(TaskEventRecord.source_event_id).where(TaskEventRecord.task_id == task.id)
        ))
        for entry in task.history:
            if entry.id not in known_events:
                db.session.add(TaskEventRecord.from_domain(task.id, entry))

        known_revisions = set(db.session.scalars(
            select(TaskHourRevisionRecord.source_revision_id)
            .where(TaskHourRevisionRecord.task_id == task.id)
        ))
        for revision in task.hour_revisions:
            if revision.id not in known_revisions:
                db.session.add(TaskHourRevisionRecord.from_domain(task.id, revision))
        db.session.flush()


class AccessMetaStore:
    """Relational store for ``TaskAccessMeta`` keyed by task id."""

    def read(self) -> dict[str, TaskAccessMeta]:
        return {r.task_id: r.to_domain() for r in TaskAccessMetaRecord.query.all()}

    def get(self, task_id: str) -> TaskAccessMeta | None:
        record = db.session.get(TaskAccessMetaRecord, task_id)
        return record.to_domain() if record else None

    def put(self, meta: TaskAccessMeta) -> TaskAccessMeta:
        record = db.session.get(TaskAccessMetaRecord, meta.task_id)
        if record is None:
            record = TaskAccessMetaRecord()
            db.session.add(record)
        record.apply(meta)
        db.session.flush()
        return meta

    def delete(self, task_id: str) -> None:
        TaskAccessMetaRecord.query.filter_by(task_id=task_id).delete()

    def write(self, meta_by_id: dict[str, TaskAccessMeta]) -> None:
        for record in TaskAccessMetaRecord.query.all():
            if record.task_id not in meta_by_id:
                db.session.delete(record)
        for meta in meta_by_id.values():
            self.put(meta)
