"""
Change request models — tasks, their history/hour-revision ledgers and
access meta.

Ledger rows are keyed by ``(task_id, source_*_id)`` where the source id is
the domain entry id, so replaying the same snapshot never duplicates rows.
``version`` is the optimistic-concurrency token checked by
``TaskStore.save``.
"""

from datetime import datetime, timezone

from tracker.core.types import (
    ApprovalStatus,
    HourRevision,
    ProjectTask,
    TaskAccessMeta,
    TaskHistoryEntry,
    TaskStatus,
)
from tracker.models import as_utc, db

def event_type_for(note: str | None) -> str:
    return "rollback" if note and "rollback" in note.lower() else "status_change"


class TaskRecord(db.Model):
    __tablename__ = "project_tasks"

    id = db.Column(db.String(64), primary_key=True)
    title = db.Column(db.String(300), nullable=False)
    change_points = db.Column(db.JSON, nullable=False, default=list)
    requested_date = db.Column(db.Date, nullable=False)
    client_name = db.Column(db.String(200))
    status = db.Column(db.String(30), nullable=False, default=TaskStatus.REQUESTED.value, index=True)

    # Milestones
    delivery_date = db.Column(db.Date)
    client_review_date = db.Column(db.Date)
    confirmed_date = db.Column(db.Date)
    approved_date = db.Column(db.Date)
    start_date = db.Column(db.Date)
    completed_date = db.Column(db.Date)
    handover_date = db.Column(db.Date)

    # Effort
    estimated_hours = db.Column(db.Float, nullable=False, default=0.0)
    logged_hours = db.Column(db.Float, nullable=False, default=0.0)
    hourly_rate = db.Column(db.Float)

    version = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    events = db.relationship(
        "TaskEventRecord", back_populates="task", order_by="TaskEventRecord.id",
        cascade="all, delete-orphan", passive_deletes=True,
    )
    hour_revisions = db.relationship(
        "TaskHourRevisionRecord", back_populates="task", order_by="TaskHourRevisionRecord.id",
        cascade="all, delete-orphan", passive_deletes=True,
    )

    __table_args__ = (
        db.Index("ix_project_tasks_requested_date", "requested_date"),
    )

    def to_domain(self) -> ProjectTask:
        return ProjectTask(
            id=self.id,
            title=self.title,
            change_points=tuple(self.change_points or ()),
            requested_date=self.requested_date,
            client_name=self.client_name,
            status=TaskStatus(self.status),
            delivery_date=self.delivery_date,
            client_review_date=self.client_review_date,
            confirmed_date=self.confirmed_date,
            approved_date=self.approved_date,
            start_date=self.start_date,
            completed_date=self.completed_date,
            handover_date=self.handover_date,
            estimated_hours=self.estimated_hours,
            logged_hours=self.logged_hours,
            hourly_rate=self.hourly_rate,
            created_at=as_utc(self.created_at),
            updated_at=as_utc(self.updated_at),
            history=tuple(e.to_domain() for e in self.events),
            hour_revisions=tuple(r.to_domain() for r in self.hour_revisions),
            version=self.version,
        )

    @staticmethod
    def columns_for(task: ProjectTask) -> dict:
        """Scalar column values for a snapshot (ledgers excluded)."""
        return {
            "title": task.title,
            "change_points": list(task.change_points),
            "requested_date": task.requested_date,
            "client_name": task.client_name,
            "status": task.status.value,
            "delivery_date": task.delivery_date,
            "client_review_date": task.client_review_date,
            "confirmed_date": task.confirmed_date,
            "approved_date": task.approved_date,
            "start_date": task.start_date,
            "completed_date": task.completed_date,
            "handover_date": task.handover_date,
            "estimated_hours": task.estimated_hours,
            "logged_hours": task.logged_hours,
            "hourly_rate": task.hourly_rate,
            "created_at": task.created_at,
            "updated_at": task.updated_at,
        }

    def __repr__(self):
        return f"<TaskRecord {self.id} '{self.title}' [{self.status}] v{self.version}>"


class TaskEventRecord(db.Model):
    """Status-history ledger row. Append-only."""

    __tablename__ = "task_events"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    task_id = db.Column(
        db.String(64), db.ForeignKey("project_tasks.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    source_event_id = db.Column(db.String(64), nullable=False)
    event_type = db.Column(db.String(20), nullable=False, default="status_change")  # status_change | rollback
    status = db.Column(db.String(30), nullable=False)
    note = db.Column(db.Text)
    changed_at = db.Column(db.DateTime(timezone=True), nullable=False)

    task = db.relationship("TaskRecord", back_populates="events")

    __table_args__ = (
        db.UniqueConstraint("task_id", "source_event_id", name="uq_task_events_source"),
    )

    @classmethod
    def from_domain(cls, task_id: str, entry: TaskHistoryEntry) -> "TaskEventRecord":
        return cls(
            task_id=task_id,
            source_event_id=entry.id,
            event_type=event_type_for(entry.note),
            status=entry.status.value,
            note=entry.note,
            changed_at=entry.changed_at,
        )

    def to_domain(self) -> TaskHistoryEntry:
        return TaskHistoryEntry(
            id=self.source_event_id,
            status=TaskStatus(self.status),
            changed_at=as_utc(self.changed_at),
            note=self.note,
        )


class TaskHourRevisionRecord(db.Model):
    """Estimate-change ledger row. Append-only."""

    __tablename__ = "task_hour_revisions"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    task_id = db.Column(
        db.String(64), db.ForeignKey("project_tasks.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    source_revision_id = db.Column(db.String(64), nullable=False)
    previous_estimated_hours = db.Column(db.Float, nullable=False)
    next_estimated_hours = db.Column(db.Float, nullable=False)
    reason = db.Column(db.Text)
    changed_at = db.Column(db.DateTime(timezone=True), nullable=False)

    task = db.relationship("TaskRecord", back_populates="hour_revisions")

    __table_args__ = (
        db.UniqueConstraint("task_id", "source_revision_id", name="uq_task_hour_revisions_source"),
    )

    @classmethod
    def from_domain(cls, task_id: str, revision: HourRevision) -> "TaskHourRevisionRecord":
        return cls(
            task_id=task_id,
            source_revision_id=revision.id,
            previous_estimated_hours=revision.previous_estimated_hours,
            next_estimated_hours=revision.next_estimated_hours,
            reason=revision.reason,
            changed_at=revision.changed_at,
        )

    def to_domain(self) -> HourRevision:
        return HourRevision(
            id=self.source_revision_id,
            previous_estimated_hours=self.previous_estimated_hours,
            next_estimated_hours=self.next_estimated_hours,
            changed_at=as_utc(self.changed_at),
            reason=self.reason,
        )


class TaskAccessMetaRecord(db.Model):
    """Owner and approval state of a task (1:1)."""

    __tablename__ = "task_access_meta"

    task_id = db.Column(
        db.String(64), db.ForeignKey("project_tasks.id", ondelete="CASCADE"), primary_key=True,
    )
    owner_user_id = db.Column(
        db.String(64), db.ForeignKey("app_users.id", ondelete="SET NULL"), nullable=True, index=True,
    )
    approval_status = db.Column(
        db.String(20), nullable=False, default=ApprovalStatus.PENDING.value,
    )  # pending, approved, rejected
    decision_note = db.Column(db.Text)
    decided_by_user_id = db.Column(
        db.String(64), db.ForeignKey("app_users.id", ondelete="SET NULL"), nullable=True,
    )
    decided_at = db.Column(db.DateTime(timezone=True))
    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    def to_domain(self) -> TaskAccessMeta:
        return TaskAccessMeta(
            task_id=self.task_id,
            owner_user_id=self.owner_user_id,
            approval_status=ApprovalStatus(self.approval_status),
            decision_note=self.decision_note,
            decided_by_user_id=self.decided_by_user_id,
            decided_at=as_utc(self.decided_at),
            updated_at=as_utc(self.updated_at),
        )

    def apply(self, meta: TaskAccessMeta) -> "TaskAccessMetaRecord":
        self.task_id = meta.task_id
        self.owner_user_id = meta.owner_user_id
        self.approval_status = meta.approval_status.value
        self.decision_note = meta.decision_note
        self.decided_by_user_id = meta.decided_by_user_id
        self.decided_at = meta.decided_at
        self.updated_at = meta.updated_at
        return self
