"""
Domain value types: task snapshots, access meta, users, weekly plans.

All records are frozen dataclasses. The workflow and access engines never
mutate a snapshot in place; they build the next one with
``dataclasses.replace`` and hand it back to the caller, which owns
persistence.

Usage:
    from tracker.core.types import ProjectTask, TaskStatus

    task.status is TaskStatus.CONFIRMED
    payload = task.to_dict()
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum


def new_id() -> str:
    """Opaque identifier for tasks, history entries and revisions."""
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: date | datetime | None) -> str | None:
    return value.isoformat() if value else None


# ═════════════════════════════════════════════════════════════════════════════
# Enums
# ═════════════════════════════════════════════════════════════════════════════

class TaskStatus(str, Enum):
    """Lifecycle stages, declared in delivery order."""
    REQUESTED = "Requested"
    CLIENT_REVIEW = "Client Review"
    CONFIRMED = "Confirmed"
    APPROVED = "Approved"
    WORKING_ON_IT = "Working On It"
    COMPLETED = "Completed"
    HANDOVER = "Handover"

    @classmethod
    def parse(cls, value) -> "TaskStatus | None":
        """Return the member for a label or None when the label is unknown."""
        if isinstance(value, cls):
            return value
        for member in cls:
            if member.value == value:
                return member
        return None


STATUS_ORDER: tuple[TaskStatus, ...] = tuple(TaskStatus)


class UserRole(str, Enum):
    CLIENT = "client"
    ADMIN = "admin"
    SUPER_USER = "super_user"

    @classmethod
    def parse(cls, value, default: "UserRole | None" = None) -> "UserRole | None":
        if isinstance(value, cls):
            return value
        for member in cls:
            if member.value == value:
                return member
        return default


class UserStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ApprovalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class WorkArea(str, Enum):
    FRONTEND = "Frontend"
    BACKEND = "Backend"
    QA = "QA"
    FULL_STACK = "Frontend + Backend"
    OTHER = "Other"


# ═════════════════════════════════════════════════════════════════════════════
# Task ledger entries
# ═════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class TaskHistoryEntry:
    """One status-history line. The ledger is append-only."""
    id: str
    status: TaskStatus
    changed_at: datetime
    note: str | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "status": self.status.value,
            "changed_at": _iso(self.changed_at),
            "note": self.note,
        }


@dataclass(frozen=True)
class HourRevision:
    """Recorded whenever ``estimated_hours`` actually changes value."""
    id: str
    previous_estimated_hours: float
    next_estimated_hours: float
    changed_at: datetime
    reason: str | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "previous_estimated_hours": self.previous_estimated_hours,
            "next_estimated_hours": self.next_estimated_hours,
            "changed_at": _iso(self.changed_at),
            "reason": self.reason,
        }


# ═════════════════════════════════════════════════════════════════════════════
# Task snapshot
# ═════════════════════════════════════════════════════════════════════════════

# Milestone date field stamped when a task enters each status.
MILESTONE_FIELDS: dict[TaskStatus, str] = {
    TaskStatus.CLIENT_REVIEW: "client_review_date",
    TaskStatus.CONFIRMED: "confirmed_date",
    TaskStatus.APPROVED: "approved_date",
    TaskStatus.WORKING_ON_IT: "start_date",
    TaskStatus.COMPLETED: "completed_date",
    TaskStatus.HANDOVER: "handover_date",
}


@dataclass(frozen=True)
class ProjectTask:
    id: str
    title: str
    requested_date: date
    status: TaskStatus
    created_at: datetime
    updated_at: datetime
    change_points: tuple[str, ...] = ()
    client_name: str | None = None
    delivery_date: date | None = None
    client_review_date: date | None = None
    confirmed_date: date | None = None
    approved_date: date | None = None
    start_date: date | None = None
    completed_date: date | None = None
    handover_date: date | None = None
    estimated_hours: float = 0.0
    logged_hours: float = 0.0
    hourly_rate: float | None = None
    history: tuple[TaskHistoryEntry, ...] = ()
    hour_revisions: tuple[HourRevision, ...] = ()
    version: int = 1

    def milestone(self, status: TaskStatus) -> date | None:
        name = MILESTONE_FIELDS.get(status)
        return getattr(self, name) if name else None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "change_points": list(self.change_points),
            "requested_date": _iso(self.requested_date),
            "client_name": self.client_name,
            "status": self.status.value,
            "delivery_date": _iso(self.delivery_date),
            "client_review_date": _iso(self.client_review_date),
            "confirmed_date": _iso(self.confirmed_date),
            "approved_date": _iso(self.approved_date),
            "start_date": _iso(self.start_date),
            "completed_date": _iso(self.completed_date),
            "handover_date": _iso(self.handover_date),
            "estimated_hours": self.estimated_hours,
            "logged_hours": self.logged_hours,
            "hourly_rate": self.hourly_rate,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            "history": [h.to_dict() for h in self.history],
            "hour_revisions": [r.to_dict() for r in self.hour_revisions],
            "version": self.version,
        }


@dataclass(frozen=True)
class TaskAccessMeta:
    """Ownership and approval state of one task, keyed 1:1 by task id."""
    task_id: str
    owner_user_id: str | None
    approval_status: ApprovalStatus
    updated_at: datetime
    decision_note: str | None = None
    decided_by_user_id: str | None = None
    decided_at: datetime | None = None

    def to_dict(self) -> dict:
        return {
            "task_id": self.task_id,
            "owner_user_id": self.owner_user_id,
            "approval_status": self.approval_status.value,
            "decision_note": self.decision_note,
            "decided_by_user_id": self.decided_by_user_id,
            "decided_at": _iso(self.decided_at),
            "updated_at": _iso(self.updated_at),
        }


# ═════════════════════════════════════════════════════════════════════════════
# Users
# ═════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class AppUser:
    id: str
    name: str
    email: str
    role: UserRole
    status: UserStatus
    created_at: datetime
    approved_by_user_id: str | None = None
    approved_at: datetime | None = None
    rejection_reason: str | None = None
    password_hash: str | None = field(default=None, repr=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "role": self.role.value,
            "status": self.status.value,
            "created_at": _iso(self.created_at),
            "approved_by_user_id": self.approved_by_user_id,
            "approved_at": _iso(self.approved_at),
            "rejection_reason": self.rejection_reason,
        }


# ═════════════════════════════════════════════════════════════════════════════
# Weekly plans
# ═════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class DailyUpdate:
    id: str
    date: date
    developer_name: str
    project_name: str
    work_area: WorkArea
    updated_at: datetime
    morning_plan: str = ""
    evening_update: str = ""
    spent_hours: float = 0.0
    progress_percent: int = 0
    office_check_in: str | None = None
    office_check_out: str | None = None
    has_blocker: bool = False
    blocker_details: str = ""
    has_pending_work: bool = False
    pending_work_details: str = ""

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "date": _iso(self.date),
            "developer_name": self.developer_name,
            "project_name": self.project_name,
            "work_area": self.work_area.value,
            "morning_plan": self.morning_plan,
            "evening_update": self.evening_update,
            "spent_hours": self.spent_hours,
            "progress_percent": self.progress_percent,
            "office_check_in": self.office_check_in,
            "office_check_out": self.office_check_out,
            "has_blocker": self.has_blocker,
            "blocker_details": self.blocker_details,
            "has_pending_work": self.has_pending_work,
            "pending_work_details": self.pending_work_details,
            "updated_at": _iso(self.updated_at),
        }


@dataclass(frozen=True)
class WeeklyPlan:
    id: str
    week_start_date: date
    week_end_date: date
    created_at: datetime
    updated_at: datetime
    created_by_user_id: str | None = None
    daily_updates: tuple[DailyUpdate, ...] = ()

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "week_start_date": _iso(self.week_start_date),
            "week_end_date": _iso(self.week_end_date),
            "created_by_user_id": self.created_by_user_id,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            "daily_updates": [u.to_dict() for u in self.daily_updates],
        }
