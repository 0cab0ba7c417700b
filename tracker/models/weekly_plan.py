"""
Weekly plan models — a plan per week with per-developer daily updates.

Daily updates are upserted by ``(weekly_plan_id, source_update_id)``.
"""

from datetime import datetime, timezone

from tracker.core.types import DailyUpdate, WeeklyPlan, WorkArea
from tracker.models import as_utc, db


class WeeklyPlanRecord(db.Model):
    __tablename__ = "weekly_plans"

    id = db.Column(db.String(64), primary_key=True)
    week_start_date = db.Column(db.Date, nullable=False, index=True)
    week_end_date = db.Column(db.Date, nullable=False)
    created_by_user_id = db.Column(
        db.String(64), db.ForeignKey("app_users.id", ondelete="SET NULL"), nullable=True,
    )
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    entries = db.relationship(
        "DailyUpdateRecord", back_populates="plan",
        order_by="DailyUpdateRecord.entry_date.desc()",
        cascade="all, delete-orphan", passive_deletes=True,
    )

    def to_domain(self) -> WeeklyPlan:
        return WeeklyPlan(
            id=self.id,
            week_start_date=self.week_start_date,
            week_end_date=self.week_end_date,
            created_by_user_id=self.created_by_user_id,
            created_at=as_utc(self.created_at),
            updated_at=as_utc(self.updated_at),
            daily_updates=tuple(e.to_domain() for e in self.entries),
        )


class DailyUpdateRecord(db.Model):
    __tablename__ = "weekly_plan_daily_entries"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    weekly_plan_id = db.Column(
        db.String(64), db.ForeignKey("weekly_plans.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    source_update_id = db.Column(db.String(64), nullable=False)
    entry_date = db.Column(db.Date, nullable=False)
    developer_name = db.Column(db.String(200), nullable=False)
    project_name = db.Column(db.String(200), nullable=False, default="")
    work_area = db.Column(db.String(30), nullable=False, default=WorkArea.OTHER.value)
    morning_plan = db.Column(db.Text, default="")
    evening_update = db.Column(db.Text, default="")
    spent_hours = db.Column(db.Float, nullable=False, default=0.0)
    progress_percent = db.Column(db.Integer, nullable=False, default=0)
    office_check_in = db.Column(db.String(5))   # HH:MM
    office_check_out = db.Column(db.String(5))  # HH:MM
    has_blocker = db.Column(db.Boolean, nullable=False, default=False)
    blocker_details = db.Column(db.Text, default="")
    has_pending_work = db.Column(db.Boolean, nullable=False, default=False)
    pending_work_details = db.Column(db.Text, default="")
    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    plan = db.relationship("WeeklyPlanRecord", back_populates="entries")

    __table_args__ = (
        db.UniqueConstraint("weekly_plan_id", "source_update_id", name="uq_weekly_plan_entry_source"),
    )

    def to_domain(self) -> DailyUpdate:
        return DailyUpdate(
            id=self.source_update_id,
            date=self.entry_date,
            developer_name=self.developer_name,
            project_name=self.project_name or "",
            work_area=WorkArea(self.work_area),
            morning_plan=self.morning_plan or "",
            evening_update=self.evening_update or "",
            spent_hours=self.spent_hours or 0.0,
            progress_percent=self.progress_percent or 0,
            office_check_in=self.office_check_in,
            office_check_out=self.office_check_out,
            has_blocker=bool(self.has_blocker),
            blocker_details=self.blocker_details or "",
            has_pending_work=bool(self.has_pending_work),
            pending_work_details=self.pending_work_details or "",
            updated_at=as_utc(self.updated_at),
        )

    def apply(self, update: DailyUpdate) -> "DailyUpdateRecord":
        self.source_update_id = update.id
        self.entry_date = update.date
        self.developer_name = update.developer_name
        self.project_name = update.project_name
        self.work_area = update.work_area.value
        self.morning_plan = update.morning_plan
        self.evening_update = update.evening_update
        self.spent_hours = update.spent_hours
        self.progress_percent = update.progress_percent
        self.office_check_in = update.office_check_in
        self.office_check_out = update.office_check_out
        self.has_blocker = update.has_blocker
        self.blocker_details = update.blocker_details
        self.has_pending_work = update.has_pending_work
        self.pending_work_details = update.pending_work_details
        self.updated_at = update.updated_at
        return self
