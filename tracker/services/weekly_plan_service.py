"""
Weekly Plan Service — manager-only weekly plans with daily developer updates.

A plan covers one week (start/end dates, end >= start). Daily updates
belong to a plan, must fall inside its week, and are upserted by their
id, so re-submitting the same update edits it in place.

Daily update rules:
  - developer_name and date are required
  - at least one of morning_plan / evening_update must be filled
  - spent_hours >= 0; progress_percent is clamped to 0..100
  - office check-in/out are HH:MM
  - unknown work areas fall back to "Other"
"""

from __future__ import annotations

import logging
import math
import re
from datetime import timedelta

from tracker.core.exceptions import NotFoundError, ValidationError
from tracker.core.types import AppUser, DailyUpdate, WeeklyPlan, WorkArea, new_id, utcnow
from tracker.models import db
from tracker.models.weekly_plan import DailyUpdateRecord, WeeklyPlanRecord
from tracker.services.task_access import ensure_manager
from tracker.utils.helpers import parse_bool, parse_date_input, unit_of_work

logger = logging.getLogger(__name__)

_TIME_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


def _date(value, field: str, required: bool = True):
    try:
        parsed = parse_date_input(value)
    except ValueError as e:
        raise ValidationError(str(e), details={field: "invalid"})
    if parsed is None and required:
        raise ValidationError(f"{field} is required", details={field: "required"})
    return parsed


def _time(value, field: str) -> str | None:
    if value in (None, ""):
        return None
    text = str(value).strip()
    if not _TIME_RE.match(text):
        raise ValidationError(f"{field} must be HH:MM", details={field: "invalid"})
    return text


def _spent_hours(value) -> float:
    if value in (None, ""):
        return 0.0
    try:
        hours = float(value)
    except (TypeError, ValueError):
        raise ValidationError("spent_hours must be a number >= 0", details={"spent_hours": "invalid"})
    if not math.isfinite(hours) or hours < 0:
        raise ValidationError("spent_hours must be a number >= 0", details={"spent_hours": "invalid"})
    return hours


def _progress(value) -> int:
    if value in (None, ""):
        return 0
    try:
        progress = float(value)
    except (TypeError, ValueError):
        raise ValidationError("progress_percent must be a number", details={"progress_percent": "invalid"})
    if not math.isfinite(progress):
        raise ValidationError("progress_percent must be a number", details={"progress_percent": "invalid"})
    return int(round(min(max(progress, 0), 100)))


def _work_area(value) -> WorkArea:
    for area in WorkArea:
        if area.value == value:
            return area
    return WorkArea.OTHER


def build_daily_update(plan: WeeklyPlan, data: dict, update_id: str | None = None) -> DailyUpdate:
    """Validate a daily update payload against its plan's week."""
    day = _date(data.get("date"), "date")
    if not (plan.week_start_date <= day <= plan.week_end_date):
        raise ValidationError(
            "Update date must fall within the plan's week",
            details={"date": "out_of_range"},
        )
    developer = str(data.get("developer_name") or "").strip()
    if not developer:
        raise ValidationError("developer_name is required", details={"developer_name": "required"})
    morning = str(data.get("morning_plan") or "").strip()
    evening = str(data.get("evening_update") or "").strip()
    if not morning and not evening:
        raise ValidationError(
            "A morning plan or an evening update is required",
            details={"morning_plan": "required", "evening_update": "required"},
        )
    has_blocker = parse_bool(data.get("has_blocker"))
    has_pending = parse_bool(data.get("has_pending_work"))
    return DailyUpdate(
        id=update_id or str(data.get("id") or new_id()),
        date=day,
        developer_name=developer,
        project_name=str(data.get("project_name") or "").strip(),
        work_area=_work_area(data.get("work_area")),
        morning_plan=morning,
        evening_update=evening,
        spent_hours=_spent_hours(data.get("spent_hours")),
        progress_percent=_progress(data.get("progress_percent")),
        office_check_in=_time(data.get("office_check_in"), "office_check_in"),
        office_check_out=_time(data.get("office_check_out"), "office_check_out"),
        has_blocker=has_blocker,
        blocker_details=str(data.get("blocker_details") or "").strip() if has_blocker else "",
        has_pending_work=has_pending,
        pending_work_details=str(data.get("pending_work_details") or "").strip() if has_pending else "",
        updated_at=utcnow(),
    )


def _get_record(plan_id: str) -> WeeklyPlanRecord:
    record = db.session.get(WeeklyPlanRecord, plan_id)
    if record is None:
        raise NotFoundError("WeeklyPlan", plan_id)
    return record


# ═══════════════════════════════════════════════════════════════
# Plans
# ═══════════════════════════════════════════════════════════════
def list_plans(actor: AppUser) -> list[dict]:
    ensure_manager(actor, "view weekly plans")
    records = WeeklyPlanRecord.query.order_by(WeeklyPlanRecord.week_start_date.desc()).all()
    return [r.to_domain().to_dict() for r in records]


def get_plan(actor: AppUser, plan_id: str) -> dict:
    ensure_manager(actor, "view weekly plans")
    return _get_record(plan_id).to_domain().to_dict()


def create_plan(actor: AppUser, data: dict) -> dict:
    """Create a plan; week_end_date defaults to six days after the start."""
    ensure_manager(actor, "manage weekly plans")
    start = _date(data.get("week_start_date"), "week_start_date")
    end = _date(data.get("week_end_date"), "week_end_date", required=False) or start + timedelta(days=6)
    if end < start:
        raise ValidationError(
            "week_end_date must not be before week_start_date",
            details={"week_end_date": "invalid"},
        )
    now = utcnow()
    record = WeeklyPlanRecord(
        id=new_id(),
        week_start_date=start,
        week_end_date=end,
        created_by_user_id=actor.id,
        created_at=now,
        updated_at=now,
    )
    with unit_of_work("create weekly plan"):
        db.session.add(record)
    logger.info("Weekly plan created: %s (%s..%s)", record.id, start, end, extra={"user_id": actor.id})
    return record.to_domain().to_dict()


def delete_plan(actor: AppUser, plan_id: str) -> None:
    ensure_manager(actor, "manage weekly plans")
    record = _get_record(plan_id)
    with unit_of_work("delete weekly plan"):
        db.session.delete(record)
    logger.info("Weekly plan deleted: %s", plan_id, extra={"user_id": actor.id})


# ═══════════════════════════════════════════════════════════════
# Daily updates
# ═══════════════════════════════════════════════════════════════
def upsert_update(actor: AppUser, plan_id: str, data: dict, update_id: str | None = None) -> dict:
    """Insert or replace a daily update keyed by (plan, update id)."""
    ensure_manager(actor, "manage weekly plans")
    record = _get_record(plan_id)
    update = build_daily_update(record.to_domain(), data, update_id)

    with unit_of_work("save daily update"):
        entry = DailyUpdateRecord.query.filter_by(
            weekly_plan_id=plan_id, source_update_id=update.id,
        ).first()
        if entry is None:
            entry = DailyUpdateRecord(weekly_plan_id=plan_id)
            db.session.add(entry)
        entry.apply(update)
        record.updated_at = update.updated_at
    return update.to_dict()


def delete_update(actor: AppUser, plan_id: str, update_id: str) -> None:
    ensure_manager(actor, "manage weekly plans")
    record = _get_record(plan_id)
    entry = DailyUpdateRecord.query.filter_by(
        weekly_plan_id=plan_id, source_update_id=update_id,
    ).first()
    if entry is None:
        raise NotFoundError("DailyUpdate", update_id)
    with unit_of_work("delete daily update"):
        db.session.delete(entry)
        record.updated_at = utcnow()
