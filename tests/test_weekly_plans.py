"""
Weekly plan tests — daily update validation and the manager-only API.
"""

from datetime import date, datetime, timezone

import pytest

from tracker.core.exceptions import ValidationError
from tracker.core.types import WeeklyPlan, WorkArea
from tracker.services.weekly_plan_service import build_daily_update

BASE = "/api/v1/weekly-plans"

WEEK = WeeklyPlan(
    id="w1",
    week_start_date=date(2025, 1, 6),
    week_end_date=date(2025, 1, 12),
    created_by_user_id=None,
    created_at=datetime(2025, 1, 6, tzinfo=timezone.utc),
    updated_at=datetime(2025, 1, 6, tzinfo=timezone.utc),
)


def _update(**fields):
    data = {"date": "2025-01-07", "developer_name": "Lee", "morning_plan": "Wire export endpoint"}
    data.update(fields)
    return data


# ═════════════════════════════════════════════════════════════════════════
# Daily update rules
# ═════════════════════════════════════════════════════════════════════════

class TestDailyUpdateRules:
    def test_defaults(self):
        update = build_daily_update(WEEK, _update())
        assert update.work_area is WorkArea.OTHER
        assert update.spent_hours == 0.0
        assert update.progress_percent == 0
        assert update.office_check_in is None

    def test_progress_is_clamped(self):
        assert build_daily_update(WEEK, _update(progress_percent=140)).progress_percent == 100
        assert build_daily_update(WEEK, _update(progress_percent=-5)).progress_percent == 0

    def test_blocker_details_only_kept_with_flag(self):
        update = build_daily_update(WEEK, _update(has_blocker=False, blocker_details="VPN down"))
        assert update.blocker_details == ""
        update = build_daily_update(WEEK, _update(has_blocker="true", blocker_details=" VPN down "))
        assert update.blocker_details == "VPN down"

    def test_known_work_area(self):
        assert build_daily_update(WEEK, _update(work_area="Backend")).work_area is WorkArea.BACKEND

    @pytest.mark.parametrize("fields", [
        {"date": "2025-01-20"},
        {"date": None},
        {"developer_name": " "},
        {"morning_plan": "", "evening_update": ""},
        {"spent_hours": -1},
        {"office_check_in": "25:00"},
    ])
    def test_rejected(self, fields):
        with pytest.raises(ValidationError):
            build_daily_update(WEEK, _update(**fields))


# ═════════════════════════════════════════════════════════════════════════
# API
# ═════════════════════════════════════════════════════════════════════════

class TestWeeklyPlanApi:
    @pytest.fixture()
    def headers(self, admin, auth_headers):
        return auth_headers(admin)

    def _plan(self, client, headers, **fields):
        payload = {"week_start_date": "2025-01-06"}
        payload.update(fields)
        res = client.post(BASE, json=payload, headers=headers)
        assert res.status_code == 201, res.get_json()
        return res.get_json()

    def test_clients_forbidden(self, client, client_user, auth_headers):
        assert client.get(BASE, headers=auth_headers(client_user)).status_code == 403

    def test_create_defaults_end_of_week(self, client, headers, admin):
        plan = self._plan(client, headers)
        assert plan["week_end_date"] == "2025-01-12"
        assert plan["created_by_user_id"] == admin.id
        assert plan["daily_updates"] == []

    def test_end_before_start(self, client, headers):
        res = client.post(BASE, json={"week_start_date": "2025-01-06", "week_end_date": "2025-01-01"},
                          headers=headers)
        assert res.status_code == 422

    def test_updates_are_upserted_by_id(self, client, headers):
        plan = self._plan(client, headers)
        res = client.post(f"{BASE}/{plan['id']}/updates", json=_update(spent_hours=3), headers=headers)
        assert res.status_code == 201
        update_id = res.get_json()["id"]

        res = client.put(f"{BASE}/{plan['id']}/updates/{update_id}",
                         json=_update(evening_update="Done", spent_hours=6), headers=headers)
        assert res.status_code == 200

        stored = client.get(f"{BASE}/{plan['id']}", headers=headers).get_json()
        assert len(stored["daily_updates"]) == 1
        assert stored["daily_updates"][0]["spent_hours"] == 6
        assert stored["daily_updates"][0]["evening_update"] == "Done"

    def test_delete_update_and_plan(self, client, headers):
        plan = self._plan(client, headers)
        update = client.post(f"{BASE}/{plan['id']}/updates", json=_update(), headers=headers).get_json()

        res = client.delete(f"{BASE}/{plan['id']}/updates/{update['id']}", headers=headers)
        assert res.status_code == 200
        res = client.delete(f"{BASE}/{plan['id']}/updates/{update['id']}", headers=headers)
        assert res.status_code == 404

        assert client.delete(f"{BASE}/{plan['id']}", headers=headers).status_code == 200
        assert client.get(f"{BASE}/{plan['id']}", headers=headers).status_code == 404

    def test_list_newest_week_first(self, client, headers):
        self._plan(client, headers, week_start_date="2025-01-06")
        self._plan(client, headers, week_start_date="2025-01-13")
        data = client.get(BASE, headers=headers).get_json()
        assert data["total"] == 2
        assert [p["week_start_date"] for p in data["items"]] == ["2025-01-13", "2025-01-06"]
