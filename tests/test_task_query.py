"""Task list projection tests: filters, ordering, counts, paging."""

from datetime import date, datetime, timezone

import pytest
from werkzeug.datastructures import MultiDict

from tracker.core.exceptions import ValidationError
from tracker.core.types import TaskStatus
from tracker.services.task_query import (
    TaskFilters,
    filter_tasks,
    paginate,
    sort_tasks,
    status_counts,
)


@pytest.fixture()
def tasks(make_task):
    return [
        make_task(TaskStatus.REQUESTED, title="Export button", requested_date=date(2025, 1, 5)),
        make_task(TaskStatus.APPROVED, title="Invoice layout", requested_date=date(2025, 2, 1),
                  client_name="Globex"),
        make_task(TaskStatus.APPROVED, title="Login page", requested_date=date(2025, 3, 1),
                  change_points=("Add SSO",)),
    ]


class TestFilters:
    def test_from_args_defaults(self):
        filters = TaskFilters.from_args(MultiDict())
        assert filters == TaskFilters()

    def test_from_args(self):
        filters = TaskFilters.from_args(MultiDict({
            "status": "Approved", "from": "2025-01-01", "to": "31.01.2025", "q": " SSO ",
        }))
        assert filters.status is TaskStatus.APPROVED
        assert filters.from_date == date(2025, 1, 1)
        assert filters.to_date == date(2025, 1, 31)
        assert filters.query == "sso"

    def test_unknown_status(self):
        with pytest.raises(ValidationError):
            TaskFilters.from_args(MultiDict({"status": "Done"}))

    def test_bad_date(self):
        with pytest.raises(ValidationError):
            TaskFilters.from_args(MultiDict({"from": "yesterday"}))

    def test_filter_by_status(self, tasks):
        result = filter_tasks(tasks, TaskFilters(status=TaskStatus.APPROVED))
        assert [t.title for t in result] == ["Invoice layout", "Login page"]

    def test_filter_by_date_range(self, tasks):
        result = filter_tasks(tasks, TaskFilters(from_date=date(2025, 1, 10), to_date=date(2025, 2, 28)))
        assert [t.title for t in result] == ["Invoice layout"]

    @pytest.mark.parametrize("query,expected", [
        ("button", ["Export button"]),
        ("globex", ["Invoice layout"]),
        ("sso", ["Login page"]),
    ])
    def test_text_query(self, tasks, query, expected):
        assert [t.title for t in filter_tasks(tasks, TaskFilters(query=query))] == expected


class TestOrderingAndCounts:
    def test_newest_requested_first(self, tasks):
        assert [t.title for t in sort_tasks(tasks)] == ["Login page", "Invoice layout", "Export button"]

    def test_tie_broken_by_updated_at(self, make_task):
        older = make_task(title="A", updated_at=datetime(2025, 1, 1, tzinfo=timezone.utc))
        newer = make_task(title="B", updated_at=datetime(2025, 1, 2, tzinfo=timezone.utc))
        assert [t.title for t in sort_tasks([older, newer])] == ["B", "A"]

    def test_status_counts_cover_every_stage(self, tasks):
        counts = status_counts(tasks)
        assert len(counts) == 7
        assert counts["Approved"] == 2
        assert counts["Requested"] == 1
        assert counts["Handover"] == 0


class TestPaginate:
    def test_slices(self):
        page, total = paginate(list(range(10)), limit=3, offset=2)
        assert page == [2, 3, 4]
        assert total == 10

    def test_bad_values_fall_back(self):
        page, total = paginate(list(range(60)), limit="x", offset="-4")
        assert page == list(range(50))
        assert total == 60

    def test_limit_is_capped(self):
        page, _ = paginate(list(range(600)), limit=1000)
        assert len(page) == 500
