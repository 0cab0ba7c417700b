"""
Task status model tests.

Covers:
  - stage order and the successor function
  - legal transitions: stay, next stage, rollback to Client Review
  - rollback detection and the estimate-required stages
"""

import pytest

from tracker.core.types import STATUS_ORDER, TaskStatus
from tracker.services.task_status import (
    allowed_targets,
    can_transition,
    is_closed,
    is_rollback,
    next_status,
    requires_estimate,
    status_index,
)

S = TaskStatus


class TestOrder:
    def test_stage_order(self):
        assert [s.value for s in STATUS_ORDER] == [
            "Requested", "Client Review", "Confirmed", "Approved",
            "Working On It", "Completed", "Handover",
        ]

    def test_status_index_is_monotonic(self):
        assert [status_index(s) for s in STATUS_ORDER] == list(range(len(STATUS_ORDER)))

    def test_next_status(self):
        assert next_status(S.REQUESTED) is S.CLIENT_REVIEW
        assert next_status(S.COMPLETED) is S.HANDOVER
        assert next_status(S.HANDOVER) is None

    def test_parse_unknown_label(self):
        assert S.parse("Done") is None
        assert S.parse("Approved") is S.APPROVED


class TestTransitions:
    @pytest.mark.parametrize("status", list(TaskStatus))
    def test_stay_is_always_legal(self, status):
        assert can_transition(status, status)

    def test_forward_one_stage_only(self):
        assert can_transition(S.CONFIRMED, S.APPROVED)
        assert not can_transition(S.CONFIRMED, S.WORKING_ON_IT)
        assert not can_transition(S.REQUESTED, S.CONFIRMED)

    def test_no_backward_move_except_rollback(self):
        assert not can_transition(S.APPROVED, S.CONFIRMED)
        assert not can_transition(S.HANDOVER, S.REQUESTED)
        assert not can_transition(S.CLIENT_REVIEW, S.REQUESTED)

    @pytest.mark.parametrize("status", [S.CONFIRMED, S.APPROVED, S.WORKING_ON_IT, S.COMPLETED, S.HANDOVER])
    def test_rollback_from_confirmed_onward(self, status):
        assert can_transition(status, S.CLIENT_REVIEW)
        assert is_rollback(status, S.CLIENT_REVIEW)

    def test_forward_into_client_review_is_not_a_rollback(self):
        assert not is_rollback(S.REQUESTED, S.CLIENT_REVIEW)
        assert not is_rollback(S.CLIENT_REVIEW, S.CLIENT_REVIEW)

    def test_allowed_targets(self):
        assert allowed_targets(S.APPROVED) == [S.CLIENT_REVIEW, S.APPROVED, S.WORKING_ON_IT]
        assert allowed_targets(S.REQUESTED) == [S.REQUESTED, S.CLIENT_REVIEW]
        assert allowed_targets(S.HANDOVER) == [S.CLIENT_REVIEW, S.HANDOVER]


class TestStageRules:
    def test_estimate_required_from_confirmed(self):
        assert not requires_estimate(S.REQUESTED)
        assert not requires_estimate(S.CLIENT_REVIEW)
        assert all(requires_estimate(s) for s in STATUS_ORDER[2:])

    def test_closed_stages(self):
        assert is_closed(S.COMPLETED)
        assert is_closed(S.HANDOVER)
        assert not is_closed(S.WORKING_ON_IT)
