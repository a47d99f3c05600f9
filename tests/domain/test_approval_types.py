"""
Tests for approval domain types.

Covers:
- ApprovalLevel validation and approver de-duplication
- ApprovalWorkflow validation (contiguous levels, priority type) and ordering
- ConditionOperator parsing
- QuotationApproval helpers
- event types and DeterministicClock
"""

from datetime import timedelta
from uuid import uuid4

import pytest

from quote_kernel.domain.approval import (
    ApprovalCompleted,
    ApprovalDecision,
    ApprovalLevel,
    ApprovalRequested,
    ApprovalStatus,
    ApprovalStep,
    ApprovalWorkflow,
    ConditionOperator,
    LevelAdvanced,
    QuotationApproval,
    StepStatus,
)
from quote_kernel.domain.clock import DeterministicClock
from quote_kernel.exceptions import ConfigurationError
from tests.factories import FIXED_NOW, make_level, make_workflow


class TestApprovalLevel:

    def test_level_must_be_positive(self):
        with pytest.raises(ConfigurationError):
            make_level(level=0)

    def test_bool_is_not_a_level_number(self):
        with pytest.raises(ConfigurationError):
            make_level(level=True)

    def test_requires_approvers(self):
        with pytest.raises(ConfigurationError):
            make_level(approvers=())

    def test_duplicate_approvers_collapsed_in_order(self):
        level = make_level(approvers=("bob", "alice", "bob"))
        assert level.approver_user_ids == ("bob", "alice")

    @pytest.mark.parametrize("timeout", [0, -1, True])
    def test_timeout_must_be_positive_number(self, timeout):
        with pytest.raises(ConfigurationError):
            make_level(timeout_hours=timeout)

    def test_timeout_as_timedelta(self):
        assert make_level(timeout_hours=1.5).timeout == timedelta(minutes=90)
        assert make_level().timeout is None

    def test_dict_round_trip_preserves_snapshot(self):
        level = make_level(level=2, approvers=("x", "y"), require_all=True, timeout_hours=24)
        assert ApprovalLevel.from_dict(level.to_dict()) == level

    @pytest.mark.parametrize("flag", ["false", 1, None])
    def test_require_all_must_be_boolean(self, flag):
        with pytest.raises(ConfigurationError):
            ApprovalLevel(level=1, name="L1", approver_user_ids=("a",), require_all_approvers=flag)


class TestApprovalWorkflow:

    def test_requires_a_level(self):
        with pytest.raises(ConfigurationError) as exc_info:
            ApprovalWorkflow(id="wf", name="wf", levels=())
        assert exc_info.value.workflow_id == "wf"

    def test_is_active_must_be_boolean(self):
        with pytest.raises(ConfigurationError) as exc_info:
            ApprovalWorkflow(
                id="wf", name="wf", levels=(make_level(1),), is_active="false",
            )
        assert exc_info.value.workflow_id == "wf"

    def test_levels_must_be_contiguous_from_one(self):
        with pytest.raises(ConfigurationError) as exc_info:
            make_workflow(levels=(make_level(1), make_level(3)))
        assert exc_info.value.workflow_id == "wf-large"

    def test_levels_sorted_on_construction(self):
        wf = make_workflow(levels=(make_level(2), make_level(1)))
        assert [lvl.level for lvl in wf.levels] == [1, 2]
        assert wf.last_level == 2
        assert wf.level(2).level == 2
        assert wf.level(3) is None

    def test_priority_must_be_int(self):
        with pytest.raises(ConfigurationError):
            make_workflow(priority="high")


class TestConditionOperator:

    def test_parse_case_insensitive(self):
        assert ConditionOperator.parse(" GTE ") is ConditionOperator.GTE

    def test_parse_unknown(self):
        with pytest.raises(ConfigurationError):
            ConditionOperator.parse("like")


class TestApprovalDecision:

    def test_maps_to_step_status(self):
        assert ApprovalDecision.APPROVE.step_status is StepStatus.APPROVED
        assert ApprovalDecision.REJECT.step_status is StepStatus.REJECTED


class TestQuotationApproval:

    def _approval(self, status=ApprovalStatus.PENDING):
        approval_id = uuid4()
        levels = (make_level(1, approvers=("a", "b")), make_level(2, approvers=("a",)))
        steps = (
            ApprovalStep(uuid4(), approval_id, 1, "a", StepStatus.APPROVED),
            ApprovalStep(uuid4(), approval_id, 1, "b"),
            ApprovalStep(uuid4(), approval_id, 2, "a"),
        )
        return QuotationApproval(
            approval_id=approval_id,
            quotation_id="Q-1",
            workflow_id="wf",
            workflow_name="wf",
            current_level=2,
            status=status,
            requested_by_user_id="rep",
            requested_at=FIXED_NOW,
            level_activated_at=FIXED_NOW,
            levels=levels,
            steps=steps,
        )

    def test_step_for_defaults_to_current_level(self):
        approval = self._approval()
        assert approval.step_for("a").level == 2
        assert approval.step_for("a", level=1).status is StepStatus.APPROVED
        assert approval.step_for("b") is None

    def test_current_level_config(self):
        assert self._approval().current_level_config.level == 2

    def test_is_open(self):
        assert self._approval().is_open
        assert not self._approval(ApprovalStatus.CANCELLED).is_open


class TestEvents:

    def test_event_type_names(self):
        approval_id = uuid4()
        assert ApprovalRequested(approval_id, "Q-1").event_type == "ApprovalRequested"
        assert LevelAdvanced(approval_id, 2).event_type == "LevelAdvanced"
        assert ApprovalCompleted(approval_id, ApprovalStatus.APPROVED).event_type == "ApprovalCompleted"


class TestDeterministicClock:

    def test_advance_hours(self):
        clock = DeterministicClock(FIXED_NOW)
        assert clock.advance_hours(25) == FIXED_NOW + timedelta(hours=25)
        assert clock.now() == FIXED_NOW + timedelta(hours=25)

    def test_tick_and_set_time(self):
        clock = DeterministicClock(FIXED_NOW)
        assert clock.tick() == FIXED_NOW + timedelta(seconds=1)
        clock.set_time(FIXED_NOW)
        assert clock.now() == FIXED_NOW
