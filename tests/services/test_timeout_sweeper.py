"""
Tests for the timeout sweeper.

Covers:
- Scenario D: an overdue level is auto-approved and the approval advances
  or completes accordingly
- the next level's timer starts when that level is activated
- idempotence of repeated sweeps at the same instant
- a failing approval does not stop the sweep of the others
- run_periodically tick accounting and error tolerance
"""

import threading
from datetime import timedelta

import pytest

from quote_kernel.domain.approval import (
    ApprovalCompleted,
    ApprovalDecision,
    ApprovalStatus,
    LevelAdvanced,
    StepStatus,
)
from quote_kernel.exceptions import PersistenceConflictError
from quote_services.approval_state_machine import ApprovalStateMachine
from tests.factories import FIXED_NOW, make_level, make_quotation, make_workflow


@pytest.fixture
def timed_workflow():
    return make_workflow(
        "wf-timed",
        levels=(
            make_level(1, approvers=("alice", "bob"), timeout_hours=24),
            make_level(2, approvers=("carol",), require_all=True, timeout_hours=48),
        ),
    )


class TestScenarioD:

    def test_overdue_level_auto_approved_and_advanced(self, engine, timed_workflow, event_sink):
        approval = engine.request_approval(make_quotation("Q-1"), timed_workflow, "rep-1")
        now = FIXED_NOW + timedelta(hours=25)

        resolved = engine.on_timeout_tick(now)

        current = engine.get_approval(approval.approval_id)
        auto_step = current.step_for("alice", level=1)
        assert resolved == [auto_step.step_id]
        assert auto_step.status == StepStatus.APPROVED
        assert auto_step.auto_approved is True
        assert auto_step.comments == "Auto-approved after 24h without decision"
        # Any-approver level: one auto-approval resolves it
        assert current.step_for("bob", level=1).status == StepStatus.PENDING
        assert current.current_level == 2
        assert current.level_activated_at == now
        assert [e.new_level for e in event_sink.of_type(LevelAdvanced)] == [2]

    def test_next_level_timer_starts_at_activation(self, engine, timed_workflow, event_sink):
        approval = engine.request_approval(make_quotation("Q-1"), timed_workflow, "rep-1")
        engine.sweep(FIXED_NOW + timedelta(hours=25))

        assert engine.sweep(FIXED_NOW + timedelta(hours=72)) == []

        engine.sweep(FIXED_NOW + timedelta(hours=73))

        current = engine.get_approval(approval.approval_id)
        assert current.status == ApprovalStatus.APPROVED
        assert current.step_for("carol").comments == "Auto-approved after 48h without decision"
        completed = event_sink.of_type(ApprovalCompleted)
        assert [e.status for e in completed] == [ApprovalStatus.APPROVED]

    def test_require_all_level_approves_every_pending_step(self, engine):
        workflow = make_workflow(
            levels=(make_level(1, approvers=("a", "b", "c"), require_all=True, timeout_hours=1),)
        )
        approval = engine.request_approval(make_quotation(), workflow, "rep-1")
        engine.process_decision(approval.approval_id, "a", ApprovalDecision.APPROVE)

        resolved = engine.sweep(FIXED_NOW + timedelta(hours=2))

        current = engine.get_approval(approval.approval_id)
        assert len(resolved) == 2
        assert current.status == ApprovalStatus.APPROVED
        assert current.step_for("a").auto_approved is False

    def test_level_without_timeout_is_never_swept(self, engine):
        approval = engine.request_approval(make_quotation(), make_workflow(), "rep-1")

        assert engine.sweep(FIXED_NOW + timedelta(days=365)) == []
        assert engine.get_approval(approval.approval_id).status == ApprovalStatus.PENDING


class TestSweepSafety:

    def test_repeated_sweep_is_idempotent(self, engine, timed_workflow, event_sink):
        engine.request_approval(make_quotation("Q-1"), timed_workflow, "rep-1")
        now = FIXED_NOW + timedelta(hours=25)

        first = engine.sweep(now)
        second = engine.sweep(now)

        assert len(first) == 1
        assert second == []
        assert len(event_sink.of_type(LevelAdvanced)) == 1

    def test_decided_approval_not_swept(self, engine, timed_workflow):
        approval = engine.request_approval(make_quotation("Q-1"), timed_workflow, "rep-1")
        engine.cancel(approval.approval_id, "rep-1")

        assert engine.sweep(FIXED_NOW + timedelta(hours=25)) == []

    def test_failure_on_one_approval_does_not_stop_sweep(
        self, engine, timed_workflow, monkeypatch, captured_logs,
    ):
        broken = engine.request_approval(make_quotation("Q-1"), timed_workflow, "rep-1")
        healthy = engine.request_approval(make_quotation("Q-2"), timed_workflow, "rep-1")
        original = ApprovalStateMachine.auto_approve_due

        def flaky(self, approval_id, now):
            if approval_id == broken.approval_id:
                raise PersistenceConflictError("QuotationApproval", str(approval_id))
            return original(self, approval_id, now)

        monkeypatch.setattr(ApprovalStateMachine, "auto_approve_due", flaky)

        resolved = engine.sweep(FIXED_NOW + timedelta(hours=25))

        assert len(resolved) == 1
        assert engine.get_approval(healthy.approval_id).current_level == 2
        assert engine.get_approval(broken.approval_id).current_level == 1

        failures = [r for r in captured_logs.records if r["message"] == "sweep_approval_failed"]
        assert len(failures) == 1
        assert failures[0]["approval_id"] == str(broken.approval_id)
        assert failures[0]["error_code"] == "PERSISTENCE_CONFLICT"
        summary = [r for r in captured_logs.records if r["message"] == "sweep_completed"]
        assert summary[-1]["failures"] == 1
        assert summary[-1]["steps_resolved"] == 1


class TestRunPeriodically:

    def test_runs_requested_ticks(self, engine):
        assert engine.sweeper.run_periodically(0, threading.Event(), max_ticks=3) == 3

    def test_stops_when_event_set(self, engine):
        stop = threading.Event()
        stop.set()

        assert engine.sweeper.run_periodically(0, stop) == 0

    def test_tick_failure_is_logged_and_loop_continues(self, engine, monkeypatch, captured_logs):
        def boom(now=None):
            raise RuntimeError("database unavailable")

        monkeypatch.setattr(engine.sweeper, "sweep", boom)

        ticks = engine.sweeper.run_periodically(0, threading.Event(), max_ticks=2)

        assert ticks == 2
        failures = [r for r in captured_logs.records if r["message"] == "sweep_tick_failed"]
        assert len(failures) == 2
        assert failures[0]["exc_type"] == "RuntimeError"
