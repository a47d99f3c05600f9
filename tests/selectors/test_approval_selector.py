"""
Tests for ApprovalSelector read queries.

Covers:
- lookups by id
- status by quotation: open approval first, else the most recent one
- history and open-approval listing
- dashboard on an empty database and the UTC day window
"""

from datetime import timedelta
from uuid import uuid4

import pytest

from quote_kernel.domain.approval import ApprovalStatus
from quote_kernel.exceptions import ApprovalNotFoundError
from quote_kernel.selectors.approval_selector import RECENT_APPROVALS_LIMIT, ApprovalSelector
from quote_kernel.services.approval_service import ApprovalService
from tests.factories import FIXED_NOW, make_level, make_workflow


@pytest.fixture
def service(session, deterministic_clock):
    return ApprovalService(session, deterministic_clock)


@pytest.fixture
def selector(session):
    return ApprovalSelector(session)


WORKFLOW = make_workflow("wf-sel", levels=(make_level(1, approvers=("alice",)),))


class TestLookups:

    def test_get_unknown_raises(self, selector):
        with pytest.raises(ApprovalNotFoundError):
            selector.get_approval(uuid4())

    def test_find_unknown_returns_none(self, selector):
        assert selector.find_approval(uuid4()) is None

    def test_get_returns_dto(self, service, selector):
        created = service.create_approval("Q-1", WORKFLOW, "rep-1")

        assert selector.get_approval(created.approval_id) == created


class TestQuotationStatus:

    def test_open_approval_preferred(self, service, selector, deterministic_clock):
        old = service.create_approval("Q-1", WORKFLOW, "rep-1")
        service.complete_approval(old.approval_id, ApprovalStatus.CANCELLED)
        deterministic_clock.advance_hours(1)
        current = service.create_approval("Q-1", WORKFLOW, "rep-1")

        assert selector.get_approval_status("Q-1").approval_id == current.approval_id

    def test_most_recent_closed_approval(self, service, selector, deterministic_clock):
        first = service.create_approval("Q-1", WORKFLOW, "rep-1")
        service.complete_approval(first.approval_id, ApprovalStatus.REJECTED)
        deterministic_clock.advance_hours(1)
        second = service.create_approval("Q-1", WORKFLOW, "rep-1")
        service.complete_approval(second.approval_id, ApprovalStatus.APPROVED)

        status = selector.get_approval_status("Q-1")

        assert status.approval_id == second.approval_id
        assert status.status == ApprovalStatus.APPROVED
        assert [a.approval_id for a in selector.list_for_quotation("Q-1")] == [
            first.approval_id,
            second.approval_id,
        ]

    def test_unknown_quotation(self, selector):
        assert selector.get_approval_status("Q-404") is None


class TestOpenApprovals:

    def test_longest_waiting_first(self, service, selector, deterministic_clock):
        older = service.create_approval("Q-1", WORKFLOW, "rep-1")
        deterministic_clock.advance_hours(3)
        newer = service.create_approval("Q-2", WORKFLOW, "rep-1")

        assert [a.approval_id for a in selector.open_approvals()] == [
            older.approval_id,
            newer.approval_id,
        ]
        cutoff = FIXED_NOW + timedelta(hours=1)
        assert [a.approval_id for a in selector.open_approvals(activated_before=cutoff)] == [
            older.approval_id
        ]


class TestDashboard:

    def test_empty(self, selector):
        dashboard = selector.dashboard(FIXED_NOW, user_id="alice")

        assert dashboard.pending_approvals == 0
        assert dashboard.my_pending_approvals == 0
        assert dashboard.approved_today == 0
        assert dashboard.rejected_today == 0
        assert dashboard.average_approval_hours == 0.0
        assert dashboard.recent_approvals == ()
        assert dashboard.workflow_stats == ()

    def test_today_is_the_utc_day_of_as_of(self, service, selector):
        approval = service.create_approval("Q-1", WORKFLOW, "rep-1")
        service.complete_approval(
            approval.approval_id, ApprovalStatus.APPROVED, FIXED_NOW + timedelta(hours=6),
        )

        same_day = selector.dashboard(FIXED_NOW + timedelta(hours=11))
        next_day = selector.dashboard(FIXED_NOW + timedelta(hours=12))

        assert same_day.approved_today == 1
        assert next_day.approved_today == 0
        assert next_day.average_approval_hours == 6.0

    def test_recent_is_capped_and_newest_first(self, service, selector):
        for i in range(RECENT_APPROVALS_LIMIT + 2):
            approval = service.create_approval(f"Q-{i}", WORKFLOW, "rep-1")
            service.complete_approval(
                approval.approval_id, ApprovalStatus.APPROVED, FIXED_NOW + timedelta(hours=i + 1),
            )

        dashboard = selector.dashboard(FIXED_NOW)

        recent = [a.quotation_id for a in dashboard.recent_approvals]
        assert len(recent) == RECENT_APPROVALS_LIMIT
        assert recent[0] == f"Q-{RECENT_APPROVALS_LIMIT + 1}"
        assert "Q-0" not in recent

    def test_average_covers_approved_and_rejected(self, service, selector):
        approved = service.create_approval("Q-1", WORKFLOW, "rep-1")
        service.complete_approval(
            approved.approval_id, ApprovalStatus.APPROVED, FIXED_NOW + timedelta(hours=2),
        )
        rejected = service.create_approval("Q-2", WORKFLOW, "rep-1")
        service.complete_approval(
            rejected.approval_id, ApprovalStatus.REJECTED, FIXED_NOW + timedelta(hours=4),
        )
        cancelled = service.create_approval("Q-3", WORKFLOW, "rep-1")
        service.complete_approval(
            cancelled.approval_id, ApprovalStatus.CANCELLED, FIXED_NOW + timedelta(hours=40),
        )

        assert selector.dashboard(FIXED_NOW).average_approval_hours == 3.0

    def test_my_pending_requires_user(self, service, selector):
        service.create_approval("Q-1", WORKFLOW, "rep-1")

        assert selector.dashboard(FIXED_NOW).my_pending_approvals == 0
        assert selector.dashboard(FIXED_NOW, user_id="alice").my_pending_approvals == 1
