"""
Module: quote_kernel.selectors.approval_selector
Responsibility: Read model over quotation approvals: single lookups, the
    per-quotation status used by dashboards, the approver inbox and the
    aggregated dashboard.
Architecture position: Kernel > Selectors.  Read-only; returns frozen DTOs.

Invariants enforced:
    - Read-only: no add/delete/flush/commit.
    - "Today" is the UTC calendar day containing ``as_of``.
    - The dashboard average spans every APPROVED or REJECTED approval;
      cancelled ones are excluded.

Failure modes:
    - ApprovalNotFoundError from ``get_approval`` for an unknown id.
"""

from __future__ import annotations

from datetime import datetime, time, timedelta, timezone
from uuid import UUID

from sqlalchemy import func, select

from quote_kernel.domain.approval import (
    ApprovalDashboard,
    ApprovalStatus,
    QuotationApproval,
    StepStatus,
    WorkflowPendingStats,
)
from quote_kernel.exceptions import ApprovalNotFoundError
from quote_kernel.models.approval import ApprovalStepModel, QuotationApprovalModel
from quote_kernel.selectors.base import BaseSelector

RECENT_APPROVALS_LIMIT = 10


class ApprovalSelector(BaseSelector[QuotationApprovalModel]):
    """Queries for approval status, approver inboxes and dashboards."""

    def get_approval(self, approval_id: UUID) -> QuotationApproval:
        model = self.session.get(QuotationApprovalModel, approval_id)
        if model is None:
            raise ApprovalNotFoundError(str(approval_id))
        return model.to_dto()

    def find_approval(self, approval_id: UUID) -> QuotationApproval | None:
        model = self.session.get(QuotationApprovalModel, approval_id)
        return model.to_dto() if model is not None else None

    def get_approval_status(self, quotation_id: str) -> QuotationApproval | None:
        """The open approval for a quotation, else its most recent one."""
        open_model = self.session.execute(
            select(QuotationApprovalModel).where(
                QuotationApprovalModel.quotation_id == quotation_id,
                QuotationApprovalModel.status == ApprovalStatus.PENDING.value,
            )
        ).scalar_one_or_none()
        if open_model is not None:
            return open_model.to_dto()

        latest = self.session.execute(
            select(QuotationApprovalModel)
            .where(QuotationApprovalModel.quotation_id == quotation_id)
            .order_by(QuotationApprovalModel.requested_at.desc())
            .limit(1)
        ).scalar_one_or_none()
        return latest.to_dto() if latest is not None else None

    def list_for_quotation(self, quotation_id: str) -> list[QuotationApproval]:
        """Full approval history of a quotation, oldest first."""
        models = self.session.execute(
            select(QuotationApprovalModel)
            .where(QuotationApprovalModel.quotation_id == quotation_id)
            .order_by(QuotationApprovalModel.requested_at)
        ).scalars().all()
        return [m.to_dto() for m in models]

    def open_approvals(self, activated_before: datetime | None = None) -> list[QuotationApproval]:
        """PENDING approvals, longest-waiting level first."""
        stmt = select(QuotationApprovalModel).where(
            QuotationApprovalModel.status == ApprovalStatus.PENDING.value,
        )
        if activated_before is not None:
            stmt = stmt.where(QuotationApprovalModel.level_activated_at <= activated_before)
        stmt = stmt.order_by(QuotationApprovalModel.level_activated_at, QuotationApprovalModel.id)
        return [m.to_dto() for m in self.session.execute(stmt).scalars().all()]

    def pending_for_user(self, user_id: str) -> list[QuotationApproval]:
        """Open approvals where ``user_id`` holds a PENDING step at the current level."""
        stmt = (
            select(QuotationApprovalModel)
            .join(ApprovalStepModel, ApprovalStepModel.approval_id == QuotationApprovalModel.id)
            .where(
                QuotationApprovalModel.status == ApprovalStatus.PENDING.value,
                ApprovalStepModel.approver_user_id == user_id,
                ApprovalStepModel.status == StepStatus.PENDING.value,
                ApprovalStepModel.level == QuotationApprovalModel.current_level,
            )
            .order_by(QuotationApprovalModel.requested_at, QuotationApprovalModel.id)
        )
        models = self.session.execute(stmt).scalars().unique().all()
        return [m.to_dto() for m in models]

    def dashboard(self, as_of: datetime, user_id: str | None = None) -> ApprovalDashboard:
        """Aggregate counts for the approvals dashboard."""
        day_start = datetime.combine(
            as_of.astimezone(timezone.utc).date(), time.min, tzinfo=timezone.utc,
        )
        day_end = day_start + timedelta(days=1)

        pending = self._count(QuotationApprovalModel.status == ApprovalStatus.PENDING.value)
        approved_today = self._count(
            QuotationApprovalModel.status == ApprovalStatus.APPROVED.value,
            QuotationApprovalModel.completed_at >= day_start,
            QuotationApprovalModel.completed_at < day_end,
        )
        rejected_today = self._count(
            QuotationApprovalModel.status == ApprovalStatus.REJECTED.value,
            QuotationApprovalModel.completed_at >= day_start,
            QuotationApprovalModel.completed_at < day_end,
        )
        my_pending = len(self.pending_for_user(user_id)) if user_id else 0

        decided = (
            QuotationApprovalModel.status.in_(
                [ApprovalStatus.APPROVED.value, ApprovalStatus.REJECTED.value]
            ),
            QuotationApprovalModel.completed_at.is_not(None),
        )
        recent = self.session.execute(
            select(QuotationApprovalModel)
            .where(*decided)
            .order_by(QuotationApprovalModel.completed_at.desc())
            .limit(RECENT_APPROVALS_LIMIT)
        ).scalars().all()

        # Computed in Python: interval arithmetic differs between SQLite and PostgreSQL
        spans = self.session.execute(
            select(QuotationApprovalModel.requested_at, QuotationApprovalModel.completed_at)
            .where(*decided)
        ).all()
        durations = [
            (completed_at - requested_at).total_seconds() / 3600.0
            for requested_at, completed_at in spans
        ]
        average_hours = round(sum(durations) / len(durations), 2) if durations else 0.0

        stats_rows = self.session.execute(
            select(
                QuotationApprovalModel.workflow_id,
                QuotationApprovalModel.workflow_name,
                func.count(QuotationApprovalModel.id),
            )
            .where(QuotationApprovalModel.status == ApprovalStatus.PENDING.value)
            .group_by(QuotationApprovalModel.workflow_id, QuotationApprovalModel.workflow_name)
            .order_by(QuotationApprovalModel.workflow_id)
        ).all()

        return ApprovalDashboard(
            pending_approvals=pending,
            my_pending_approvals=my_pending,
            approved_today=approved_today,
            rejected_today=rejected_today,
            average_approval_hours=average_hours,
            recent_approvals=tuple(m.to_dto() for m in recent),
            workflow_stats=tuple(
                WorkflowPendingStats(workflow_id=wid, workflow_name=name, pending_count=count)
                for wid, name, count in stats_rows
            ),
        )

    def _count(self, *criteria) -> int:
        return self.session.execute(
            select(func.count(QuotationApprovalModel.id)).where(*criteria)
        ).scalar_one()
