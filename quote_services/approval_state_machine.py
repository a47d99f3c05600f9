"""
quote_services.approval_state_machine -- Lifecycle of one quotation approval.

Responsibility:
    Applies requests, approver decisions, cancellations and timeout
    auto-approvals to a single approval.  Thin coordinator: level
    resolution is delegated to the pure engine (``plan_transition``,
    ``steps_due_for_auto_approval``), persistence to ApprovalService.

Architecture position:
    Services layer.  May import from quote_engines/ (pure engines) and
    quote_kernel/ (domain, services).  Runs inside the caller's
    transaction; never commits.

Invariants enforced:
    - A rejected level rejects the approval at once; an approved last level
      approves it; an approved inner level activates the next one.
    - At most one level transition per call: a freshly activated level has
      only PENDING steps.
    - Decision error precedence: not found, already decided, not open,
      not an approver.

Failure modes:
    - ApprovalNotFoundError, AlreadyDecidedError, ApprovalNotOpenError,
      NotAnApproverError, DuplicateApprovalError, QuotationNotEligibleError.
    - PersistenceConflictError when a concurrent writer won the version check.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable
from uuid import UUID

from quote_config.schema import DEFAULT_ELIGIBLE_STATUSES
from quote_engines.approval import (
    TransitionKind,
    plan_transition,
    steps_due_for_auto_approval,
)
from quote_kernel.domain.approval import (
    ApprovalCompleted,
    ApprovalDecision,
    ApprovalEvent,
    ApprovalRequested,
    ApprovalStatus,
    ApprovalWorkflow,
    LevelAdvanced,
    QuotationApproval,
    QuotationSnapshot,
    StepStatus,
)
from quote_kernel.domain.clock import Clock, SystemClock
from quote_kernel.exceptions import (
    AlreadyDecidedError,
    ApprovalNotOpenError,
    NotAnApproverError,
    QuotationNotEligibleError,
)
from quote_kernel.logging_config import get_logger
from quote_kernel.services.approval_service import ApprovalService

logger = get_logger("services.approval_state_machine")

AUTO_APPROVAL_COMMENT = "Auto-approved after {hours}h without decision"


@dataclass(frozen=True)
class TransitionOutcome:
    """Approval state after an operation plus the events it produced."""

    approval: QuotationApproval
    events: tuple[ApprovalEvent, ...] = ()
    resolved_step_ids: tuple[UUID, ...] = ()


def quotation_id_of(snapshot: QuotationSnapshot) -> str:
    quotation_id = snapshot.get("id")
    if quotation_id is None or quotation_id == "":
        raise ValueError("Quotation snapshot has no 'id'")
    return str(quotation_id)


def format_hours(hours: float) -> str:
    return f"{hours:g}"


class ApprovalStateMachine:
    """Drives one approval through its levels within the caller's transaction."""

    def __init__(
        self,
        approval_service: ApprovalService,
        clock: Clock | None = None,
        eligible_statuses: Iterable[str] = DEFAULT_ELIGIBLE_STATUSES,
    ):
        self._approvals = approval_service
        self._clock = clock or SystemClock()
        self._eligible = tuple(s.upper() for s in eligible_statuses)

    # ------------------------------------------------------------------
    # Request
    # ------------------------------------------------------------------

    def request_approval(
        self,
        quotation: QuotationSnapshot,
        workflow: ApprovalWorkflow,
        requested_by_user_id: str,
    ) -> TransitionOutcome:
        quotation_id = quotation_id_of(quotation)
        self._check_eligible(quotation_id, quotation)

        approval = self._approvals.create_approval(
            quotation_id, workflow, requested_by_user_id,
        )
        logger.info(
            "approval_requested",
            extra={
                "approval_id": str(approval.approval_id),
                "quotation_id": quotation_id,
                "workflow_id": workflow.id,
                "requested_by": requested_by_user_id,
                "approvers": list(workflow.levels[0].approver_user_ids),
            },
        )
        event = ApprovalRequested(
            approval_id=approval.approval_id,
            quotation_id=quotation_id,
            occurred_at=approval.requested_at,
        )
        return TransitionOutcome(approval=approval, events=(event,))

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------

    def process_decision(
        self,
        approval_id: UUID,
        approver_user_id: str,
        decision: ApprovalDecision,
        comments: str | None = None,
    ) -> TransitionOutcome:
        approval = self._approvals.get_approval(approval_id, for_update=True)

        step = approval.step_for(approver_user_id)
        if not (approval.is_open and step is not None and step.status == StepStatus.PENDING):
            self._reject_decision(approval, approver_user_id)

        now = self._clock.now()
        approval = self._approvals.record_step_decision(
            approval_id, step.step_id, decision.step_status, comments, now,
        )
        logger.info(
            "approval_decision_recorded",
            extra={
                "approval_id": str(approval_id),
                "step_id": str(step.step_id),
                "approver_user_id": approver_user_id,
                "approval_level": step.level,
                "decision": decision.value,
            },
        )
        return self._resolve_current_level(approval, now, (step.step_id,))

    def _reject_decision(self, approval: QuotationApproval, user_id: str) -> None:
        decided = [
            s for s in approval.steps
            if s.approver_user_id == user_id and s.status != StepStatus.PENDING
        ]
        if decided:
            last = decided[-1]
            raise AlreadyDecidedError(str(approval.approval_id), str(last.step_id), last.status.value)
        if not approval.is_open:
            raise ApprovalNotOpenError(str(approval.approval_id), approval.status.value)
        raise NotAnApproverError(str(approval.approval_id), user_id, approval.current_level)

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    def cancel(self, approval_id: UUID, by_user_id: str) -> TransitionOutcome:
        """Cancel an open approval.  Remaining PENDING steps are left as they are."""
        approval = self._approvals.get_approval(approval_id, for_update=True)
        if not approval.is_open:
            raise ApprovalNotOpenError(str(approval_id), approval.status.value)

        now = self._clock.now()
        approval = self._approvals.complete_approval(
            approval_id, ApprovalStatus.CANCELLED, now, cancelled_by_user_id=by_user_id,
        )
        logger.info(
            "approval_cancelled",
            extra={"approval_id": str(approval_id), "cancelled_by": by_user_id},
        )
        event = ApprovalCompleted(
            approval_id=approval_id, status=ApprovalStatus.CANCELLED, occurred_at=now,
        )
        return TransitionOutcome(approval=approval, events=(event,))

    # ------------------------------------------------------------------
    # Timeouts
    # ------------------------------------------------------------------

    def auto_approve_due(self, approval_id: UUID, now: datetime) -> TransitionOutcome:
        """Auto-approve the current level's overdue steps, if any.

        Re-reads the approval under lock, so a step decided since the sweep
        was planned is not touched again.
        """
        approval = self._approvals.get_approval(approval_id, for_update=True)
        due = steps_due_for_auto_approval(approval, now)
        if not due:
            return TransitionOutcome(approval=approval)

        hours = approval.current_level_config.auto_approval_timeout_hours
        comment = AUTO_APPROVAL_COMMENT.format(hours=format_hours(hours))
        for step in due:
            approval = self._approvals.record_step_decision(
                approval_id, step.step_id, StepStatus.APPROVED, comment, now,
                auto_approved=True,
            )

        resolved = tuple(s.step_id for s in due)
        logger.info(
            "steps_auto_approved",
            extra={
                "approval_id": str(approval_id),
                "approval_level": approval.current_level,
                "step_ids": [str(s) for s in resolved],
                "timeout_hours": hours,
            },
        )
        return self._resolve_current_level(approval, now, resolved)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _resolve_current_level(
        self,
        approval: QuotationApproval,
        now: datetime,
        resolved_step_ids: tuple[UUID, ...],
    ) -> TransitionOutcome:
        statuses = [s.status for s in approval.steps_at(approval.current_level)]
        transition = plan_transition(approval.levels, approval.current_level, statuses)

        if transition.kind == TransitionKind.STAY:
            return TransitionOutcome(approval=approval, resolved_step_ids=resolved_step_ids)

        if transition.kind == TransitionKind.ADVANCE:
            approval = self._approvals.advance_level(
                approval.approval_id, transition.next_level, now,
            )
            event: ApprovalEvent = LevelAdvanced(
                approval_id=approval.approval_id,
                new_level=approval.current_level,
                occurred_at=now,
            )
        else:
            approval = self._approvals.complete_approval(
                approval.approval_id, transition.new_status, now,
            )
            event = ApprovalCompleted(
                approval_id=approval.approval_id,
                status=approval.status,
                occurred_at=now,
            )
        return TransitionOutcome(
            approval=approval, events=(event,), resolved_step_ids=resolved_step_ids,
        )

    def _check_eligible(self, quotation_id: str, quotation: QuotationSnapshot) -> None:
        status = quotation.get("status")
        if status is None:
            return
        if str(status).upper() not in self._eligible:
            raise QuotationNotEligibleError(quotation_id, str(status), self._eligible)
