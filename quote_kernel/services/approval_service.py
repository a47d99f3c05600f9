"""
quote_kernel.services.approval_service -- Approval persistence primitives.

Responsibility:
    Reads and writes ``quotation_approvals`` / ``approval_steps`` rows:
    creation with level-1 step materialisation, step decisions, level
    advancement, terminal transitions and cancellation.  Rule evaluation
    (which transition to take) lives in ``quote_engines.approval`` and is
    driven by the approval state machine in ``quote_services``.

Architecture position:
    Kernel > Services.  May import from domain/, models/, db/, utils/.

Invariants enforced:
    - Lifecycle tables: every status change is checked against
      ``APPROVAL_TRANSITIONS`` / ``STEP_TRANSITIONS`` before it is written.
    - One open approval per quotation: pre-check plus the partial unique
      index; a lost race surfaces as DuplicateApprovalError.
    - Workflow snapshot: levels are copied into the approval at creation
      together with a SHA-256 ``workflow_hash``.
    - Per-approval serialisation: rows are loaded FOR UPDATE and every
      mutation touches ``last_activity_at`` so the version column is
      checked and bumped.
    - Flush only: the caller owns commit/rollback.

Failure modes:
    - ApprovalNotFoundError if the approval id is unknown.
    - DuplicateApprovalError on a second open approval for a quotation.
    - InvalidApprovalTransitionError on an illegal status change.
    - PersistenceConflictError when the optimistic version check fails.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from quote_kernel.domain.approval import (
    APPROVAL_TRANSITIONS,
    STEP_TRANSITIONS,
    ApprovalLevel,
    ApprovalStatus,
    ApprovalWorkflow,
    QuotationApproval,
    StepStatus,
)
from quote_kernel.domain.clock import Clock, SystemClock
from quote_kernel.exceptions import (
    ApprovalNotFoundError,
    DuplicateApprovalError,
    InvalidApprovalTransitionError,
    PersistenceConflictError,
)
from quote_kernel.logging_config import get_logger
from quote_kernel.models.approval import ApprovalStepModel, QuotationApprovalModel
from quote_kernel.services.base import BaseService
from quote_kernel.utils.hashing import hash_payload

logger = get_logger("services.approval_service")


def compute_workflow_hash(workflow: ApprovalWorkflow) -> str:
    """Hash of the level configuration an approval was started with."""
    return hash_payload({
        "workflow_id": workflow.id,
        "levels": [lvl.to_dict() for lvl in workflow.levels],
    })


class ApprovalService(BaseService[QuotationApprovalModel]):
    """Manages approval and step rows within the caller's transaction."""

    def __init__(self, session: Session, clock: Clock | None = None) -> None:
        super().__init__(session)
        self._clock = clock or SystemClock()

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_approval(
        self,
        quotation_id: str,
        workflow: ApprovalWorkflow,
        requested_by_user_id: str,
    ) -> QuotationApproval:
        """Create a PENDING approval at level 1 with its steps materialised."""
        existing = self.find_open_model(quotation_id)
        if existing is not None:
            raise DuplicateApprovalError(quotation_id, str(existing.id))

        now = self._clock.now()
        model = QuotationApprovalModel(
            id=uuid4(),
            quotation_id=quotation_id,
            workflow_id=workflow.id,
            workflow_name=workflow.name,
            workflow_hash=compute_workflow_hash(workflow),
            levels_snapshot=[lvl.to_dict() for lvl in workflow.levels],
            current_level=1,
            status=ApprovalStatus.PENDING.value,
            requested_by_user_id=requested_by_user_id,
            requested_at=now,
            level_activated_at=now,
            last_activity_at=now,
        )
        self.session.add(model)
        self._materialize_steps(model, workflow.levels[0], now)

        try:
            self.session.flush()
        except IntegrityError as exc:
            logger.warning(
                "approval_create_conflict",
                extra={"quotation_id": quotation_id, "error": str(exc.orig)},
            )
            raise DuplicateApprovalError(quotation_id) from exc

        logger.info(
            "approval_created",
            extra={
                "approval_id": str(model.id),
                "quotation_id": quotation_id,
                "workflow_id": workflow.id,
                "levels": len(workflow.levels),
            },
        )
        return model.to_dto()

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def record_step_decision(
        self,
        approval_id: UUID,
        step_id: UUID,
        status: StepStatus,
        comments: str | None = None,
        decided_at: datetime | None = None,
        auto_approved: bool = False,
    ) -> QuotationApproval:
        """Move one PENDING step to APPROVED or REJECTED."""
        model = self.load_model(approval_id, for_update=True)
        step = next((s for s in model.steps if s.id == step_id), None)
        if step is None:
            raise ApprovalNotFoundError(f"{approval_id}/step/{step_id}")

        current = StepStatus(step.status)
        if status not in STEP_TRANSITIONS.get(current, frozenset()):
            raise InvalidApprovalTransitionError(current.value, status.value)

        when = decided_at or self._clock.now()
        step.status = status.value
        step.comments = comments
        step.decided_at = when
        step.auto_approved = auto_approved
        model.last_activity_at = when
        self._flush(model)
        return model.to_dto()

    def advance_level(
        self,
        approval_id: UUID,
        next_level: int,
        activated_at: datetime | None = None,
    ) -> QuotationApproval:
        """Activate ``next_level`` and materialise its PENDING steps."""
        model = self.load_model(approval_id, for_update=True)
        self._require_transition(model, ApprovalStatus.PENDING)
        if next_level != model.current_level + 1:
            raise InvalidApprovalTransitionError(
                f"level {model.current_level}", f"level {next_level}",
            )
        config = next(
            (ApprovalLevel.from_dict(d) for d in model.levels_snapshot if d["level"] == next_level),
            None,
        )
        if config is None:
            raise InvalidApprovalTransitionError(
                f"level {model.current_level}", f"level {next_level} (not in workflow)",
            )

        when = activated_at or self._clock.now()
        model.current_level = next_level
        model.level_activated_at = when
        model.last_activity_at = when
        self._materialize_steps(model, config, when)
        self._flush(model)

        logger.info(
            "approval_level_advanced",
            extra={"approval_id": str(approval_id), "new_level": next_level},
        )
        return model.to_dto()

    def complete_approval(
        self,
        approval_id: UUID,
        status: ApprovalStatus,
        completed_at: datetime | None = None,
        cancelled_by_user_id: str | None = None,
    ) -> QuotationApproval:
        """Move the approval to a terminal status, setting ``completed_at``."""
        model = self.load_model(approval_id, for_update=True)
        self._require_transition(model, status)

        when = completed_at or self._clock.now()
        model.status = status.value
        model.completed_at = when
        model.last_activity_at = when
        if status == ApprovalStatus.CANCELLED:
            model.cancelled_by_user_id = cancelled_by_user_id
        self._flush(model)

        logger.info(
            "approval_completed",
            extra={
                "approval_id": str(approval_id),
                "quotation_id": model.quotation_id,
                "status": status.value,
            },
        )
        return model.to_dto()

    # ------------------------------------------------------------------
    # Reads used by the write path
    # ------------------------------------------------------------------

    def get_approval(self, approval_id: UUID, for_update: bool = False) -> QuotationApproval:
        return self.load_model(approval_id, for_update=for_update).to_dto()

    def find_open_model(self, quotation_id: str) -> QuotationApprovalModel | None:
        return self.session.execute(
            select(QuotationApprovalModel).where(
                QuotationApprovalModel.quotation_id == quotation_id,
                QuotationApprovalModel.status == ApprovalStatus.PENDING.value,
            )
        ).scalar_one_or_none()

    def list_open_approval_ids(self, activated_before: datetime | None = None) -> list[UUID]:
        """Ids of PENDING approvals, optionally only those activated before a time."""
        stmt = select(QuotationApprovalModel.id).where(
            QuotationApprovalModel.status == ApprovalStatus.PENDING.value,
        )
        if activated_before is not None:
            stmt = stmt.where(QuotationApprovalModel.level_activated_at <= activated_before)
        stmt = stmt.order_by(QuotationApprovalModel.level_activated_at)
        return list(self.session.execute(stmt).scalars().all())

    def load_model(self, approval_id: UUID, for_update: bool = False) -> QuotationApprovalModel:
        """Load approval model by id, raise if not found."""
        stmt = select(QuotationApprovalModel).where(QuotationApprovalModel.id == approval_id)
        if for_update:
            stmt = stmt.with_for_update()
        model = self.session.execute(stmt).scalar_one_or_none()
        if model is None:
            raise ApprovalNotFoundError(str(approval_id))
        return model

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _materialize_steps(
        self,
        model: QuotationApprovalModel,
        level: ApprovalLevel,
        created_at: datetime,
    ) -> None:
        for seq, approver in enumerate(level.approver_user_ids):
            model.steps.append(
                ApprovalStepModel(
                    id=uuid4(),
                    level=level.level,
                    seq=seq,
                    approver_user_id=approver,
                    status=StepStatus.PENDING.value,
                    created_at=created_at,
                    auto_approved=False,
                )
            )

    def _require_transition(
        self,
        model: QuotationApprovalModel,
        new_status: ApprovalStatus,
    ) -> None:
        current = ApprovalStatus(model.status)
        if new_status == ApprovalStatus.PENDING and current == ApprovalStatus.PENDING:
            return
        if new_status not in APPROVAL_TRANSITIONS.get(current, frozenset()):
            raise InvalidApprovalTransitionError(current.value, new_status.value)

    def _flush(self, model: QuotationApprovalModel) -> None:
        try:
            self.session.flush()
        except StaleDataError as exc:
            logger.warning(
                "approval_version_conflict",
                extra={"approval_id": str(model.id)},
            )
            raise PersistenceConflictError("QuotationApproval", str(model.id)) from exc
