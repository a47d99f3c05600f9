"""
Module: quote_kernel.models.approval
Responsibility: ORM persistence for quotation approvals and their steps.

Architecture position: Kernel > Models.  May import from db/base.py and
    exceptions.py only (domain DTOs are imported lazily in to_dto()).

Invariants enforced:
    - Lifecycle: DB check constraints limit status values; the service
      layer enforces the transition tables.
    - One open approval per quotation: partial UNIQUE index on
      quotation_id WHERE status = 'PENDING'.
    - One slot per approver per level: UNIQUE(approval_id, level,
      approver_user_id).
    - Optimistic concurrency: ``version`` is SQLAlchemy's version_id_col;
      every UPDATE checks and bumps it.
    - Audit trail: approvals and steps are never deleted, and a decided
      step can no longer change.

Failure modes:
    - IntegrityError on a second PENDING approval for the same quotation.
    - StaleDataError when the version check fails on flush.
    - ImmutableRecordError on DELETE, or on UPDATE of a decided step.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any
from uuid import UUID

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    event,
    inspect,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from quote_kernel.db.base import Base, UUIDString
from quote_kernel.exceptions import ImmutableRecordError

if TYPE_CHECKING:
    from quote_kernel.domain.approval import ApprovalStep, QuotationApproval

_OPEN_PREDICATE = text("status = 'PENDING'")


class QuotationApprovalModel(Base):
    """Persistent approval instance for one quotation.

    Contract:
        ``levels_snapshot`` is written once at creation and drives all level
        progression.  Terminal statuses (APPROVED, REJECTED, CANCELLED) are
        final; ``completed_at`` is set in the same flush as the terminal
        status.
    """

    __tablename__ = "quotation_approvals"

    __table_args__ = (
        CheckConstraint(
            "status IN ('PENDING', 'APPROVED', 'REJECTED', 'CANCELLED')",
            name="ck_quotation_approvals_valid_status",
        ),
        CheckConstraint(
            "current_level >= 1",
            name="ck_quotation_approvals_level_positive",
        ),
        Index(
            "ix_quotation_approvals_open_unique",
            "quotation_id",
            unique=True,
            postgresql_where=_OPEN_PREDICATE,
            sqlite_where=_OPEN_PREDICATE,
        ),
        Index(
            "ix_quotation_approvals_quotation",
            "quotation_id", "requested_at",
        ),
        # Sweeper scan
        Index(
            "ix_quotation_approvals_status_activated",
            "status", "level_activated_at",
        ),
    )

    quotation_id: Mapped[str] = mapped_column(String(100), nullable=False)
    workflow_id: Mapped[str] = mapped_column(String(100), nullable=False)
    workflow_name: Mapped[str] = mapped_column(String(200), nullable=False)
    workflow_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    levels_snapshot: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False)
    current_level: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="PENDING")
    requested_by_user_id: Mapped[str] = mapped_column(String(100), nullable=False)
    requested_at: Mapped[datetime] = mapped_column(nullable=False)
    level_activated_at: Mapped[datetime] = mapped_column(nullable=False)
    last_activity_at: Mapped[datetime] = mapped_column(nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    cancelled_by_user_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    steps: Mapped[list["ApprovalStepModel"]] = relationship(
        "ApprovalStepModel",
        back_populates="approval",
        order_by=lambda: [ApprovalStepModel.level, ApprovalStepModel.seq],
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return (
            f"<QuotationApproval {self.id} quotation={self.quotation_id} "
            f"level={self.current_level} status={self.status}>"
        )

    def to_dto(self) -> QuotationApproval:
        """Convert ORM model to frozen domain DTO."""
        from quote_kernel.domain.approval import (
            ApprovalLevel,
            ApprovalStatus,
            QuotationApproval as QuotationApprovalDTO,
        )

        return QuotationApprovalDTO(
            approval_id=self.id,
            quotation_id=self.quotation_id,
            workflow_id=self.workflow_id,
            workflow_name=self.workflow_name,
            current_level=self.current_level,
            status=ApprovalStatus(self.status),
            requested_by_user_id=self.requested_by_user_id,
            requested_at=self.requested_at,
            level_activated_at=self.level_activated_at,
            completed_at=self.completed_at,
            cancelled_by_user_id=self.cancelled_by_user_id,
            workflow_hash=self.workflow_hash,
            version=self.version,
            levels=tuple(ApprovalLevel.from_dict(d) for d in self.levels_snapshot),
            steps=tuple(s.to_dto() for s in self.steps),
        )


class ApprovalStepModel(Base):
    """Persistent decision slot for one approver at one level.

    Contract:
        Created PENDING when its level activates.  Moves to APPROVED or
        REJECTED exactly once; afterwards the row is frozen.
    """

    __tablename__ = "approval_steps"

    __table_args__ = (
        CheckConstraint(
            "status IN ('PENDING', 'APPROVED', 'REJECTED')",
            name="ck_approval_steps_valid_status",
        ),
        UniqueConstraint(
            "approval_id", "level", "approver_user_id",
            name="uq_approval_steps_slot",
        ),
        Index("ix_approval_steps_approver_status", "approver_user_id", "status"),
    )

    approval_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("quotation_approvals.id"),
        nullable=False,
        index=True,
    )
    level: Mapped[int] = mapped_column(Integer, nullable=False)
    # Position within the level's approver list; stable tie-break for ordering
    seq: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    approver_user_id: Mapped[str] = mapped_column(String(100), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="PENDING")
    comments: Mapped[str | None] = mapped_column(Text, nullable=True)
    decided_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(nullable=False)
    auto_approved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    approval: Mapped["QuotationApprovalModel"] = relationship(
        "QuotationApprovalModel",
        back_populates="steps",
    )

    def __repr__(self) -> str:
        return (
            f"<ApprovalStep {self.id} approval={self.approval_id} "
            f"level={self.level} approver={self.approver_user_id} status={self.status}>"
        )

    def to_dto(self) -> ApprovalStep:
        """Convert ORM model to frozen domain DTO."""
        from quote_kernel.domain.approval import (
            ApprovalStep as ApprovalStepDTO,
            StepStatus,
        )

        return ApprovalStepDTO(
            step_id=self.id,
            approval_id=self.approval_id,
            level=self.level,
            approver_user_id=self.approver_user_id,
            status=StepStatus(self.status),
            comments=self.comments,
            decided_at=self.decided_at,
            created_at=self.created_at,
            auto_approved=self.auto_approved,
        )


# =============================================================================
# ORM-Level Audit Trail Protection
# =============================================================================


@event.listens_for(QuotationApprovalModel, "before_delete")
def prevent_approval_delete(mapper, connection, target):
    """Approvals are retained as audit trail."""
    raise ImmutableRecordError(
        "QuotationApproval", str(target.id), "approvals are never deleted",
    )


@event.listens_for(ApprovalStepModel, "before_delete")
def prevent_step_delete(mapper, connection, target):
    """Steps are retained as audit trail."""
    raise ImmutableRecordError(
        "ApprovalStep", str(target.id), "approval steps are never deleted",
    )


@event.listens_for(ApprovalStepModel, "before_update")
def prevent_decided_step_update(mapper, connection, target):
    """A decided step is frozen."""
    history = inspect(target).attrs.status.history
    previous = history.deleted[0] if history.deleted else target.status
    if previous != "PENDING":
        raise ImmutableRecordError(
            "ApprovalStep", str(target.id), f"step already decided ({previous})",
        )
