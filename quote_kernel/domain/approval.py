"""
Approval domain types (``quote_kernel.domain.approval``).

Responsibility
--------------
Pure value objects for the quotation approval workflow engine.  Defines
the approval and step lifecycle state machines, the workflow / level /
condition configuration records, the live approval snapshot, and the
domain events emitted for notification collaborators.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``models/``, ``services/``, ``selectors/`` or outer layers.
May import only from ``quote_kernel.exceptions``.

Invariants enforced
-------------------
* Lifecycle state machine -- ``APPROVAL_TRANSITIONS`` and
  ``STEP_TRANSITIONS`` define the only valid status changes.  Terminal
  states have no outgoing edges.
* Workflow shape -- an ``ApprovalWorkflow`` has at least one level and its
  levels form the contiguous sequence ``1..n`` (checked on construction).
* Closed operator set -- conditions use ``ConditionOperator`` only; there
  is no expression language.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Mapping, Protocol, Union
from uuid import UUID

from quote_kernel.exceptions import ConfigurationError

# A quotation as supplied by the quotation storage service.  Arbitrary
# nesting is allowed; conditions address fields by dotted path.
QuotationSnapshot = Mapping[str, Any]


# =========================================================================
# Approval Status Lifecycle
# =========================================================================


class ApprovalStatus(str, Enum):
    """QuotationApproval lifecycle states."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


APPROVAL_TRANSITIONS: dict[ApprovalStatus, frozenset[ApprovalStatus]] = {
    ApprovalStatus.PENDING: frozenset({
        ApprovalStatus.APPROVED,
        ApprovalStatus.REJECTED,
        ApprovalStatus.CANCELLED,
    }),
    ApprovalStatus.APPROVED: frozenset(),
    ApprovalStatus.REJECTED: frozenset(),
    ApprovalStatus.CANCELLED: frozenset(),
}

TERMINAL_APPROVAL_STATUSES: frozenset[ApprovalStatus] = frozenset({
    ApprovalStatus.APPROVED,
    ApprovalStatus.REJECTED,
    ApprovalStatus.CANCELLED,
})


class StepStatus(str, Enum):
    """Decision slot states for a single approver."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


STEP_TRANSITIONS: dict[StepStatus, frozenset[StepStatus]] = {
    StepStatus.PENDING: frozenset({StepStatus.APPROVED, StepStatus.REJECTED}),
    StepStatus.APPROVED: frozenset(),
    StepStatus.REJECTED: frozenset(),
}


class ApprovalDecision(str, Enum):
    """Decision types that an approver can make."""

    APPROVE = "APPROVE"
    REJECT = "REJECT"

    @property
    def step_status(self) -> StepStatus:
        if self is ApprovalDecision.APPROVE:
            return StepStatus.APPROVED
        return StepStatus.REJECTED


class LevelOutcome(str, Enum):
    """Resolution of one level given its steps."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


# =========================================================================
# Workflow configuration
# =========================================================================


class ConditionOperator(str, Enum):
    """Closed set of comparison operators for workflow conditions."""

    EQ = "eq"
    NE = "ne"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    IN = "in"
    NIN = "nin"

    @classmethod
    def parse(cls, raw: ConditionOperator | str) -> ConditionOperator:
        """Resolve a raw operator, raising ConfigurationError if unknown."""
        if isinstance(raw, ConditionOperator):
            return raw
        try:
            return cls(str(raw).strip().lower())
        except ValueError:
            raise ConfigurationError(f"Unknown condition operator {raw!r}") from None


@dataclass(frozen=True)
class ApprovalCondition:
    """A single ``(field, operator, value)`` triple.

    ``operator`` is kept as supplied by the catalog so that a corrupt
    definition can still be loaded and reported at evaluation time.
    """

    field: str
    operator: ConditionOperator | str
    value: Any = None

    def to_dict(self) -> dict[str, Any]:
        op = self.operator.value if isinstance(self.operator, ConditionOperator) else self.operator
        return {"field": self.field, "operator": op, "value": self.value}


@dataclass(frozen=True)
class ApprovalLevel:
    """One stage of a workflow.

    ``approver_user_ids`` has set semantics: duplicates are dropped while
    first-seen order is kept, so step materialisation is deterministic.
    """

    level: int
    name: str
    approver_user_ids: tuple[str, ...]
    require_all_approvers: bool = False
    auto_approval_timeout_hours: float | None = None

    def __post_init__(self) -> None:
        if isinstance(self.level, bool) or not isinstance(self.level, int) or self.level < 1:
            raise ConfigurationError(f"Level number must be an integer >= 1, got {self.level!r}")
        approvers = tuple(dict.fromkeys(str(a) for a in self.approver_user_ids))
        if not approvers:
            raise ConfigurationError(f"Level {self.level} has no approvers")
        object.__setattr__(self, "approver_user_ids", approvers)
        if not isinstance(self.require_all_approvers, bool):
            raise ConfigurationError(
                f"Level {self.level} require_all_approvers must be a boolean, "
                f"got {self.require_all_approvers!r}"
            )
        timeout = self.auto_approval_timeout_hours
        if timeout is not None:
            if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
                raise ConfigurationError(
                    f"Level {self.level} auto-approval timeout must be a positive number, "
                    f"got {timeout!r}"
                )

    @property
    def timeout(self) -> timedelta | None:
        if self.auto_approval_timeout_hours is None:
            return None
        return timedelta(hours=self.auto_approval_timeout_hours)

    def to_dict(self) -> dict[str, Any]:
        return {
            "level": self.level,
            "name": self.name,
            "approver_user_ids": list(self.approver_user_ids),
            "require_all_approvers": self.require_all_approvers,
            "auto_approval_timeout_hours": self.auto_approval_timeout_hours,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ApprovalLevel:
        return cls(
            level=data["level"],
            name=data.get("name", f"Level {data['level']}"),
            approver_user_ids=tuple(data.get("approver_user_ids", ())),
            require_all_approvers=data.get("require_all_approvers", False),
            auto_approval_timeout_hours=data.get("auto_approval_timeout_hours"),
        )


@dataclass(frozen=True)
class ApprovalWorkflow:
    """A named, conditioned policy defining an ordered sequence of levels.

    Conditions use AND semantics.  Higher ``priority`` wins when several
    workflows match the same quotation.
    """

    id: str
    name: str
    levels: tuple[ApprovalLevel, ...]
    conditions: tuple[ApprovalCondition, ...] = ()
    priority: int = 1
    is_active: bool = True
    description: str | None = None

    def __post_init__(self) -> None:
        if isinstance(self.priority, bool) or not isinstance(self.priority, int):
            raise ConfigurationError(
                f"priority must be an integer, got {self.priority!r}", self.id,
            )
        if not isinstance(self.is_active, bool):
            raise ConfigurationError(
                f"is_active must be a boolean, got {self.is_active!r}", self.id,
            )
        if not self.levels:
            raise ConfigurationError("workflow must define at least one level", self.id)
        ordered = tuple(sorted(self.levels, key=lambda lvl: lvl.level))
        numbers = [lvl.level for lvl in ordered]
        if numbers != list(range(1, len(ordered) + 1)):
            raise ConfigurationError(
                f"approval levels must be sequential starting from 1, got {numbers}",
                self.id,
            )
        object.__setattr__(self, "levels", ordered)
        object.__setattr__(self, "conditions", tuple(self.conditions))

    @property
    def last_level(self) -> int:
        return self.levels[-1].level

    def level(self, number: int) -> ApprovalLevel | None:
        if 1 <= number <= len(self.levels):
            return self.levels[number - 1]
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "priority": self.priority,
            "is_active": self.is_active,
            "conditions": [c.to_dict() for c in self.conditions],
            "levels": [lvl.to_dict() for lvl in self.levels],
        }


# =========================================================================
# Live approval records
# =========================================================================


@dataclass(frozen=True)
class ApprovalStep:
    """One approver's decision slot within a level. Immutable snapshot."""

    step_id: UUID
    approval_id: UUID
    level: int
    approver_user_id: str
    status: StepStatus = StepStatus.PENDING
    comments: str | None = None
    decided_at: datetime | None = None
    created_at: datetime | None = None
    auto_approved: bool = False


@dataclass(frozen=True)
class QuotationApproval:
    """Immutable snapshot of a live (or finished) approval.

    ``levels`` is the copy of the workflow's levels taken when the approval
    was requested; progression never consults the live catalog.
    """

    approval_id: UUID
    quotation_id: str
    workflow_id: str
    workflow_name: str
    current_level: int
    status: ApprovalStatus
    requested_by_user_id: str
    requested_at: datetime
    level_activated_at: datetime
    completed_at: datetime | None = None
    cancelled_by_user_id: str | None = None
    workflow_hash: str | None = None
    version: int = 1
    levels: tuple[ApprovalLevel, ...] = ()
    steps: tuple[ApprovalStep, ...] = ()

    @property
    def is_open(self) -> bool:
        return self.status not in TERMINAL_APPROVAL_STATUSES

    @property
    def current_level_config(self) -> ApprovalLevel | None:
        for lvl in self.levels:
            if lvl.level == self.current_level:
                return lvl
        return None

    def steps_at(self, level: int) -> tuple[ApprovalStep, ...]:
        return tuple(s for s in self.steps if s.level == level)

    def step_for(self, user_id: str, level: int | None = None) -> ApprovalStep | None:
        target = self.current_level if level is None else level
        for s in self.steps:
            if s.level == target and s.approver_user_id == user_id:
                return s
        return None


# =========================================================================
# Domain events
# =========================================================================


@dataclass(frozen=True)
class ApprovalRequested:
    approval_id: UUID
    quotation_id: str
    occurred_at: datetime | None = None
    event_type: str = field(default="ApprovalRequested", init=False)


@dataclass(frozen=True)
class LevelAdvanced:
    approval_id: UUID
    new_level: int
    occurred_at: datetime | None = None
    event_type: str = field(default="LevelAdvanced", init=False)


@dataclass(frozen=True)
class ApprovalCompleted:
    approval_id: UUID
    status: ApprovalStatus
    occurred_at: datetime | None = None
    event_type: str = field(default="ApprovalCompleted", init=False)


ApprovalEvent = Union[ApprovalRequested, LevelAdvanced, ApprovalCompleted]


class ApprovalEventSink(Protocol):
    """Consumer of approval events (email / notification collaborator)."""

    def publish(self, event: ApprovalEvent) -> None:
        ...


# =========================================================================
# Read model
# =========================================================================


@dataclass(frozen=True)
class WorkflowPendingStats:
    workflow_id: str
    workflow_name: str
    pending_count: int


@dataclass(frozen=True)
class ApprovalDashboard:
    """Aggregate counters for the approvals dashboard."""

    pending_approvals: int
    my_pending_approvals: int
    approved_today: int
    rejected_today: int
    average_approval_hours: float
    recent_approvals: tuple[QuotationApproval, ...] = ()
    workflow_stats: tuple[WorkflowPendingStats, ...] = ()
