"""
Pure domain layer.

Pure value objects and state-machine tables with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- Time/clock (except the injectable Clock abstraction)
- I/O

All domain objects are immutable and deterministic.
"""

from quote_kernel.domain.approval import (
    APPROVAL_TRANSITIONS,
    STEP_TRANSITIONS,
    TERMINAL_APPROVAL_STATUSES,
    ApprovalCompleted,
    ApprovalCondition,
    ApprovalDashboard,
    ApprovalDecision,
    ApprovalEvent,
    ApprovalEventSink,
    ApprovalLevel,
    ApprovalRequested,
    ApprovalStatus,
    ApprovalStep,
    ApprovalWorkflow,
    ConditionOperator,
    LevelAdvanced,
    LevelOutcome,
    QuotationApproval,
    QuotationSnapshot,
    StepStatus,
    WorkflowPendingStats,
)
from quote_kernel.domain.clock import Clock, DeterministicClock, SystemClock

__all__ = [
    "APPROVAL_TRANSITIONS",
    "STEP_TRANSITIONS",
    "TERMINAL_APPROVAL_STATUSES",
    "ApprovalCompleted",
    "ApprovalCondition",
    "ApprovalDashboard",
    "ApprovalDecision",
    "ApprovalEvent",
    "ApprovalEventSink",
    "ApprovalLevel",
    "ApprovalRequested",
    "ApprovalStatus",
    "ApprovalStep",
    "ApprovalWorkflow",
    "Clock",
    "ConditionOperator",
    "DeterministicClock",
    "LevelAdvanced",
    "LevelOutcome",
    "QuotationApproval",
    "QuotationSnapshot",
    "StepStatus",
    "SystemClock",
    "WorkflowPendingStats",
]
