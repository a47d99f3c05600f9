"""
quote_engines.approval -- Pure level-resolution rules for approvals.

Responsibility:
    Decide how a level resolves from its step statuses, what the approval
    does next (stay, advance a level, finish), and which steps the timeout
    sweeper may auto-approve.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import quote_kernel/domain/ types.

Invariants enforced:
    - requireAllApprovers=True: approved iff every step APPROVED; rejected
      as soon as any step is REJECTED.
    - requireAllApprovers=False: approved on the first APPROVED step;
      rejected only when every step is REJECTED.
    - A rejected level rejects the whole approval; an approved last level
      approves it; an approved inner level advances ``current_level`` by 1.
    - Purity: no clock access.  ``now`` is always passed in.

Failure modes:
    - ValueError if asked to plan for a level missing from the snapshot.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Iterable

from quote_kernel.domain.approval import (
    APPROVAL_TRANSITIONS,
    STEP_TRANSITIONS,
    ApprovalLevel,
    ApprovalStatus,
    ApprovalStep,
    LevelOutcome,
    QuotationApproval,
    StepStatus,
)


class TransitionKind(str, Enum):
    STAY = "stay"
    ADVANCE = "advance"
    COMPLETE = "complete"


@dataclass(frozen=True)
class ApprovalTransition:
    """What an approval does after its current level was re-evaluated."""

    kind: TransitionKind
    level_outcome: LevelOutcome
    new_status: ApprovalStatus = ApprovalStatus.PENDING
    next_level: int | None = None


def resolve_level(level: ApprovalLevel, statuses: Iterable[StepStatus]) -> LevelOutcome:
    """Resolve one level from the statuses of its steps."""
    statuses = list(statuses)
    if not statuses:
        return LevelOutcome.PENDING

    approved = sum(1 for s in statuses if s == StepStatus.APPROVED)
    rejected = sum(1 for s in statuses if s == StepStatus.REJECTED)

    if level.require_all_approvers:
        if rejected:
            return LevelOutcome.REJECTED
        if approved == len(statuses):
            return LevelOutcome.APPROVED
        return LevelOutcome.PENDING

    if approved:
        return LevelOutcome.APPROVED
    if rejected == len(statuses):
        return LevelOutcome.REJECTED
    return LevelOutcome.PENDING


def plan_transition(
    levels: tuple[ApprovalLevel, ...],
    current_level: int,
    statuses: Iterable[StepStatus],
) -> ApprovalTransition:
    """Decide the approval's next move after a step at ``current_level`` changed."""
    config = next((lvl for lvl in levels if lvl.level == current_level), None)
    if config is None:
        raise ValueError(f"Level {current_level} not present in workflow snapshot")

    outcome = resolve_level(config, statuses)
    if outcome == LevelOutcome.PENDING:
        return ApprovalTransition(kind=TransitionKind.STAY, level_outcome=outcome)
    if outcome == LevelOutcome.REJECTED:
        return ApprovalTransition(
            kind=TransitionKind.COMPLETE,
            level_outcome=outcome,
            new_status=ApprovalStatus.REJECTED,
        )

    last_level = max(lvl.level for lvl in levels)
    if current_level >= last_level:
        return ApprovalTransition(
            kind=TransitionKind.COMPLETE,
            level_outcome=outcome,
            new_status=ApprovalStatus.APPROVED,
        )
    return ApprovalTransition(
        kind=TransitionKind.ADVANCE,
        level_outcome=outcome,
        next_level=current_level + 1,
    )


def can_transition_approval(current: ApprovalStatus, new: ApprovalStatus) -> bool:
    return new in APPROVAL_TRANSITIONS.get(current, frozenset())


def can_transition_step(current: StepStatus, new: StepStatus) -> bool:
    return new in STEP_TRANSITIONS.get(current, frozenset())


def level_deadline(approval: QuotationApproval) -> datetime | None:
    """When the current level's auto-approval timeout expires, if it has one."""
    config = approval.current_level_config
    if config is None or config.timeout is None:
        return None
    return approval.level_activated_at + config.timeout


def steps_due_for_auto_approval(
    approval: QuotationApproval,
    now: datetime,
) -> tuple[ApprovalStep, ...]:
    """Steps the sweeper should auto-approve at ``now``.

    A require-all level needs every PENDING step approved; an any-approver
    level resolves on one, so only its first PENDING step is returned.
    """
    if not approval.is_open:
        return ()
    deadline = level_deadline(approval)
    if deadline is None or now < deadline:
        return ()

    pending = tuple(
        s for s in approval.steps_at(approval.current_level)
        if s.status == StepStatus.PENDING
    )
    if not pending:
        return ()
    config = approval.current_level_config
    if config is not None and config.require_all_approvers:
        return pending
    return pending[:1]
