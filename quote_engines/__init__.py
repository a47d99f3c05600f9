"""
Module: quote_engines
Responsibility:
    Package entrypoint that re-exports the pure calculation engines used by
    the approval workflow: condition evaluation, workflow selection and
    level resolution.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import quote_kernel/domain (and sibling engine modules).
    MUST NOT import quote_services or quote_config.

Invariants enforced:
    - Purity: engines never read the clock; ``now`` is a parameter.
    - Determinism: identical inputs always produce identical outputs.
"""

from quote_engines.approval import (
    ApprovalTransition,
    TransitionKind,
    can_transition_approval,
    can_transition_step,
    level_deadline,
    plan_transition,
    resolve_level,
    steps_due_for_auto_approval,
)
from quote_engines.conditions import (
    evaluate_condition,
    matches,
    matches_all,
    resolve_field,
)
from quote_engines.workflow_selector import (
    find_matching_workflows,
    precedence_key,
    select_workflow,
)

__all__ = [
    "ApprovalTransition",
    "TransitionKind",
    "can_transition_approval",
    "can_transition_step",
    "evaluate_condition",
    "find_matching_workflows",
    "level_deadline",
    "matches",
    "matches_all",
    "plan_transition",
    "precedence_key",
    "resolve_field",
    "resolve_level",
    "select_workflow",
    "steps_due_for_auto_approval",
]
