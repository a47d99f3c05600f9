"""
quote_engines.workflow_selector -- Pick the workflow that governs a quotation.

Responsibility:
    Given a quotation snapshot and a snapshot of the workflow catalog,
    return every matching workflow in precedence order, or the single one
    to apply.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Only ``is_active`` workflows whose every condition matches are
      candidates (AND semantics).
    - Deterministic precedence: highest ``priority`` first; equal
      priorities are ordered by ascending ``id``.
    - The catalog is read once per call; callers pass an immutable
      snapshot, never a live query.

Failure modes:
    - Returns None / empty tuple when nothing matches.  None means the
      quotation needs no approval.
"""

from __future__ import annotations

from typing import Iterable

from quote_engines.conditions import matches_all
from quote_kernel.domain.approval import ApprovalWorkflow, QuotationSnapshot


def precedence_key(workflow: ApprovalWorkflow) -> tuple[int, str]:
    """Sort key: higher priority first, then lowest id."""
    return (-workflow.priority, workflow.id)


def find_matching_workflows(
    snapshot: QuotationSnapshot,
    workflows: Iterable[ApprovalWorkflow],
) -> tuple[ApprovalWorkflow, ...]:
    """All active workflows whose conditions all match, in precedence order."""
    candidates = [
        wf for wf in workflows
        if wf.is_active and matches_all(wf.conditions, snapshot, wf.id)
    ]
    return tuple(sorted(candidates, key=precedence_key))


def select_workflow(
    snapshot: QuotationSnapshot,
    workflows: Iterable[ApprovalWorkflow],
) -> ApprovalWorkflow | None:
    """The workflow to apply, or None when the quotation needs no approval."""
    matching = find_matching_workflows(snapshot, workflows)
    return matching[0] if matching else None
