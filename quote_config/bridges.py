"""
Config -> Kernel bridges.

Turns validated ``WorkflowDef`` objects into domain ``ApprovalWorkflow``
instances and packs them into a ``WorkflowCatalog``.  These live in
quote_config (the producer) because the kernel never imports quote_config.
"""

from __future__ import annotations

from typing import Iterable

from quote_config.loader import compute_checksum
from quote_config.schema import WorkflowCatalog, WorkflowDef
from quote_kernel.domain.approval import (
    ApprovalCondition,
    ApprovalLevel,
    ApprovalWorkflow,
    ConditionOperator,
)


def build_workflow(definition: WorkflowDef) -> ApprovalWorkflow:
    """Build a domain workflow.  Raises ConfigurationError on invalid input."""
    return ApprovalWorkflow(
        id=definition.id,
        name=definition.name,
        description=definition.description,
        priority=definition.priority,
        is_active=definition.is_active,
        conditions=tuple(
            ApprovalCondition(
                field=c.field,
                operator=ConditionOperator.parse(c.operator),
                value=c.value,
            )
            for c in definition.conditions
        ),
        levels=tuple(
            ApprovalLevel(
                level=lvl.level,
                name=lvl.name,
                approver_user_ids=lvl.approver_user_ids,
                require_all_approvers=lvl.require_all_approvers,
                auto_approval_timeout_hours=lvl.auto_approval_timeout_hours,
            )
            for lvl in definition.levels
        ),
    )


def build_catalog(
    workflows: Iterable[ApprovalWorkflow],
    source: str | None = None,
) -> WorkflowCatalog:
    """Freeze workflows into a catalog whose checksum covers every definition."""
    ordered = tuple(sorted(workflows, key=lambda wf: wf.id))
    checksum = compute_checksum([wf.to_dict() for wf in ordered])
    return WorkflowCatalog(workflows=ordered, checksum=checksum, source=source)
