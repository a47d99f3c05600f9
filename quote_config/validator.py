"""
Configuration Validator (``quote_config.validator``).

Responsibility
--------------
Checks parsed ``WorkflowDef`` objects before they are turned into a
``WorkflowCatalog``, collecting every problem rather than stopping at the
first.

Invariants enforced
-------------------
* Workflow id and name uniqueness.
* Levels present, numbered contiguously from 1, each with at least one
  approver and, when set, a positive auto-approval timeout.
* ``is_active`` and ``require_all_approvers`` are real booleans; a quoted
  ``"false"`` is an error.
* Conditions use a known operator; ``in``/``nin`` carry a list and the
  ordering operators carry a number.

Failure modes
-------------
* Errors (``ConfigValidationResult.errors``) -> the catalog MUST NOT be built.
* Warnings -> the catalog may be built but should be reviewed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable

from quote_config.schema import WorkflowDef
from quote_kernel.domain.approval import ConditionOperator

_ORDERING = frozenset({
    ConditionOperator.GT, ConditionOperator.GTE,
    ConditionOperator.LT, ConditionOperator.LTE,
})
_MEMBERSHIP = frozenset({ConditionOperator.IN, ConditionOperator.NIN})


@dataclass
class ConfigValidationResult:
    """
    Result of configuration validation.

    ``is_valid`` is True only when ``errors`` is empty.
    """

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)


def validate_workflow_definitions(workflows: Iterable[WorkflowDef]) -> ConfigValidationResult:
    """Validate a set of workflow definitions."""
    result = ConfigValidationResult()
    workflows = list(workflows)

    _validate_unique(workflows, result)
    for wf in workflows:
        _validate_priority(wf, result)
        _validate_active_flag(wf, result)
        _validate_levels(wf, result)
        _validate_conditions(wf, result)
        if wf.is_active is True and not wf.conditions:
            result.add_warning(
                f"Workflow '{wf.id}' is active and has no conditions; "
                f"it matches every quotation"
            )

    if workflows and not any(wf.is_active is True for wf in workflows):
        result.add_warning("No active workflows; no quotation will require approval")

    return result


def _validate_unique(workflows: list[WorkflowDef], result: ConfigValidationResult) -> None:
    seen_ids: set[str] = set()
    seen_names: set[str] = set()
    for wf in workflows:
        if wf.id in seen_ids:
            result.add_error(f"Duplicate workflow id '{wf.id}'")
        seen_ids.add(wf.id)
        if wf.name in seen_names:
            result.add_error(f"Duplicate workflow name '{wf.name}'")
        seen_names.add(wf.name)


def _validate_priority(wf: WorkflowDef, result: ConfigValidationResult) -> None:
    if isinstance(wf.priority, bool) or not isinstance(wf.priority, int):
        result.add_error(f"Workflow '{wf.id}': priority must be an integer, got {wf.priority!r}")


def _validate_active_flag(wf: WorkflowDef, result: ConfigValidationResult) -> None:
    if not isinstance(wf.is_active, bool):
        result.add_error(f"Workflow '{wf.id}': is_active must be true or false, got {wf.is_active!r}")


def _validate_levels(wf: WorkflowDef, result: ConfigValidationResult) -> None:
    if not wf.levels:
        result.add_error(f"Workflow '{wf.id}': at least one level is required")
        return

    numbers = []
    for lvl in wf.levels:
        if isinstance(lvl.level, bool) or not isinstance(lvl.level, int):
            result.add_error(f"Workflow '{wf.id}': level number must be an integer, got {lvl.level!r}")
            continue
        numbers.append(lvl.level)
        if not lvl.approver_user_ids:
            result.add_error(f"Workflow '{wf.id}' level {lvl.level}: no approvers")
        if not isinstance(lvl.require_all_approvers, bool):
            result.add_error(
                f"Workflow '{wf.id}' level {lvl.level}: require_all_approvers "
                f"must be true or false, got {lvl.require_all_approvers!r}"
            )
        timeout = lvl.auto_approval_timeout_hours
        if timeout is not None and (
            isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0
        ):
            result.add_error(
                f"Workflow '{wf.id}' level {lvl.level}: auto_approval_timeout_hours "
                f"must be a positive number, got {timeout!r}"
            )

    if sorted(numbers) != list(range(1, len(wf.levels) + 1)):
        result.add_error(
            f"Workflow '{wf.id}': levels must be sequential starting from 1, got {sorted(numbers)}"
        )


def _validate_conditions(wf: WorkflowDef, result: ConfigValidationResult) -> None:
    for cond in wf.conditions:
        try:
            operator = ConditionOperator(str(cond.operator).strip().lower())
        except ValueError:
            result.add_error(
                f"Workflow '{wf.id}': unknown operator {cond.operator!r} on field '{cond.field}'"
            )
            continue
        if not isinstance(cond.field, str) or not cond.field.strip():
            result.add_error(
                f"Workflow '{wf.id}': condition field must be a non-empty string, got {cond.field!r}"
            )
        if operator in _MEMBERSHIP and not isinstance(cond.value, (list, tuple)):
            result.add_error(
                f"Workflow '{wf.id}': '{operator.value}' on '{cond.field}' needs a list value"
            )
        if operator in _ORDERING and (
            isinstance(cond.value, bool) or not isinstance(cond.value, (int, float, Decimal))
        ):
            result.add_error(
                f"Workflow '{wf.id}': '{operator.value}' on '{cond.field}' needs a numeric value"
            )
