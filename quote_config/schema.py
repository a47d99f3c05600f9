"""
Approval configuration schema.

Defines the human-authored source artifact for approval workflows and the
engine settings.  YAML files are parsed into these types by the loader,
checked by the validator and turned into domain ``ApprovalWorkflow``
objects by the bridges.

Key distinction:
  WorkflowDef      = source artifact (as written in YAML, unvalidated)
  WorkflowCatalog  = runtime artifact (validated domain workflows, frozen)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterator

from quote_kernel.domain.approval import ApprovalWorkflow
from quote_kernel.exceptions import ConfigurationError

DEFAULT_ELIGIBLE_STATUSES: tuple[str, ...] = ("DRAFT", "SENT")

# ---------------------------------------------------------------------------
# Workflow definitions (declarative data, no executable logic)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ConditionDef:
    """One ``(field, operator, value)`` triple.  Operator kept as written."""

    field: str
    operator: str
    value: Any = None


@dataclass(frozen=True)
class LevelDef:
    level: Any
    name: str
    approver_user_ids: tuple[str, ...] = ()
    require_all_approvers: Any = False
    auto_approval_timeout_hours: Any = None


@dataclass(frozen=True)
class WorkflowDef:
    id: str
    name: str
    levels: tuple[LevelDef, ...] = ()
    conditions: tuple[ConditionDef, ...] = ()
    priority: Any = 1
    is_active: Any = True
    description: str | None = None


# ---------------------------------------------------------------------------
# Engine settings
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EngineSettings:
    """Runtime settings for the workflow engine and the sweeper."""

    database_url: str = "sqlite:///quote_approvals.db"
    sweep_interval_seconds: int = 300
    system_actor_id: str = "system"
    eligible_quotation_statuses: tuple[str, ...] = DEFAULT_ELIGIBLE_STATUSES
    log_level: str = "INFO"


# ---------------------------------------------------------------------------
# Runtime catalog
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class WorkflowCatalog:
    """Immutable snapshot of the configured workflows.

    Selection always runs against one catalog instance; a reload produces a
    new catalog rather than mutating this one.
    """

    workflows: tuple[ApprovalWorkflow, ...] = ()
    checksum: str = ""
    source: str | None = None
    _by_id: dict[str, ApprovalWorkflow] = field(
        default_factory=dict, init=False, repr=False, compare=False,
    )

    def __post_init__(self) -> None:
        seen_names: set[str] = set()
        index: dict[str, ApprovalWorkflow] = {}
        for wf in self.workflows:
            if wf.id in index:
                raise ConfigurationError("duplicate workflow id", workflow_id=wf.id)
            if wf.name in seen_names:
                raise ConfigurationError(f"duplicate workflow name '{wf.name}'", workflow_id=wf.id)
            index[wf.id] = wf
            seen_names.add(wf.name)
        object.__setattr__(self, "_by_id", index)

    def __iter__(self) -> Iterator[ApprovalWorkflow]:
        return iter(self.workflows)

    def __len__(self) -> int:
        return len(self.workflows)

    def get(self, workflow_id: str) -> ApprovalWorkflow | None:
        return self._by_id.get(workflow_id)

    @property
    def active(self) -> tuple[ApprovalWorkflow, ...]:
        return tuple(wf for wf in self.workflows if wf.is_active)
