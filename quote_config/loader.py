"""
Configuration Loader (``quote_config.loader``).

Responsibility
--------------
Loads YAML files and parses them into the typed ``quote_config.schema``
dataclasses.  Parsing is structural only: values are kept as written so
the validator can report every problem in one pass.

Invariants enforced
-------------------
* Missing required keys raise ``KeyError``; there are no silent defaults
  for ``id``, ``name`` or ``level``.
* ``DATABASE_URL`` in the environment overrides ``engine.database_url``.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the
  definitions for change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
"""

from __future__ import annotations

import hashlib
import json
import os
from pathlib import Path
from typing import Any, Mapping

import yaml

from quote_config.schema import (
    DEFAULT_ELIGIBLE_STATUSES,
    ConditionDef,
    EngineSettings,
    LevelDef,
    WorkflowDef,
)

DATABASE_URL_ENV = "DATABASE_URL"


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a single YAML file and return its contents (empty dict if empty)."""
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_condition(data: dict[str, Any]) -> ConditionDef:
    return ConditionDef(
        field=data["field"],
        operator=data["operator"],
        value=data.get("value"),
    )


def parse_level(data: dict[str, Any]) -> LevelDef:
    approvers = data.get("approver_user_ids") or ()
    if isinstance(approvers, str):
        approvers = (approvers,)
    return LevelDef(
        level=data["level"],
        name=data.get("name", f"Level {data['level']}"),
        approver_user_ids=tuple(str(a) for a in approvers),
        require_all_approvers=data.get("require_all_approvers", False),
        auto_approval_timeout_hours=data.get("auto_approval_timeout_hours"),
    )


def parse_workflow(data: dict[str, Any]) -> WorkflowDef:
    """Parse a ``WorkflowDef`` from one entry of the ``workflows:`` list."""
    return WorkflowDef(
        id=str(data["id"]),
        name=data["name"],
        description=data.get("description"),
        priority=data.get("priority", 1),
        is_active=data.get("is_active", True),
        conditions=tuple(parse_condition(c) for c in data.get("conditions") or ()),
        levels=tuple(parse_level(lvl) for lvl in data.get("levels") or ()),
    )


def parse_workflows(data: dict[str, Any]) -> tuple[WorkflowDef, ...]:
    return tuple(parse_workflow(w) for w in data.get("workflows") or ())


def parse_settings(
    data: dict[str, Any],
    environ: Mapping[str, str] | None = None,
) -> EngineSettings:
    """Parse the ``engine:`` mapping, applying the environment override."""
    engine = data.get("engine") or {}
    env = os.environ if environ is None else environ
    defaults = EngineSettings()

    statuses = engine.get("eligible_quotation_statuses", DEFAULT_ELIGIBLE_STATUSES)
    return EngineSettings(
        database_url=env.get(DATABASE_URL_ENV) or engine.get("database_url", defaults.database_url),
        sweep_interval_seconds=int(
            engine.get("sweep_interval_seconds", defaults.sweep_interval_seconds)
        ),
        system_actor_id=str(engine.get("system_actor_id", defaults.system_actor_id)),
        eligible_quotation_statuses=tuple(str(s).upper() for s in statuses),
        log_level=str(engine.get("log_level", defaults.log_level)).upper(),
    )


def compute_checksum(data: Any) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
