"""
quote_config -- workflow catalog and engine settings.

Responsibility:
    Reads the YAML configuration (``workflows:`` and ``engine:``), validates
    it and returns the runtime artifacts: a frozen ``WorkflowCatalog`` and
    ``EngineSettings``.

Architecture position:
    Configuration -- sits above ``quote_kernel`` and below
    ``quote_services``.  The kernel MUST NEVER import from ``quote_config``.

Invariants enforced:
    - A catalog is only built from definitions that pass
      ``validate_workflow_definitions``.
    - Deterministic: the same YAML always yields the same catalog checksum.

Failure modes:
    - ``FileNotFoundError`` -- configuration file missing.
    - ``ConfigurationError`` -- validation failed; ``reason`` lists every error.
"""

from __future__ import annotations

import logging
from pathlib import Path

from quote_config.bridges import build_catalog, build_workflow
from quote_config.loader import (
    compute_checksum,
    load_yaml_file,
    parse_settings,
    parse_workflows,
)
from quote_config.schema import (
    ConditionDef,
    EngineSettings,
    LevelDef,
    WorkflowCatalog,
    WorkflowDef,
)
from quote_config.validator import ConfigValidationResult, validate_workflow_definitions
from quote_kernel.exceptions import ConfigurationError

_logger = logging.getLogger("quote_kernel.config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"


def load_workflow_catalog(path: Path | str | None = None) -> WorkflowCatalog:
    """Load, validate and freeze the workflow catalog from a YAML file."""
    config_path = Path(path) if path is not None else DEFAULT_CONFIG_PATH
    definitions = parse_workflows(load_yaml_file(config_path))

    result = validate_workflow_definitions(definitions)
    for warning in result.warnings:
        _logger.warning("workflow_config_warning", extra={"detail": warning})
    if not result.is_valid:
        _logger.error(
            "workflow_config_invalid",
            extra={"path": str(config_path), "errors": result.errors},
        )
        raise ConfigurationError("; ".join(result.errors))

    catalog = build_catalog(
        (build_workflow(d) for d in definitions),
        source=str(config_path),
    )
    _logger.info(
        "workflow_catalog_loaded",
        extra={
            "path": str(config_path),
            "workflow_count": len(catalog),
            "active_count": len(catalog.active),
            "checksum": catalog.checksum,
        },
    )
    return catalog


def load_engine_settings(path: Path | str | None = None) -> EngineSettings:
    """Engine settings from the ``engine:`` section, with env overrides."""
    config_path = Path(path) if path is not None else DEFAULT_CONFIG_PATH
    return parse_settings(load_yaml_file(config_path))


__all__ = [
    "ConditionDef",
    "ConfigValidationResult",
    "DEFAULT_CONFIG_PATH",
    "EngineSettings",
    "LevelDef",
    "WorkflowCatalog",
    "WorkflowDef",
    "build_catalog",
    "build_workflow",
    "compute_checksum",
    "load_engine_settings",
    "load_workflow_catalog",
    "validate_workflow_definitions",
]
