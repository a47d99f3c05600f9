#!/usr/bin/env python3
"""
Validate a workflow configuration file and optionally show which workflow a
quotation would get.

Usage:
    python3 scripts/check_workflows.py [config.yaml] [--quotation JSON]

Examples:
    python3 scripts/check_workflows.py
    python3 scripts/check_workflows.py approvals.yaml \\
        --quotation '{"id": "Q-1", "totalAmount": 150000}'
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

# Project root on sys.path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Validate approval workflows and preview workflow selection.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "config",
        nargs="?",
        type=Path,
        default=None,
        help="Configuration YAML (default: quote_config/sets/default.yaml).",
    )
    parser.add_argument(
        "--quotation",
        default=None,
        help="Quotation snapshot as a JSON object; prints the selected workflow.",
    )
    return parser.parse_args()


def main() -> int:
    args = _parse_args()

    from quote_config import DEFAULT_CONFIG_PATH, build_catalog, build_workflow
    from quote_config.loader import load_yaml_file, parse_workflows
    from quote_config.validator import validate_workflow_definitions
    from quote_engines.workflow_selector import find_matching_workflows

    path = args.config or DEFAULT_CONFIG_PATH
    if not path.is_file():
        print(f"ERROR: File not found: {path}", file=sys.stderr)
        return 1

    definitions = parse_workflows(load_yaml_file(path))
    print(f"Checking {path}")
    print(f"  workflows: {len(definitions)}")

    result = validate_workflow_definitions(definitions)
    for w in result.warnings:
        print(f"  WARNING: {w}")
    if not result.is_valid:
        print("VALIDATION FAILED:")
        for err in result.errors:
            print(f"  ERROR: {err}")
        return 1

    catalog = build_catalog((build_workflow(d) for d in definitions), source=str(path))
    print(f"  checksum:  {catalog.checksum[:16]}...")
    for wf in sorted(catalog, key=lambda w: (-w.priority, w.id)):
        state = "active" if wf.is_active else "inactive"
        print(f"  [{wf.priority:>3}] {wf.id} ({state}) levels={len(wf.levels)} conditions={len(wf.conditions)}")

    if args.quotation:
        try:
            snapshot = json.loads(args.quotation)
        except json.JSONDecodeError as e:
            print(f"ERROR: --quotation is not valid JSON: {e}", file=sys.stderr)
            return 1
        matching = find_matching_workflows(snapshot, catalog)
        if not matching:
            print("No workflow matches: quotation needs no approval.")
        else:
            print(f"Selected: {matching[0].id}")
            for other in matching[1:]:
                print(f"  also matched: {other.id} (priority {other.priority})")

    print("OK")
    return 0


if __name__ == "__main__":
    sys.exit(main())
