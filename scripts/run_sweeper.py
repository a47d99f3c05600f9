#!/usr/bin/env python3
"""
Run the approval timeout sweeper.

Auto-approves steps whose level has an ``auto_approval_timeout_hours`` that
has elapsed, then advances or completes the approval.  Settings come from the
``engine:`` section of the configuration file; DATABASE_URL overrides the
database.

Usage:
    python3 scripts/run_sweeper.py [options]

Examples:
    # One pass and exit
    python3 scripts/run_sweeper.py --once

    # Sweep every 60 seconds until interrupted
    python3 scripts/run_sweeper.py --interval 60

    # Use another configuration file
    python3 scripts/run_sweeper.py --config path/to/approvals.yaml --once
"""

from __future__ import annotations

import argparse
import signal
import sys
import threading
from pathlib import Path

# Project root on sys.path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Auto-approve overdue approval levels.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Configuration YAML (default: quote_config/sets/default.yaml).",
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=None,
        help="Seconds between sweeps (default: engine.sweep_interval_seconds).",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single sweep and exit.",
    )
    parser.add_argument(
        "--db-url",
        default=None,
        help="Database URL (default: DATABASE_URL env or engine.database_url).",
    )
    parser.add_argument(
        "--create-tables",
        action="store_true",
        help="Create the approval tables before sweeping.",
    )
    return parser.parse_args()


def main() -> int:
    args = _parse_args()

    # Lazy imports so we fail fast on args first
    from quote_config import load_engine_settings
    from quote_kernel.db.engine import create_tables, get_session_factory, init_engine_from_url
    from quote_kernel.logging_config import configure_logging
    from quote_services.events import LoggingEventSink
    from quote_services.timeout_sweeper import TimeoutSweeper

    try:
        settings = load_engine_settings(args.config)
    except FileNotFoundError as e:
        print(f"ERROR: Configuration not found: {e}", file=sys.stderr)
        return 1

    configure_logging(level=settings.log_level)
    init_engine_from_url(args.db_url or settings.database_url)
    if args.create_tables:
        create_tables()

    sweeper = TimeoutSweeper(
        get_session_factory(),
        event_sink=LoggingEventSink(),
        system_actor_id=settings.system_actor_id,
    )

    if args.once:
        resolved = sweeper.sweep()
        print(f"Resolved {len(resolved)} step(s)")
        return 0

    stop = threading.Event()
    signal.signal(signal.SIGINT, lambda *_: stop.set())
    signal.signal(signal.SIGTERM, lambda *_: stop.set())

    interval = args.interval if args.interval is not None else settings.sweep_interval_seconds
    print(f"Sweeping every {interval:g}s (Ctrl-C to stop)")
    ticks = sweeper.run_periodically(interval, stop)
    print(f"Stopped after {ticks} sweep(s)")
    return 0


if __name__ == "__main__":
    sys.exit(main())
