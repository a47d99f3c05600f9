"""
quote_services.timeout_sweeper -- Auto-approval of overdue approval levels.

Responsibility:
    Finds open approvals whose current level has an auto-approval timeout
    that has elapsed and auto-approves the outstanding steps, then lets the
    state machine resolve the level.

Architecture position:
    Services layer.  Owns its transactions: one read transaction to plan
    the sweep, then one transaction per approval.

Invariants enforced:
    - Serialised with decisions: each approval is swept under the same
      per-approval lock the workflow engine uses, and re-checked after the
      lock is taken.
    - Idempotent: a step that is no longer PENDING is never touched, so a
      second sweep at the same ``now`` resolves nothing.
    - Isolation: a failure on one approval is logged and does not stop the
      sweep of the others.

Failure modes:
    - PersistenceConflictError / ApprovalError on one approval: logged as
      ``sweep_approval_failed``; the next tick retries it.
"""

from __future__ import annotations

import threading
from datetime import datetime
from uuid import UUID

from sqlalchemy.orm import Session, sessionmaker

from quote_engines.approval import steps_due_for_auto_approval
from quote_kernel.db.engine import session_scope
from quote_kernel.domain.approval import ApprovalEventSink
from quote_kernel.domain.clock import Clock, SystemClock
from quote_kernel.exceptions import ApprovalError, ConcurrencyError
from quote_kernel.logging_config import LogContext, get_logger
from quote_kernel.selectors.approval_selector import ApprovalSelector
from quote_kernel.services.approval_service import ApprovalService
from quote_kernel.utils.keyed_lock import KeyedLock
from quote_services.approval_state_machine import ApprovalStateMachine
from quote_services.events import publish_all

logger = get_logger("services.timeout_sweeper")


def approval_lock_key(approval_id: UUID) -> tuple[str, str]:
    return ("approval", str(approval_id))


class TimeoutSweeper:
    """Periodic auto-approval pass over open approvals."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Clock | None = None,
        locks: KeyedLock | None = None,
        event_sink: ApprovalEventSink | None = None,
        system_actor_id: str = "system",
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._locks = locks or KeyedLock()
        self._event_sink = event_sink
        self._system_actor_id = system_actor_id

    def due_approval_ids(self, now: datetime) -> list[UUID]:
        """Open approvals with at least one step due at ``now``."""
        with session_scope(self._session_factory) as session:
            candidates = ApprovalSelector(session).open_approvals(activated_before=now)
            return [
                a.approval_id for a in candidates
                if steps_due_for_auto_approval(a, now)
            ]

    def sweep(self, now: datetime | None = None) -> list[UUID]:
        """Auto-approve every overdue step.  Returns the ids of resolved steps."""
        now = now or self._clock.now()
        resolved: list[UUID] = []
        failures = 0

        with LogContext.bind(actor_id=self._system_actor_id):
            due = self.due_approval_ids(now)
            for approval_id in due:
                try:
                    step_ids = self._sweep_one(approval_id, now)
                except (ConcurrencyError, ApprovalError) as exc:
                    failures += 1
                    logger.warning(
                        "sweep_approval_failed",
                        extra={
                            "approval_id": str(approval_id),
                            "error_code": exc.code,
                            "error": str(exc),
                        },
                    )
                    continue
                resolved.extend(step_ids)

            logger.info(
                "sweep_completed",
                extra={
                    "as_of": now,
                    "approvals_considered": len(due),
                    "steps_resolved": len(resolved),
                    "failures": failures,
                },
            )
        return resolved

    def _sweep_one(
        self,
        approval_id: UUID,
        now: datetime,
    ) -> tuple[UUID, ...]:
        with LogContext.bind(approval_id=str(approval_id)):
            with self._locks.hold(approval_lock_key(approval_id)):
                with session_scope(self._session_factory) as session:
                    machine = ApprovalStateMachine(ApprovalService(session, self._clock), self._clock)
                    outcome = machine.auto_approve_due(approval_id, now)
                publish_all(self._event_sink, outcome.events)
        return outcome.resolved_step_ids

    def run_periodically(
        self,
        interval_seconds: float,
        stop_event: threading.Event,
        max_ticks: int | None = None,
    ) -> int:
        """Sweep every ``interval_seconds`` until ``stop_event`` is set.

        Returns the number of ticks run.  An unexpected error in one tick is
        logged and the loop carries on.
        """
        ticks = 0
        logger.info("sweeper_started", extra={"interval_seconds": interval_seconds})
        while not stop_event.is_set():
            try:
                self.sweep()
            except Exception:
                logger.exception("sweep_tick_failed")
            ticks += 1
            if max_ticks is not None and ticks >= max_ticks:
                break
            stop_event.wait(interval_seconds)
        logger.info("sweeper_stopped", extra={"ticks": ticks})
        return ticks
