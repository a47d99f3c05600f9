"""
quote_services.workflow_engine -- Facade of the quotation approval engine.

Responsibility:
    The only entry point external code calls.  Selects the workflow for a
    quotation, opens approvals, applies approver decisions and
    cancellations, runs the timeout sweep and answers read-model queries.
    Emits ``ApprovalRequested``, ``LevelAdvanced`` and ``ApprovalCompleted``
    to the configured sink; it never sends notifications itself.

Architecture position:
    Services layer.  Owns transaction boundaries: one ``session_scope`` per
    operation, committed on success and rolled back on any exception.

Invariants enforced:
    - Catalog snapshot: selection reads the catalog reference once per
      call; ``reload_catalog`` swaps the reference, never mutates it.
    - Per-aggregate serialisation: requests hold the quotation lock,
      decisions, cancellations and sweeps hold the approval lock.
      Different quotations never contend.
    - Events are published after commit, in the order they were produced.
    - No retries: a PersistenceConflictError reaches the caller untouched.

Failure modes:
    - Every ApprovalError / ConcurrencyError from the state machine
      propagates after rollback.
"""

from __future__ import annotations

from datetime import datetime
from typing import Callable, Iterable, TypeVar
from uuid import UUID, uuid4

from sqlalchemy.orm import Session, sessionmaker

from quote_config.schema import EngineSettings, WorkflowCatalog
from quote_engines.workflow_selector import select_workflow
from quote_kernel.db.engine import session_scope
from quote_kernel.domain.approval import (
    ApprovalDashboard,
    ApprovalDecision,
    ApprovalEventSink,
    ApprovalWorkflow,
    QuotationApproval,
    QuotationSnapshot,
)
from quote_kernel.domain.clock import Clock, SystemClock
from quote_kernel.logging_config import LogContext, get_logger
from quote_kernel.selectors.approval_selector import ApprovalSelector
from quote_kernel.services.approval_service import ApprovalService
from quote_kernel.utils.keyed_lock import KeyedLock
from quote_services.approval_state_machine import (
    ApprovalStateMachine,
    TransitionOutcome,
    quotation_id_of,
)
from quote_services.events import publish_all
from quote_services.timeout_sweeper import TimeoutSweeper, approval_lock_key

logger = get_logger("services.workflow_engine")

T = TypeVar("T")


def quotation_lock_key(quotation_id: str) -> tuple[str, str]:
    return ("quotation", quotation_id)


class WorkflowEngine:
    """Facade combining selection, the approval state machine and the sweeper."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        catalog: WorkflowCatalog | Iterable[ApprovalWorkflow] = (),
        *,
        clock: Clock | None = None,
        event_sink: ApprovalEventSink | None = None,
        settings: EngineSettings | None = None,
        locks: KeyedLock | None = None,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._event_sink = event_sink
        self._settings = settings or EngineSettings()
        self._locks = locks or KeyedLock()
        self._catalog: tuple[ApprovalWorkflow, ...] = tuple(catalog)
        self._sweeper = TimeoutSweeper(
            session_factory,
            clock=self._clock,
            locks=self._locks,
            event_sink=event_sink,
            system_actor_id=self._settings.system_actor_id,
        )

    @property
    def catalog(self) -> tuple[ApprovalWorkflow, ...]:
        return self._catalog

    @property
    def sweeper(self) -> TimeoutSweeper:
        return self._sweeper

    def reload_catalog(self, catalog: WorkflowCatalog | Iterable[ApprovalWorkflow]) -> None:
        """Replace the workflow catalog.  In-flight approvals keep their snapshot."""
        self._catalog = tuple(catalog)
        logger.info("workflow_catalog_replaced", extra={"workflow_count": len(self._catalog)})

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------

    def select_workflow(
        self,
        quotation: QuotationSnapshot,
        workflows: Iterable[ApprovalWorkflow] | None = None,
    ) -> ApprovalWorkflow | None:
        catalog = tuple(workflows) if workflows is not None else self._catalog
        return select_workflow(quotation, catalog)

    def on_quotation_ready_for_approval(
        self,
        quotation: QuotationSnapshot,
        requested_by_user_id: str,
        workflows: Iterable[ApprovalWorkflow] | None = None,
    ) -> QuotationApproval | None:
        """Open an approval if a workflow applies.

        Returns None when no workflow matches: the quotation needs no
        approval and no event is emitted.
        """
        quotation_id = quotation_id_of(quotation)
        workflow = self.select_workflow(quotation, workflows)
        if workflow is None:
            logger.info(
                "approval_not_required",
                extra={"quotation_id": quotation_id, "requested_by": requested_by_user_id},
            )
            return None
        logger.info(
            "workflow_selected",
            extra={
                "quotation_id": quotation_id,
                "workflow_id": workflow.id,
                "priority": workflow.priority,
            },
        )
        return self.request_approval(quotation, workflow, requested_by_user_id)

    def request_approval(
        self,
        quotation: QuotationSnapshot,
        workflow: ApprovalWorkflow,
        requested_by_user_id: str,
    ) -> QuotationApproval:
        """Open an approval under an explicitly chosen workflow."""
        quotation_id = quotation_id_of(quotation)
        with LogContext.bind(
            correlation_id=str(uuid4()),
            quotation_id=quotation_id,
            workflow_id=workflow.id,
            actor_id=requested_by_user_id,
        ):
            with self._locks.hold(quotation_lock_key(quotation_id)):
                outcome = self._transact(
                    lambda machine: machine.request_approval(
                        quotation, workflow, requested_by_user_id,
                    )
                )
            publish_all(self._event_sink, outcome.events)
        return outcome.approval

    def process_decision(
        self,
        approval_id: UUID,
        approver_user_id: str,
        decision: ApprovalDecision | str,
        comments: str | None = None,
    ) -> QuotationApproval:
        """Record an approver's decision and advance or finish the approval."""
        decision = ApprovalDecision(decision)
        with LogContext.bind(
            correlation_id=str(uuid4()),
            approval_id=str(approval_id),
            actor_id=approver_user_id,
        ):
            with self._locks.hold(approval_lock_key(approval_id)):
                outcome = self._transact(
                    lambda machine: machine.process_decision(
                        approval_id, approver_user_id, decision, comments,
                    )
                )
            publish_all(self._event_sink, outcome.events)
        return outcome.approval

    def on_approver_decision(
        self,
        approval_id: UUID,
        approver_user_id: str,
        decision: ApprovalDecision | str,
        comments: str | None = None,
    ) -> QuotationApproval:
        return self.process_decision(approval_id, approver_user_id, decision, comments)

    def cancel(self, approval_id: UUID, by_user_id: str) -> QuotationApproval:
        with LogContext.bind(
            correlation_id=str(uuid4()),
            approval_id=str(approval_id),
            actor_id=by_user_id,
        ):
            with self._locks.hold(approval_lock_key(approval_id)):
                outcome = self._transact(
                    lambda machine: machine.cancel(approval_id, by_user_id)
                )
            publish_all(self._event_sink, outcome.events)
        return outcome.approval

    def on_timeout_tick(self, now: datetime | None = None) -> list[UUID]:
        """Run one sweep.  Returns the ids of auto-approved steps."""
        with LogContext.bind(correlation_id=str(uuid4())):
            return self._sweeper.sweep(now or self._clock.now())

    def sweep(self, now: datetime | None = None) -> list[UUID]:
        return self.on_timeout_tick(now)

    # ------------------------------------------------------------------
    # Read model
    # ------------------------------------------------------------------

    def get_approval(self, approval_id: UUID) -> QuotationApproval:
        return self._read(lambda selector: selector.get_approval(approval_id))

    def get_approval_status(self, quotation_id: str) -> QuotationApproval | None:
        return self._read(lambda selector: selector.get_approval_status(str(quotation_id)))

    def get_pending_approvals_for_user(self, user_id: str) -> list[QuotationApproval]:
        return self._read(lambda selector: selector.pending_for_user(user_id))

    def get_dashboard(
        self,
        as_of: datetime | None = None,
        user_id: str | None = None,
    ) -> ApprovalDashboard:
        as_of = as_of or self._clock.now()
        return self._read(lambda selector: selector.dashboard(as_of, user_id))

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _transact(
        self,
        operation: Callable[[ApprovalStateMachine], TransitionOutcome],
    ) -> TransitionOutcome:
        with session_scope(self._session_factory) as session:
            machine = ApprovalStateMachine(
                ApprovalService(session, self._clock),
                self._clock,
                eligible_statuses=self._settings.eligible_quotation_statuses,
            )
            return operation(machine)

    def _read(self, query: Callable[[ApprovalSelector], T]) -> T:
        with session_scope(self._session_factory) as session:
            return query(ApprovalSelector(session))
