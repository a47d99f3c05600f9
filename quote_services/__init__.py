"""
quote_services -- orchestration of the quotation approval engine.

``WorkflowEngine`` is the facade external code calls; it owns transaction
boundaries and per-aggregate locks, delegates lifecycle rules to
``ApprovalStateMachine`` and timeouts to ``TimeoutSweeper``, and publishes
domain events through an ``ApprovalEventSink``.
"""

from quote_services.approval_state_machine import (
    AUTO_APPROVAL_COMMENT,
    ApprovalStateMachine,
    TransitionOutcome,
)
from quote_services.events import CollectingEventSink, LoggingEventSink, publish_all
from quote_services.timeout_sweeper import TimeoutSweeper
from quote_services.workflow_engine import WorkflowEngine

__all__ = [
    "AUTO_APPROVAL_COMMENT",
    "ApprovalStateMachine",
    "CollectingEventSink",
    "LoggingEventSink",
    "TimeoutSweeper",
    "TransitionOutcome",
    "WorkflowEngine",
    "publish_all",
]
