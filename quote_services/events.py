"""
quote_services.events -- Delivery of approval domain events.

Events are published after the transaction that produced them commits, so a
consumer never sees an event for a rolled-back change.  Sinks implement the
``ApprovalEventSink`` protocol from the domain layer.
"""

from __future__ import annotations

import threading
from typing import Iterable

from quote_kernel.domain.approval import ApprovalEvent, ApprovalEventSink
from quote_kernel.logging_config import get_logger

logger = get_logger("services.events")


class CollectingEventSink:
    """Keeps published events in memory, in publication order."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._events: list[ApprovalEvent] = []

    def publish(self, event: ApprovalEvent) -> None:
        with self._lock:
            self._events.append(event)

    @property
    def events(self) -> list[ApprovalEvent]:
        with self._lock:
            return list(self._events)

    def of_type(self, event_type: type) -> list[ApprovalEvent]:
        return [e for e in self.events if isinstance(e, event_type)]

    def clear(self) -> None:
        with self._lock:
            self._events.clear()


class LoggingEventSink:
    """Writes each event to the structured log."""

    def publish(self, event: ApprovalEvent) -> None:
        payload = {k: v for k, v in vars(event).items() if k != "event_type"}
        logger.info(
            "domain_event_published",
            extra={"event_type": event.event_type, "payload": payload},
        )


def publish_all(sink: ApprovalEventSink | None, events: Iterable[ApprovalEvent]) -> None:
    """Publish committed events.  A failing sink is logged; the change stays committed."""
    if sink is None:
        return
    for event in events:
        try:
            sink.publish(event)
        except Exception:
            logger.exception(
                "domain_event_publish_failed",
                extra={"event_type": event.event_type},
            )
