"""
Structured JSON logging for the quotation approval engine.

Every record under the ``quote_kernel`` logger namespace is written as one
JSON object per line.  Approval-scoped fields (correlation, approval,
quotation, actor and workflow ids) are carried by ``LogContext`` and
merged into each record, so a single decision can be traced across the
facade, the state machine and the persistence service.
"""

__all__ = [
    "StructuredFormatter",
    "LogContext",
    "get_logger",
    "configure_logging",
    "reset_logging",
]

import json
import logging
import sys
import threading
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Iterator, Mapping

_LOGGER_PREFIX = "quote_kernel"

CONTEXT_FIELDS = (
    "correlation_id",
    "approval_id",
    "quotation_id",
    "actor_id",
    "workflow_id",
)

_EMPTY: Mapping[str, str] = MappingProxyType({})
_context: ContextVar[Mapping[str, str]] = ContextVar("quote_log_context", default=_EMPTY)


class LogContext:
    """Approval-scoped log fields, isolated per thread and per task."""

    @staticmethod
    def _merge(fields: Mapping[str, Any]) -> Mapping[str, str]:
        current = dict(_context.get())
        current.update(
            (name, str(value))
            for name, value in fields.items()
            if name in CONTEXT_FIELDS and value is not None
        )
        return MappingProxyType(current)

    @classmethod
    def set(cls, **fields: Any) -> None:
        """Set fields for the rest of the current context.  None is ignored."""
        _context.set(cls._merge(fields))

    @classmethod
    @contextmanager
    def bind(cls, **fields: Any) -> Iterator[None]:
        """Set fields inside a ``with`` block; previous values return on exit."""
        token = _context.set(cls._merge(fields))
        try:
            yield
        finally:
            _context.reset(token)

    @staticmethod
    def get_all() -> dict[str, str]:
        return dict(_context.get())

    @staticmethod
    def clear() -> None:
        _context.set(_EMPTY)


# Attributes every LogRecord carries; anything else came in through ``extra``.
_RECORD_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _json_default(obj: Any) -> Any:
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, datetime):
        return obj.isoformat()
    # UUID, Decimal and anything else
    return str(obj)


class StructuredFormatter(logging.Formatter):
    """One JSON object per record: envelope, context, extras, exception."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **_context.get(),
        }
        payload.update(
            (key, val) for key, val in vars(record).items()
            if key not in _RECORD_ATTRS and key not in payload
        )

        if record.exc_info and record.exc_info[1] is not None:
            exc = record.exc_info[1]
            payload["exc_type"] = type(exc).__name__
            payload["exc_message"] = str(exc)
            code = getattr(exc, "code", None)
            if code is not None:
                payload["exc_code"] = code
            # QuoteApprovalError subclasses carry their ids as attributes
            payload.update(
                (f"exc_{key}", val) for key, val in vars(exc).items()
                if not key.startswith("_")
            )
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_json_default)


def get_logger(name: str) -> logging.Logger:
    """Logger under the ``quote_kernel`` namespace."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


_configured = False
_lock = threading.Lock()


def configure_logging(
    *,
    level: int | str = logging.INFO,
    handler: logging.Handler | None = None,
) -> None:
    """Attach a JSON handler (stderr by default) to the namespace.  Idempotent."""
    global _configured
    with _lock:
        if _configured:
            return
        _configured = True

        namespace = logging.getLogger(_LOGGER_PREFIX)
        namespace.setLevel(level)
        namespace.propagate = False
        handler = handler or logging.StreamHandler(sys.stderr)
        handler.setFormatter(StructuredFormatter())
        namespace.addHandler(handler)


def reset_logging() -> None:
    """Undo ``configure_logging``.  Used by tests."""
    global _configured
    with _lock:
        _configured = False
        namespace = logging.getLogger(_LOGGER_PREFIX)
        namespace.handlers.clear()
        namespace.setLevel(logging.WARNING)
        namespace.propagate = True
