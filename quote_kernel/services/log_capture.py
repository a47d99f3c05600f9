"""
LogCapture -- in-process structured log capture.

Responsibility:
    Collects the structured records emitted under the ``quote_kernel``
    logger hierarchy so callers (tests, operator tooling) can inspect the
    decision trail of an approval without external log infrastructure.

Usage::

    capture = LogCapture().install()
    try:
        engine.on_approver_decision(approval_id, "alice", ApprovalDecision.APPROVE)
    finally:
        capture.uninstall()

    capture.query_by_approval_id(str(approval_id))
"""

import json
import logging
from typing import Any

from quote_kernel.logging_config import StructuredFormatter

_LOGGER_PREFIX = "quote_kernel"


class LogCapture(logging.Handler):
    """Log handler that keeps each record as the dict StructuredFormatter emits."""

    def __init__(self, level: int = logging.DEBUG):
        super().__init__(level)
        self._records: list[dict[str, Any]] = []
        self._formatter = StructuredFormatter()
        self._previous_level: int | None = None

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self._records.append(json.loads(self._formatter.format(record)))
        except (TypeError, ValueError):
            self._records.append({
                "level": record.levelname,
                "logger": record.name,
                "message": record.getMessage(),
            })

    def install(self) -> "LogCapture":
        """Attach to the quote_kernel logger hierarchy.  Returns self."""
        logger = logging.getLogger(_LOGGER_PREFIX)
        logger.addHandler(self)
        self._previous_level = logger.level
        if logger.level > self.level or logger.level == logging.NOTSET:
            logger.setLevel(self.level)
        return self

    def uninstall(self) -> None:
        logger = logging.getLogger(_LOGGER_PREFIX)
        logger.removeHandler(self)
        if self._previous_level is not None:
            logger.setLevel(self._previous_level)
            self._previous_level = None

    def __enter__(self) -> "LogCapture":
        return self.install()

    def __exit__(self, *exc: Any) -> None:
        self.uninstall()

    # -----------------------------------------------------------------------
    # Queries
    # -----------------------------------------------------------------------

    def query_by_correlation_id(self, correlation_id: str) -> list[dict]:
        return [r for r in self._records if r.get("correlation_id") == correlation_id]

    def query_by_approval_id(self, approval_id: str) -> list[dict]:
        return [r for r in self._records if r.get("approval_id") == approval_id]

    def messages(self) -> list[str]:
        """Event names in emission order."""
        return [r.get("message", "") for r in self._records]

    @property
    def records(self) -> list[dict]:
        """All captured records (read-only copy)."""
        return list(self._records)

    def clear(self) -> None:
        self._records.clear()

    def __len__(self) -> int:
        return len(self._records)
