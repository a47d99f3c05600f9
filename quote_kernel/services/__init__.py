"""Services for the approval kernel (write side)."""

from quote_kernel.services.approval_service import ApprovalService, compute_workflow_hash
from quote_kernel.services.log_capture import LogCapture

__all__ = [
    "ApprovalService",
    "LogCapture",
    "compute_workflow_hash",
]
