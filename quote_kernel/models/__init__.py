"""ORM models for the approval kernel."""

from quote_kernel.models.approval import ApprovalStepModel, QuotationApprovalModel

__all__ = [
    "ApprovalStepModel",
    "QuotationApprovalModel",
]
