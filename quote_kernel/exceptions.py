"""
Typed Exception Hierarchy for the Quotation Approval Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the approval engine (HTTP controllers, schedulers, notification
workers) must react to failures precisely.  Parsing message strings is
fragile, so every error here:
  1. Has a TYPED exception class (catch by type, not message)
  2. Has a CODE attribute (machine-readable, API-safe)
  3. Carries structured DATA (not just a message string)

Example - WRONG way to handle errors:
    try:
        engine.on_approver_decision(...)
    except Exception as e:
        if "already decided" in str(e):
            ...

Example - RIGHT way:
    try:
        engine.on_approver_decision(...)
    except AlreadyDecidedError as e:
        api_response(code=e.code, step=e.step_id)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    QuoteApprovalError (base)
    |
    +-- ConfigurationError
    |
    +-- ApprovalError
    |   +-- ApprovalNotFoundError
    |   +-- DuplicateApprovalError
    |   +-- NotAnApproverError
    |   +-- AlreadyDecidedError
    |   +-- ApprovalNotOpenError
    |   +-- InvalidApprovalTransitionError
    |   +-- QuotationNotEligibleError
    |
    +-- ConcurrencyError
    |   +-- PersistenceConflictError
    |
    +-- ImmutableRecordError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                         | When Raised
----------------|------------------------------|-----------------------------------------
Configuration   | CONFIGURATION_ERROR          | Malformed workflow, level or condition
----------------|------------------------------|-----------------------------------------
Approval        | APPROVAL_NOT_FOUND           | Approval id doesn't exist
                | DUPLICATE_APPROVAL           | Quotation already has an open approval
                | NOT_AN_APPROVER              | No PENDING step for user at current level
                | ALREADY_DECIDED              | User's step was already decided
                | APPROVAL_NOT_OPEN            | Approval is APPROVED/REJECTED/CANCELLED
                | INVALID_APPROVAL_TRANSITION  | Status change not in transition table
                | QUOTATION_NOT_ELIGIBLE       | Quotation status can't enter approval
----------------|------------------------------|-----------------------------------------
Concurrency     | PERSISTENCE_CONFLICT         | Optimistic version check failed
----------------|------------------------------|-----------------------------------------
Audit trail     | IMMUTABLE_RECORD             | Delete, or change of a decided step

Caller errors (everything under ApprovalError) are rejected synchronously
and must not be retried.  PersistenceConflictError may be retried by the
caller for the single operation that failed; the engine never retries.
ConfigurationError raised while evaluating a condition is logged and
degrades to "no match".
"""


class QuoteApprovalError(Exception):
    """
    Base exception for all quotation approval errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "QUOTE_APPROVAL_ERROR"


# Configuration exceptions


class ConfigurationError(QuoteApprovalError):
    """A workflow, level or condition definition is malformed."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, reason: str, workflow_id: str | None = None):
        self.reason = reason
        self.workflow_id = workflow_id
        if workflow_id is not None:
            super().__init__(f"Invalid workflow {workflow_id}: {reason}")
        else:
            super().__init__(f"Invalid configuration: {reason}")


# Approval lifecycle exceptions


class ApprovalError(QuoteApprovalError):
    """Base exception for approval lifecycle errors."""

    code: str = "APPROVAL_ERROR"


class ApprovalNotFoundError(ApprovalError):
    """Approval with given ID was not found."""

    code: str = "APPROVAL_NOT_FOUND"

    def __init__(self, approval_id: str):
        self.approval_id = approval_id
        super().__init__(f"Approval not found: {approval_id}")


class DuplicateApprovalError(ApprovalError):
    """The quotation already has an open (PENDING) approval."""

    code: str = "DUPLICATE_APPROVAL"

    def __init__(self, quotation_id: str, existing_approval_id: str | None = None):
        self.quotation_id = quotation_id
        self.existing_approval_id = existing_approval_id
        super().__init__(
            f"Quotation {quotation_id} already has a pending approval request"
        )


class NotAnApproverError(ApprovalError):
    """The user has no PENDING step at the approval's current level."""

    code: str = "NOT_AN_APPROVER"

    def __init__(self, approval_id: str, user_id: str, level: int):
        self.approval_id = approval_id
        self.user_id = user_id
        self.level = level
        super().__init__(
            f"User {user_id} is not an approver at level {level} "
            f"of approval {approval_id}"
        )


class AlreadyDecidedError(ApprovalError):
    """The user's step has already been decided."""

    code: str = "ALREADY_DECIDED"

    def __init__(self, approval_id: str, step_id: str, status: str):
        self.approval_id = approval_id
        self.step_id = step_id
        self.status = status
        super().__init__(
            f"Approval step {step_id} has already been processed (status={status})"
        )


class ApprovalNotOpenError(ApprovalError):
    """The approval is terminal and accepts no further changes."""

    code: str = "APPROVAL_NOT_OPEN"

    def __init__(self, approval_id: str, status: str):
        self.approval_id = approval_id
        self.status = status
        super().__init__(
            f"Approval {approval_id} is no longer pending (status={status})"
        )


class InvalidApprovalTransitionError(ApprovalError):
    """Status change not permitted by the transition table."""

    code: str = "INVALID_APPROVAL_TRANSITION"

    def __init__(self, from_status: str, to_status: str):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(f"Invalid approval transition: {from_status} -> {to_status}")


class QuotationNotEligibleError(ApprovalError):
    """The quotation's status does not allow submission for approval."""

    code: str = "QUOTATION_NOT_ELIGIBLE"

    def __init__(self, quotation_id: str, status: str, allowed: tuple[str, ...]):
        self.quotation_id = quotation_id
        self.status = status
        self.allowed = allowed
        super().__init__(
            f"Quotation {quotation_id} has status {status}; only "
            f"{', '.join(allowed)} quotations can be submitted for approval"
        )


# Concurrency-related exceptions


class ConcurrencyError(QuoteApprovalError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class PersistenceConflictError(ConcurrencyError):
    """Optimistic locking conflict detected on an approval row."""

    code: str = "PERSISTENCE_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Persistence conflict on {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )


# Audit-trail exceptions


class ImmutableRecordError(QuoteApprovalError):
    """Attempt to delete an approval record or rewrite a decided step."""

    code: str = "IMMUTABLE_RECORD"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(f"{entity_type} {entity_id} is immutable: {reason}")
