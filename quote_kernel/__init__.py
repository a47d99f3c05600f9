"""
Quotation Approval Kernel

Persistence, domain types and lifecycle services for the quotation
approval workflow engine:
- Closed-operator workflow conditions
- Multi-level, multi-approver sign-off state machine
- One open approval per quotation
- Optimistic per-approval concurrency control
"""

__version__ = "0.1.0"
