"""
BaseService -- base for kernel services that write.

Services receive a SQLAlchemy ``Session`` from the caller and persist with
``session.flush()``.  They never commit or roll back; the caller (the
workflow engine facade, the timeout sweeper, or a test) owns the
transaction.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from quote_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """Holds the caller's session.  Subclasses flush, never commit."""

    def __init__(self, session: Session):
        self.session = session
