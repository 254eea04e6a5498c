"""
BaseService -- abstract base for all write services.

Every service receives a SQLAlchemy ``Session`` from its caller and uses
``session.flush()`` only.  The caller (BackOffice facade, test harness)
owns commit and rollback, so a multi-step operation such as posting a
receipt (write Transaction, then update Receipt) stays atomic.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from taxbook_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for services.

    Guarantees:
        - Never calls ``session.commit()``.  The single exception is
          ``session.rollback()`` after an IntegrityError, which is the
          only way to leave a failed flush usable.
    """

    def __init__(self, session: Session):
        self.session = session
