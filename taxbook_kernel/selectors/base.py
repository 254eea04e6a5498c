"""
Module: taxbook_kernel.selectors.base
Responsibility: Abstract base class for read-only query selectors.
Architecture position: Kernel > Selectors.  May import from db/ and models/.

Invariants enforced:
    - Read-only: selectors never add, delete, flush or commit.
    - Selectors return frozen dataclasses, not ORM instances.
    - There are no stored balances; every figure is aggregated from
      journal lines at read time.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from taxbook_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseSelector(ABC, Generic[ModelType]):
    """Selectors accept a Session from the caller and perform read-only queries."""

    def __init__(self, session: Session):
        self.session = session
