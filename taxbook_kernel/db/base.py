"""
Module: taxbook_kernel.db.base
Responsibility: Declarative base for every taxbook table: accounts, journal
    entries, tax returns and receipts.
Architecture position: Kernel > DB.  Imports nothing from the rest of the
    package.

Column conventions:
    - Primary keys are uuid4 values kept in String(36), so the same schema
      runs on PostgreSQL and SQLite.
    - ``Mapped[Decimal]`` becomes Numeric(38, 9).  Won amounts carry no
      minor unit, but tax rates and computed VAT do; float is never used.
    - Every row records the actor who created it and the last actor who
      changed it.  The database stamps the times.
"""

from datetime import datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import BigInteger, DateTime, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

MONEY = Numeric(38, 9)


class UUIDString(TypeDecorator):
    """uuid.UUID in Python, its canonical 36-character text in the database."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else PyUUID(value)


class Base(DeclarativeBase):
    type_annotation_map: ClassVar[dict] = {
        Decimal: MONEY,
        datetime: DateTime(timezone=True),
        PyUUID: UUIDString(),
        int: BigInteger,
    }

    id: Mapped[PyUUID] = mapped_column(primary_key=True, default=uuid4)


class TrackedBase(Base):
    """Adds created/updated timestamps and actor ids."""

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now()
    )
    created_by_id: Mapped[PyUUID]
    updated_by_id: Mapped[PyUUID | None]


UUID = PyUUID
