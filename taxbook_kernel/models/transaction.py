"""
Module: taxbook_kernel.models.transaction
Responsibility: ORM persistence for journal entries (Transactions) and their
    debit/credit lines.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - A Transaction and its lines are flushed together (cascade), so no
      reader sees a header without its lines.
    - Balance (within tolerance), account existence and account activity
      are checked by LedgerService before the flush; is_balanced here is a
      read-side convenience only.
    - Lines reference accounts by code through a real foreign key.
    - A posted Transaction changes only through cancellation; cancelled
      rows stay in place and are filtered out of every balance query.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from taxbook_kernel.db.base import TrackedBase, UUIDString

if TYPE_CHECKING:
    from taxbook_kernel.models.account import Account


class TransactionStatus(str, Enum):
    """draft -> posted; draft|posted -> cancelled."""

    DRAFT = "draft"
    POSTED = "posted"
    CANCELLED = "cancelled"


class TransactionSource(str, Enum):
    MANUAL = "manual"
    RECEIPT = "receipt"


class Transaction(TrackedBase):
    """Journal entry header."""

    __tablename__ = "transactions"

    __table_args__ = (
        UniqueConstraint("transaction_number", name="uq_transaction_number"),
        Index("idx_transaction_org_date", "organization_id", "transaction_date"),
        Index("idx_transaction_status", "status"),
    )

    organization_id: Mapped[str] = mapped_column(String(64), nullable=False)

    transaction_number: Mapped[str] = mapped_column(String(100), nullable=False)

    transaction_date: Mapped[date] = mapped_column(Date, nullable=False)

    description: Mapped[str] = mapped_column(String(500), nullable=False)

    status: Mapped[TransactionStatus] = mapped_column(
        String(10),
        default=TransactionStatus.DRAFT,
        nullable=False,
    )

    source: Mapped[TransactionSource] = mapped_column(
        String(10),
        default=TransactionSource.MANUAL,
        nullable=False,
    )

    approved_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    approval_note: Mapped[str | None] = mapped_column(String(500), nullable=True)

    cancelled_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    lines: Mapped[list["JournalLine"]] = relationship(
        back_populates="transaction",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="JournalLine.line_seq",
    )

    def __repr__(self) -> str:
        return f"<Transaction {self.transaction_number} status={self.status}>"

    @property
    def is_draft(self) -> bool:
        return self.status == TransactionStatus.DRAFT

    @property
    def is_posted(self) -> bool:
        return self.status == TransactionStatus.POSTED

    @property
    def is_cancelled(self) -> bool:
        return self.status == TransactionStatus.CANCELLED

    @property
    def total_debits(self) -> Decimal:
        return sum((line.debit_amount for line in self.lines), Decimal("0"))

    @property
    def total_credits(self) -> Decimal:
        return sum((line.credit_amount for line in self.lines), Decimal("0"))

    def is_balanced(self, tolerance: Decimal = Decimal("0.01")) -> bool:
        return abs(self.total_debits - self.total_credits) <= tolerance


class JournalLine(TrackedBase):
    """
    One line of a Transaction.

    Both amount columns exist so a line can carry a contra amount; at least
    one of them is positive and neither is negative.
    """

    __tablename__ = "journal_lines"

    __table_args__ = (
        CheckConstraint(
            "debit_amount >= 0 AND credit_amount >= 0",
            name="ck_line_amounts_non_negative",
        ),
        Index("idx_line_transaction", "transaction_id"),
        Index("idx_line_account", "account_code"),
        Index("idx_line_tax", "tax_category", "vat_category"),
    )

    transaction_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("transactions.id"),
        nullable=False,
    )

    account_code: Mapped[str] = mapped_column(
        String(20),
        ForeignKey("accounts.code"),
        nullable=False,
    )

    debit_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)

    credit_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)

    description: Mapped[str | None] = mapped_column(String(500), nullable=True)

    # VAT tagging (과세/면세/영세/공제/불공제)
    tax_category: Mapped[str | None] = mapped_column(String(10), nullable=True)
    vat_category: Mapped[str | None] = mapped_column(String(10), nullable=True)

    line_seq: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    transaction: Mapped["Transaction"] = relationship(back_populates="lines")

    account: Mapped["Account"] = relationship(back_populates="journal_lines")

    def __repr__(self) -> str:
        return (
            f"<JournalLine {self.account_code} "
            f"Dr {self.debit_amount} Cr {self.credit_amount}>"
        )
