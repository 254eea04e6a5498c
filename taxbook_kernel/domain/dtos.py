"""
DTOs -- immutable data crossing the kernel boundary.

Inputs (JournalLineSpec, TransactionSpec) describe an entry a caller wants
to write; outputs (TransactionRecord, JournalLineRecord) are detached
snapshots of persisted rows so callers never hold live ORM instances
after the session closes.

Data flow:
    TransactionSpec -> LedgerService.post_transaction -> TransactionRecord
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

if TYPE_CHECKING:
    from taxbook_kernel.models.transaction import (
        JournalLine as JournalLineModel,
    )
    from taxbook_kernel.models.transaction import (
        Transaction as TransactionModel,
    )


def _to_decimal(value: Decimal | int | str | float | None) -> Decimal:
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    # str() first so binary floats keep their printed value
    return Decimal(str(value))


@dataclass(frozen=True)
class JournalLineSpec:
    """
    One requested line of a journal entry.

    Amounts are coerced to Decimal; sign and balance rules are checked by
    LedgerService so the failure carries the rule name.
    """

    account_code: str
    debit_amount: Decimal = Decimal("0")
    credit_amount: Decimal = Decimal("0")
    description: str | None = None
    tax_category: str | None = None
    vat_category: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "account_code", str(self.account_code))
        object.__setattr__(self, "debit_amount", _to_decimal(self.debit_amount))
        object.__setattr__(self, "credit_amount", _to_decimal(self.credit_amount))

    @classmethod
    def debit(cls, account_code: str, amount, **kwargs) -> JournalLineSpec:
        return cls(account_code=account_code, debit_amount=amount, **kwargs)

    @classmethod
    def credit(cls, account_code: str, amount, **kwargs) -> JournalLineSpec:
        return cls(account_code=account_code, credit_amount=amount, **kwargs)


@dataclass(frozen=True)
class TransactionSpec:
    """
    A journal entry as requested by a caller.

    Entry-level tax_category / vat_category apply to every line that does
    not carry its own tags.
    """

    organization_id: str
    transaction_date: date
    description: str
    lines: tuple[JournalLineSpec, ...] = field(default_factory=tuple)
    tax_category: str | None = None
    vat_category: str | None = None
    source: str = "manual"

    def __post_init__(self) -> None:
        if not isinstance(self.lines, tuple):
            object.__setattr__(self, "lines", tuple(self.lines))

    @property
    def total_debits(self) -> Decimal:
        return sum((line.debit_amount for line in self.lines), Decimal("0"))

    @property
    def total_credits(self) -> Decimal:
        return sum((line.credit_amount for line in self.lines), Decimal("0"))


@dataclass(frozen=True)
class JournalLineRecord:
    line_seq: int
    account_code: str
    debit_amount: Decimal
    credit_amount: Decimal
    description: str | None
    tax_category: str | None
    vat_category: str | None

    @classmethod
    def from_model(cls, line: JournalLineModel) -> JournalLineRecord:
        return cls(
            line_seq=line.line_seq,
            account_code=line.account_code,
            debit_amount=line.debit_amount,
            credit_amount=line.credit_amount,
            description=line.description,
            tax_category=line.tax_category,
            vat_category=line.vat_category,
        )


@dataclass(frozen=True)
class TransactionRecord:
    """Detached snapshot of a persisted Transaction and its lines."""

    id: UUID
    transaction_number: str
    organization_id: str
    transaction_date: date
    description: str
    status: str
    source: str
    lines: tuple[JournalLineRecord, ...]
    created_by_id: UUID
    approved_by_id: UUID | None = None
    approved_at: datetime | None = None
    cancelled_by_id: UUID | None = None
    cancelled_at: datetime | None = None
    cancellation_reason: str | None = None

    @property
    def total_debits(self) -> Decimal:
        return sum((line.debit_amount for line in self.lines), Decimal("0"))

    @property
    def total_credits(self) -> Decimal:
        return sum((line.credit_amount for line in self.lines), Decimal("0"))

    @classmethod
    def from_model(cls, txn: TransactionModel) -> TransactionRecord:
        return cls(
            id=txn.id,
            transaction_number=txn.transaction_number,
            organization_id=txn.organization_id,
            transaction_date=txn.transaction_date,
            description=txn.description,
            status=str(getattr(txn.status, "value", txn.status)),
            source=str(getattr(txn.source, "value", txn.source)),
            lines=tuple(JournalLineRecord.from_model(line) for line in txn.lines),
            created_by_id=txn.created_by_id,
            approved_by_id=txn.approved_by_id,
            approved_at=txn.approved_at,
            cancelled_by_id=txn.cancelled_by_id,
            cancelled_at=txn.cancelled_at,
            cancellation_reason=txn.cancellation_reason,
        )
