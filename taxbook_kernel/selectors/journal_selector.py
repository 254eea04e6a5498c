"""
Module: taxbook_kernel.selectors.journal_selector
Responsibility: Read-only access to Transactions and their lines, returned
    as TransactionRecord DTOs.
Architecture position: Kernel > Selectors.

Failure modes:
    - get() returns None for unknown ids; callers decide whether absence is
      an error.
"""

from dataclasses import dataclass
from datetime import date
from uuid import UUID

from sqlalchemy import func, select

from taxbook_kernel.domain.dtos import TransactionRecord
from taxbook_kernel.models.transaction import (
    JournalLine,
    Transaction,
    TransactionStatus,
)
from taxbook_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class TransactionPage:
    items: tuple[TransactionRecord, ...]
    total: int
    page: int
    limit: int

    @property
    def pages(self) -> int:
        if self.limit <= 0:
            return 0
        return (self.total + self.limit - 1) // self.limit


class JournalSelector(BaseSelector[Transaction]):
    """Selector for transaction queries, newest transaction_date first."""

    def get(self, transaction_id: UUID) -> TransactionRecord | None:
        txn = self.session.get(Transaction, transaction_id)
        return TransactionRecord.from_model(txn) if txn is not None else None

    def list_transactions(
        self,
        organization_id: str | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
        status: TransactionStatus | None = None,
        account_code: str | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> TransactionPage:
        """Filtered, paginated listing. ``page`` is 1-based."""
        query = select(Transaction)
        if organization_id is not None:
            query = query.where(Transaction.organization_id == organization_id)
        if start_date is not None:
            query = query.where(Transaction.transaction_date >= start_date)
        if end_date is not None:
            query = query.where(Transaction.transaction_date <= end_date)
        if status is not None:
            query = query.where(Transaction.status == TransactionStatus(status).value)
        if account_code is not None:
            query = query.where(
                Transaction.id.in_(
                    select(JournalLine.transaction_id).where(
                        JournalLine.account_code == account_code
                    )
                )
            )

        total = self.session.execute(
            select(func.count()).select_from(query.subquery())
        ).scalar_one()

        page = max(page, 1)
        rows = (
            self.session.execute(
                query.order_by(
                    Transaction.transaction_date.desc(),
                    Transaction.transaction_number.desc(),
                )
                .offset((page - 1) * limit)
                .limit(limit)
            )
            .scalars()
            .all()
        )
        return TransactionPage(
            items=tuple(TransactionRecord.from_model(t) for t in rows),
            total=total,
            page=page,
            limit=limit,
        )

    def count_lines_for_account(self, account_code: str) -> int:
        return self.session.execute(
            select(func.count(JournalLine.id)).where(
                JournalLine.account_code == account_code
            )
        ).scalar_one()
