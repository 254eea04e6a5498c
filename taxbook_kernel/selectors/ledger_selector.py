"""
Module: taxbook_kernel.selectors.ledger_selector
Responsibility: Read-only balance queries over journal lines: point-in-time
    account balances, period activity windows and VAT tag totals.
Architecture position: Kernel > Selectors.  May import from models/ and
    selectors/base.py.

Invariants enforced:
    - No stored balances.  Every figure is an aggregation over JournalLine
      rows at query time, so any historical as_of_date is answerable.
    - Cancelled transactions are excluded by filter; draft and posted
      transactions both count.
    - Sign convention: debit-normal balance = debit - credit;
      credit-normal balance = credit - debit.

Consistency:
    Reads run at the session's isolation level (READ COMMITTED on
    PostgreSQL).  Two overlapping readers can see different snapshots if a
    posting commits between them; no locks are taken.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from sqlalchemy import func, select

from taxbook_kernel.exceptions import AccountNotFoundError
from taxbook_kernel.models.account import Account, AccountCategory, NormalBalance
from taxbook_kernel.models.transaction import (
    JournalLine,
    Transaction,
    TransactionStatus,
)
from taxbook_kernel.selectors.base import BaseSelector

ZERO = Decimal("0")


def _value(member) -> str:
    return getattr(member, "value", member)


def signed_balance(
    normal_balance: NormalBalance | str,
    total_debit: Decimal,
    total_credit: Decimal,
) -> Decimal:
    """Balance reported on the account's normal side."""
    if normal_balance == NormalBalance.DEBIT:
        return total_debit - total_credit
    return total_credit - total_debit


@dataclass(frozen=True)
class AccountBalance:
    """Balance for a single account as of a date (or over a window)."""

    account_code: str
    account_name: str
    category: str
    normal_balance: str
    total_debit: Decimal
    total_credit: Decimal
    balance: Decimal
    as_of_date: date
    is_active: bool = True

    @property
    def has_activity(self) -> bool:
        return self.total_debit != ZERO or self.total_credit != ZERO


@dataclass(frozen=True)
class TaxTagTotal:
    """Debit/credit totals of lines sharing a (tax_category, vat_category) pair."""

    tax_category: str | None
    vat_category: str | None
    total_debit: Decimal
    total_credit: Decimal


class LedgerSelector(BaseSelector[JournalLine]):
    """
    Selector for balance queries.

    All methods accept an optional ``organization_id``; None aggregates
    over every organization in the store.
    """

    def _line_totals(
        self,
        end_date: date | None,
        start_date: date | None = None,
        organization_id: str | None = None,
        account_code: str | None = None,
    ) -> dict[str, tuple[Decimal, Decimal]]:
        query = (
            select(
                JournalLine.account_code,
                func.sum(JournalLine.debit_amount).label("total_debit"),
                func.sum(JournalLine.credit_amount).label("total_credit"),
            )
            .join(Transaction, JournalLine.transaction_id == Transaction.id)
            .where(Transaction.status != TransactionStatus.CANCELLED.value)
            .group_by(JournalLine.account_code)
        )
        if end_date is not None:
            query = query.where(Transaction.transaction_date <= end_date)
        if start_date is not None:
            query = query.where(Transaction.transaction_date >= start_date)
        if organization_id is not None:
            query = query.where(Transaction.organization_id == organization_id)
        if account_code is not None:
            query = query.where(JournalLine.account_code == account_code)

        return {
            row.account_code: (row.total_debit or ZERO, row.total_credit or ZERO)
            for row in self.session.execute(query).all()
        }

    @staticmethod
    def _to_balance(
        account: Account,
        totals: tuple[Decimal, Decimal],
        as_of_date: date,
    ) -> AccountBalance:
        total_debit, total_credit = totals
        return AccountBalance(
            account_code=account.code,
            account_name=account.name,
            category=_value(account.category),
            normal_balance=_value(account.normal_balance),
            total_debit=total_debit,
            total_credit=total_credit,
            balance=signed_balance(account.normal_balance, total_debit, total_credit),
            as_of_date=as_of_date,
            is_active=account.is_active,
        )

    def _account(self, account_code: str) -> Account:
        account = self.session.execute(
            select(Account).where(Account.code == account_code)
        ).scalar_one_or_none()
        if account is None:
            raise AccountNotFoundError(account_code)
        return account

    def account_balance(
        self,
        account_code: str,
        as_of_date: date,
        organization_id: str | None = None,
    ) -> AccountBalance:
        """
        Balance of one account over non-cancelled transactions dated
        on or before ``as_of_date``.

        Raises:
            AccountNotFoundError: Unknown account code.
        """
        account = self._account(account_code)
        totals = self._line_totals(
            as_of_date,
            organization_id=organization_id,
            account_code=account_code,
        ).get(account_code, (ZERO, ZERO))
        return self._to_balance(account, totals, as_of_date)

    def period_activity(
        self,
        account_code: str,
        start_date: date,
        end_date: date,
        organization_id: str | None = None,
    ) -> AccountBalance:
        """Same sums as account_balance, restricted to start <= date <= end."""
        account = self._account(account_code)
        totals = self._line_totals(
            end_date,
            start_date=start_date,
            organization_id=organization_id,
            account_code=account_code,
        ).get(account_code, (ZERO, ZERO))
        return self._to_balance(account, totals, end_date)

    def balances(
        self,
        as_of_date: date,
        categories: tuple[AccountCategory, ...] | None = None,
        active_only: bool = False,
        organization_id: str | None = None,
        start_date: date | None = None,
    ) -> list[AccountBalance]:
        """
        Balances of every account (optionally filtered), ordered by code.

        Accounts without lines are included with zero totals.
        """
        query = select(Account).order_by(Account.code)
        if categories:
            query = query.where(Account.category.in_([c.value for c in categories]))
        if active_only:
            query = query.where(Account.is_active.is_(True))
        accounts = self.session.execute(query).scalars().all()

        totals = self._line_totals(
            as_of_date,
            start_date=start_date,
            organization_id=organization_id,
        )
        return [
            self._to_balance(account, totals.get(account.code, (ZERO, ZERO)), as_of_date)
            for account in accounts
        ]

    def tagged_account_activity(
        self,
        tag: str,
        start_date: date,
        end_date: date,
        organization_id: str | None = None,
    ) -> Decimal:
        """Sum of signed balances over the window for accounts carrying ``tag``."""
        return sum(
            (
                b.balance
                for b, account in self._balances_with_accounts(
                    start_date, end_date, organization_id
                )
                if account.has_tag(tag)
            ),
            ZERO,
        )

    def tax_category_activity(
        self,
        tax_category: str,
        categories: tuple[AccountCategory, ...],
        start_date: date,
        end_date: date,
        organization_id: str | None = None,
    ) -> Decimal:
        """Sum of signed balances over the window for accounts with ``tax_category``."""
        return sum(
            (
                b.balance
                for b, account in self._balances_with_accounts(
                    start_date, end_date, organization_id
                )
                if account.tax_category == tax_category
                and account.category in {c.value for c in categories}
            ),
            ZERO,
        )

    def _balances_with_accounts(
        self,
        start_date: date,
        end_date: date,
        organization_id: str | None,
    ) -> list[tuple[AccountBalance, Account]]:
        accounts = self.session.execute(select(Account).order_by(Account.code)).scalars().all()
        totals = self._line_totals(
            end_date,
            start_date=start_date,
            organization_id=organization_id,
        )
        return [
            (self._to_balance(a, totals.get(a.code, (ZERO, ZERO)), end_date), a)
            for a in accounts
        ]

    def tax_tag_totals(
        self,
        start_date: date,
        end_date: date,
        organization_id: str | None = None,
    ) -> list[TaxTagTotal]:
        """Per (tax_category, vat_category) debit/credit totals in the window."""
        query = (
            select(
                JournalLine.tax_category,
                JournalLine.vat_category,
                func.sum(JournalLine.debit_amount).label("total_debit"),
                func.sum(JournalLine.credit_amount).label("total_credit"),
            )
            .join(Transaction, JournalLine.transaction_id == Transaction.id)
            .where(
                Transaction.status != TransactionStatus.CANCELLED.value,
                Transaction.transaction_date >= start_date,
                Transaction.transaction_date <= end_date,
            )
            .group_by(JournalLine.tax_category, JournalLine.vat_category)
        )
        if organization_id is not None:
            query = query.where(Transaction.organization_id == organization_id)

        return [
            TaxTagTotal(
                tax_category=row.tax_category,
                vat_category=row.vat_category,
                total_debit=row.total_debit or ZERO,
                total_credit=row.total_credit or ZERO,
            )
            for row in self.session.execute(query).all()
        ]
