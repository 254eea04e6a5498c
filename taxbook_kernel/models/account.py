"""
Module: taxbook_kernel.models.account
Responsibility: ORM persistence for the Chart of Accounts, the target of
    every journal line.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - code is unique and numeric (checked by ChartOfAccountsService).
    - normal_balance is derived from category and is locked, together with
      category, once any journal line references the account.
    - Accounts are deactivated, never deleted.

Failure modes:
    - UnknownAccountError / InactiveAccountError at posting time.
    - AccountReferencedError when a structural change hits a used account.
"""

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy import JSON, Boolean, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from taxbook_kernel.db.base import TrackedBase

if TYPE_CHECKING:
    from taxbook_kernel.models.transaction import JournalLine


class AccountCategory(str, Enum):
    """Financial statement placement of an account."""

    ASSET = "asset"
    LIABILITY = "liability"
    EQUITY = "equity"
    REVENUE = "revenue"
    EXPENSE = "expense"


class NormalBalance(str, Enum):
    DEBIT = "debit"
    CREDIT = "credit"


class TaxCategory(str, Enum):
    """VAT treatment tags carried by accounts, journal lines and receipts."""

    TAXABLE = "과세"
    EXEMPT = "면세"
    ZERO_RATED = "영세"
    DEDUCTIBLE = "공제"
    NON_DEDUCTIBLE = "불공제"


class AccountTag(str, Enum):
    """Tags that route an account into a specific computation."""

    WITHHOLDING_PREPAID = "withholding_prepaid"  # tax already withheld
    NON_OPERATING = "non_operating"  # outside operating income (corporate tax)


_DEBIT_NORMAL = frozenset({AccountCategory.ASSET, AccountCategory.EXPENSE})


def normal_balance_for(category: AccountCategory | str) -> NormalBalance:
    """asset/expense are debit-normal; liability/equity/revenue credit-normal."""
    if AccountCategory(category) in _DEBIT_NORMAL:
        return NormalBalance.DEBIT
    return NormalBalance.CREDIT


class Account(TrackedBase):
    """
    Chart of Accounts entry.

    Lines reference accounts by ``code`` through a foreign key, so an
    account row can never disappear from under a journal line.
    """

    __tablename__ = "accounts"

    __table_args__ = (
        UniqueConstraint("code", name="uq_account_code"),
        Index("idx_account_category", "category"),
        Index("idx_account_active", "is_active"),
    )

    code: Mapped[str] = mapped_column(String(20), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    category: Mapped[AccountCategory] = mapped_column(String(20), nullable=False)

    normal_balance: Mapped[NormalBalance] = mapped_column(String(10), nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Default VAT treatment for lines posted to this account
    tax_category: Mapped[str | None] = mapped_column(String(10), nullable=True)

    tags: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)

    # Usage statistics, bumped once per posted transaction
    usage_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    last_used_at: Mapped[datetime | None] = mapped_column(nullable=True)

    journal_lines: Mapped[list["JournalLine"]] = relationship(
        back_populates="account",
        lazy="dynamic",
    )

    def __repr__(self) -> str:
        return f"<Account {self.code}: {self.name}>"

    def has_tag(self, tag: AccountTag | str) -> bool:
        if not self.tags:
            return False
        tag_value = tag.value if isinstance(tag, AccountTag) else tag
        return tag_value in self.tags


_VAT_CATEGORY_FOR = {
    TaxCategory.TAXABLE: TaxCategory.TAXABLE,
    TaxCategory.DEDUCTIBLE: TaxCategory.TAXABLE,
    TaxCategory.NON_DEDUCTIBLE: TaxCategory.TAXABLE,
    TaxCategory.EXEMPT: TaxCategory.EXEMPT,
    TaxCategory.ZERO_RATED: TaxCategory.ZERO_RATED,
}


def default_vat_category(tax_category: TaxCategory | str | None) -> str | None:
    """VAT category a line inherits when only its tax category is known."""
    if tax_category is None:
        return None
    return _VAT_CATEGORY_FOR[TaxCategory(tax_category)].value
