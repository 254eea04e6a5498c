"""
Financial Reporting Domain Models (``taxbook_modules.reporting.models``).

Responsibility
--------------
Frozen dataclass value objects for statement outputs: trial balance,
income statement and balance sheet.

Architecture position
---------------------
**Modules layer** -- pure data definitions with ZERO I/O.  Built by the
functions in ``statements.py`` and returned by ``ReportingService``.

Invariants enforced
-------------------
* All models are ``frozen=True``.
* All monetary fields use ``Decimal``.
* For every statement section, ``sum(line.amount) + omitted_total ==
  total``.  Lines hidden from the breakdown are still counted in the
  section total.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum

ZERO = Decimal("0")


class ReportType(str, Enum):
    """Types of financial reports."""

    TRIAL_BALANCE = "trial_balance"
    GENERAL_LEDGER = "general_ledger"
    INCOME_STATEMENT = "income_statement"
    BALANCE_SHEET = "balance_sheet"


@dataclass(frozen=True)
class ReportMetadata:
    """Metadata attached to every financial report."""

    report_type: ReportType
    as_of_date: date
    currency: str
    generated_at: str
    organization_id: str | None = None
    fiscal_year: int | None = None
    fiscal_period: int | None = None


# =========================================================================
# Trial Balance
# =========================================================================


@dataclass(frozen=True)
class TrialBalanceLine:
    account_code: str
    account_name: str
    category: str
    total_debit: Decimal
    total_credit: Decimal
    balance: Decimal


@dataclass(frozen=True)
class TrialBalanceReport:
    """Accounts with activity up to ``as_of_date``, sorted by code."""

    metadata: ReportMetadata
    lines: tuple[TrialBalanceLine, ...]
    total_debits: Decimal
    total_credits: Decimal

    @property
    def is_balanced(self) -> bool:
        return self.total_debits == self.total_credits

    @property
    def difference(self) -> Decimal:
        return self.total_debits - self.total_credits


# =========================================================================
# Statement sections
# =========================================================================


@dataclass(frozen=True)
class StatementLine:
    account_code: str
    account_name: str
    amount: Decimal


@dataclass(frozen=True)
class StatementSection:
    """
    One category block of a statement.

    ``lines`` holds only the positively-reported balances; every other
    balance is folded into ``omitted_total``.
    """

    label: str
    lines: tuple[StatementLine, ...]
    total: Decimal
    omitted_total: Decimal = ZERO

    @property
    def detail_total(self) -> Decimal:
        return sum((line.amount for line in self.lines), ZERO)


@dataclass(frozen=True)
class IncomeStatementReport:
    metadata: ReportMetadata
    revenue: StatementSection
    expenses: StatementSection

    @property
    def total_revenue(self) -> Decimal:
        return self.revenue.total

    @property
    def total_expenses(self) -> Decimal:
        return self.expenses.total

    @property
    def net_income(self) -> Decimal:
        return self.revenue.total - self.expenses.total


@dataclass(frozen=True)
class BalanceSheetReport:
    """
    Assets, liabilities and equity as of a period end.

    ``equity`` includes the unclosed current earnings, so a ledger of
    balanced entries satisfies ``total_assets ==
    total_liabilities_and_equity``.  The report does not check this.
    """

    metadata: ReportMetadata
    assets: StatementSection
    liabilities: StatementSection
    equity: StatementSection
    current_earnings: Decimal

    @property
    def total_assets(self) -> Decimal:
        return self.assets.total

    @property
    def total_liabilities(self) -> Decimal:
        return self.liabilities.total

    @property
    def total_equity(self) -> Decimal:
        return self.equity.total

    @property
    def total_liabilities_and_equity(self) -> Decimal:
        return self.liabilities.total + self.equity.total
