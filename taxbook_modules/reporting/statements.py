"""
Pure financial statement transformation functions.

These functions turn AccountBalance rows from the LedgerSelector into
statement dataclasses.  ZERO I/O, ZERO side effects, no clock access:
same inputs always produce the same outputs.
"""

from __future__ import annotations

import calendar
from datetime import date
from decimal import Decimal
from typing import Iterable

from taxbook_kernel.models.account import AccountCategory
from taxbook_kernel.selectors.ledger_selector import AccountBalance
from taxbook_modules.reporting.models import (
    BalanceSheetReport,
    IncomeStatementReport,
    ReportMetadata,
    StatementLine,
    StatementSection,
    TrialBalanceLine,
    TrialBalanceReport,
)

ZERO = Decimal("0")
CURRENT_EARNINGS_LABEL = "Current period earnings"


def period_end_date(year: int, period: int) -> date:
    """Last calendar day of month ``period`` of ``year``."""
    if not 1 <= period <= 12:
        raise ValueError(f"period must be a month number 1-12, got {period}")
    return date(year, period, calendar.monthrange(year, period)[1])


def _in_category(
    balances: Iterable[AccountBalance],
    category: AccountCategory,
) -> list[AccountBalance]:
    return [b for b in balances if b.category == category.value]


def current_earnings(balances: Iterable[AccountBalance]) -> Decimal:
    """Revenue minus expenses over the given balances."""
    balances = list(balances)
    revenue = sum((b.balance for b in _in_category(balances, AccountCategory.REVENUE)), ZERO)
    expense = sum((b.balance for b in _in_category(balances, AccountCategory.EXPENSE)), ZERO)
    return revenue - expense


def build_section(
    label: str,
    balances: Iterable[AccountBalance],
    extra_lines: tuple[StatementLine, ...] = (),
) -> StatementSection:
    """
    Sum every balance into the section total; list only the positive ones.

    ``extra_lines`` are appended to the breakdown and the total as-is,
    whatever their sign.
    """
    balances = sorted(balances, key=lambda b: b.account_code)
    total = sum((b.balance for b in balances), ZERO) + sum(
        (line.amount for line in extra_lines), ZERO
    )
    lines = tuple(
        StatementLine(
            account_code=b.account_code,
            account_name=b.account_name,
            amount=b.balance,
        )
        for b in balances
        if b.balance > ZERO
    ) + extra_lines
    shown = sum((line.amount for line in lines), ZERO)
    return StatementSection(
        label=label,
        lines=lines,
        total=total,
        omitted_total=total - shown,
    )


# =========================================================================
# Reports
# =========================================================================


def build_trial_balance(
    balances: Iterable[AccountBalance],
    metadata: ReportMetadata,
) -> TrialBalanceReport:
    """Keep accounts with any debit or credit activity, sorted by code."""
    lines = tuple(
        TrialBalanceLine(
            account_code=b.account_code,
            account_name=b.account_name,
            category=b.category,
            total_debit=b.total_debit,
            total_credit=b.total_credit,
            balance=b.balance,
        )
        for b in sorted(balances, key=lambda b: b.account_code)
        if b.has_activity
    )
    return TrialBalanceReport(
        metadata=metadata,
        lines=lines,
        total_debits=sum((line.total_debit for line in lines), ZERO),
        total_credits=sum((line.total_credit for line in lines), ZERO),
    )


def build_income_statement(
    balances: Iterable[AccountBalance],
    metadata: ReportMetadata,
) -> IncomeStatementReport:
    balances = list(balances)
    return IncomeStatementReport(
        metadata=metadata,
        revenue=build_section("Revenue", _in_category(balances, AccountCategory.REVENUE)),
        expenses=build_section("Expenses", _in_category(balances, AccountCategory.EXPENSE)),
    )


def build_balance_sheet(
    balances: Iterable[AccountBalance],
    metadata: ReportMetadata,
) -> BalanceSheetReport:
    """
    Asset, liability and equity sections.

    Revenue and expense accounts are not closed, so their net is carried
    into equity as a synthetic current-earnings line.
    """
    balances = list(balances)
    earnings = current_earnings(balances)
    earnings_lines = (
        (StatementLine(account_code="", account_name=CURRENT_EARNINGS_LABEL, amount=earnings),)
        if earnings != ZERO
        else ()
    )
    return BalanceSheetReport(
        metadata=metadata,
        assets=build_section("Assets", _in_category(balances, AccountCategory.ASSET)),
        liabilities=build_section(
            "Liabilities", _in_category(balances, AccountCategory.LIABILITY)
        ),
        equity=build_section(
            "Equity",
            _in_category(balances, AccountCategory.EQUITY),
            extra_lines=earnings_lines,
        ),
        current_earnings=earnings,
    )
