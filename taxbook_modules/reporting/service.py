"""
Reporting Module Service (``taxbook_modules.reporting.service``).

Responsibility
--------------
Builds the trial balance, general ledger, income statement and balance
sheet by bridging ``LedgerSelector`` balances to the pure functions in
``statements.py``.  Read-only: nothing is written.

Invariants enforced
-------------------
* Balances are read at query time; no report is cached.
* Periods are calendar months; a report for (year, period) is as of the
  last day of that month.

Failure modes
-------------
* Invalid period number  -> ``ValueError`` before any query runs.
* Selector failures propagate unchanged.
"""

from __future__ import annotations

from datetime import date

from sqlalchemy.orm import Session

from taxbook_kernel.domain.clock import Clock, SystemClock
from taxbook_kernel.logging_config import get_logger
from taxbook_kernel.models.account import AccountCategory
from taxbook_kernel.selectors.ledger_selector import LedgerSelector
from taxbook_modules.reporting.models import (
    BalanceSheetReport,
    IncomeStatementReport,
    ReportMetadata,
    ReportType,
    TrialBalanceReport,
)
from taxbook_modules.reporting.statements import (
    build_balance_sheet,
    build_income_statement,
    build_trial_balance,
    period_end_date,
)

logger = get_logger("modules.reporting.service")

_INCOME_CATEGORIES = (AccountCategory.REVENUE, AccountCategory.EXPENSE)


class ReportingService:
    """
    Financial statement generation service.

    Every public method returns a frozen report DTO.  ``organization_id``
    None reports across all organizations in the store.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        currency: str = "KRW",
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._currency = currency
        self._ledger = LedgerSelector(session)

    def _metadata(
        self,
        report_type: ReportType,
        as_of_date: date,
        organization_id: str | None,
        year: int | None = None,
        period: int | None = None,
    ) -> ReportMetadata:
        return ReportMetadata(
            report_type=report_type,
            as_of_date=as_of_date,
            currency=self._currency,
            generated_at=self._clock.now().isoformat(),
            organization_id=organization_id,
            fiscal_year=year,
            fiscal_period=period,
        )

    def trial_balance(
        self,
        as_of_date: date,
        organization_id: str | None = None,
    ) -> TrialBalanceReport:
        """Every active account with activity up to ``as_of_date``."""
        balances = self._ledger.balances(
            as_of_date,
            active_only=True,
            organization_id=organization_id,
        )
        report = build_trial_balance(
            balances,
            self._metadata(ReportType.TRIAL_BALANCE, as_of_date, organization_id),
        )
        logger.info(
            "trial_balance_generated",
            extra={
                "as_of_date": as_of_date.isoformat(),
                "organization_id": organization_id,
                "line_count": len(report.lines),
                "is_balanced": report.is_balanced,
            },
        )
        return report

    def general_ledger(
        self,
        year: int,
        period: int,
        organization_id: str | None = None,
    ) -> TrialBalanceReport:
        """Trial balance as of the end of month ``period``."""
        as_of = period_end_date(year, period)
        balances = self._ledger.balances(
            as_of,
            active_only=True,
            organization_id=organization_id,
        )
        report = build_trial_balance(
            balances,
            self._metadata(ReportType.GENERAL_LEDGER, as_of, organization_id, year, period),
        )
        logger.info(
            "general_ledger_generated",
            extra={
                "fiscal_year": year,
                "fiscal_period": period,
                "organization_id": organization_id,
                "line_count": len(report.lines),
            },
        )
        return report

    def income_statement(
        self,
        year: int,
        period: int,
        organization_id: str | None = None,
    ) -> IncomeStatementReport:
        """
        Revenue and expense balances as of the period end.

        Totals cover every account in the category; accounts whose balance
        is zero or on the wrong side are left out of the breakdown and
        reported in ``omitted_total``.
        """
        as_of = period_end_date(year, period)
        balances = self._ledger.balances(
            as_of,
            categories=_INCOME_CATEGORIES,
            organization_id=organization_id,
        )
        report = build_income_statement(
            balances,
            self._metadata(ReportType.INCOME_STATEMENT, as_of, organization_id, year, period),
        )
        logger.info(
            "income_statement_generated",
            extra={
                "fiscal_year": year,
                "fiscal_period": period,
                "organization_id": organization_id,
                "total_revenue": report.total_revenue,
                "total_expenses": report.total_expenses,
                "net_income": report.net_income,
            },
        )
        return report

    def balance_sheet(
        self,
        year: int,
        period: int,
        organization_id: str | None = None,
    ) -> BalanceSheetReport:
        as_of = period_end_date(year, period)
        balances = self._ledger.balances(as_of, organization_id=organization_id)
        report = build_balance_sheet(
            balances,
            self._metadata(ReportType.BALANCE_SHEET, as_of, organization_id, year, period),
        )
        logger.info(
            "balance_sheet_generated",
            extra={
                "fiscal_year": year,
                "fiscal_period": period,
                "organization_id": organization_id,
                "total_assets": report.total_assets,
                "total_liabilities_and_equity": report.total_liabilities_and_equity,
            },
        )
        return report
