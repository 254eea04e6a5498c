"""Financial statements derived from ledger balances."""

from taxbook_modules.reporting.models import (
    BalanceSheetReport,
    IncomeStatementReport,
    ReportMetadata,
    ReportType,
    StatementLine,
    StatementSection,
    TrialBalanceLine,
    TrialBalanceReport,
)
from taxbook_modules.reporting.service import ReportingService
from taxbook_modules.reporting.statements import period_end_date

__all__ = [
    "BalanceSheetReport",
    "IncomeStatementReport",
    "ReportMetadata",
    "ReportType",
    "ReportingService",
    "StatementLine",
    "StatementSection",
    "TrialBalanceLine",
    "TrialBalanceReport",
    "period_end_date",
]
