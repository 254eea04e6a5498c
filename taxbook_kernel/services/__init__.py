"""Kernel write services (flush-only; callers own commit)."""

from taxbook_kernel.services.chart_service import ChartOfAccountsService
from taxbook_kernel.services.ledger_service import LedgerService

__all__ = ["ChartOfAccountsService", "LedgerService"]
