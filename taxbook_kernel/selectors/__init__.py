"""Read-only selectors over the ledger."""

from taxbook_kernel.selectors.journal_selector import JournalSelector, TransactionPage
from taxbook_kernel.selectors.ledger_selector import (
    AccountBalance,
    LedgerSelector,
    TaxTagTotal,
    signed_balance,
)

__all__ = [
    "AccountBalance",
    "JournalSelector",
    "LedgerSelector",
    "TaxTagTotal",
    "TransactionPage",
    "signed_balance",
]
