"""Kernel ORM models for the taxbook core."""

from taxbook_kernel.models.account import (
    Account,
    AccountCategory,
    AccountTag,
    NormalBalance,
    TaxCategory,
    default_vat_category,
    normal_balance_for,
)
from taxbook_kernel.models.transaction import (
    JournalLine,
    Transaction,
    TransactionSource,
    TransactionStatus,
)

__all__ = [
    "Account",
    "AccountCategory",
    "AccountTag",
    "NormalBalance",
    "TaxCategory",
    "default_vat_category",
    "normal_balance_for",
    "JournalLine",
    "Transaction",
    "TransactionSource",
    "TransactionStatus",
]
