"""
Taxbook Kernel

Double-entry ledger core for the accounting and tax back-office:
- Chart of accounts with derived normal balances
- Balanced, atomically written journal entries (Transactions)
- Point-in-time account balances computed from journal lines
"""

__version__ = "0.1.0"
