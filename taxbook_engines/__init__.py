"""
Module: taxbook_engines
Responsibility:
    Pure calculation layer.  Re-exports the tax engine so higher layers
    import from one place.

Invariants enforced:
    - Purity: no I/O, no clock, no database.  Identical inputs always give
      identical outputs.
    - Decimal-only arithmetic; floats are rejected by construction.
"""

from taxbook_engines.tax import (
    BracketSchedule,
    CorporateTaxComputation,
    CorporateTaxRules,
    CreditRule,
    IncomeTaxComputation,
    IncomeTaxRules,
    TaxBracket,
    VatComputation,
    calculate_corporate_tax,
    calculate_income_tax,
    calculate_vat,
    cumulative_tax_at,
    progressive_tax,
    round_money,
)

__all__ = [
    "BracketSchedule",
    "CorporateTaxComputation",
    "CorporateTaxRules",
    "CreditRule",
    "IncomeTaxComputation",
    "IncomeTaxRules",
    "TaxBracket",
    "VatComputation",
    "calculate_corporate_tax",
    "calculate_income_tax",
    "calculate_vat",
    "cumulative_tax_at",
    "progressive_tax",
    "round_money",
]
