"""
Configuration schema.

Frozen dataclasses that YAML fragments are parsed into.  Tax parameters
reuse the engine's own parameter types (IncomeTaxRules, CorporateTaxRules)
so the loader hands engines exactly what they compute with.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from taxbook_engines.tax import CorporateTaxRules, IncomeTaxRules
from taxbook_kernel.exceptions import ConfigurationError

# ---------------------------------------------------------------------------
# Ledger / collaborators
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LedgerSettings:
    currency: str = "KRW"
    balance_tolerance: Decimal = Decimal("0.01")
    clearing_account_code: str = "1100"


@dataclass(frozen=True)
class GatewaySettings:
    """Endpoint of one external collaborator."""

    base_url: str
    timeout_seconds: float = 30.0


@dataclass(frozen=True)
class ChartAccountDef:
    code: str
    name: str
    category: str
    tax_category: str | None = None
    tags: tuple[str, ...] = ()


# ---------------------------------------------------------------------------
# Tax rules
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class VatRules:
    rate: Decimal
    due_day_of_following_month: int = 25


@dataclass(frozen=True)
class TaxRuleSet:
    """Statutory parameters in force from ``effective_year`` onwards."""

    effective_year: int
    vat: VatRules
    income_tax: IncomeTaxRules
    corporate_tax: CorporateTaxRules
    income_tax_due: tuple[int, int] = (5, 31)
    corporate_tax_due: tuple[int, int] = (3, 31)

    def vat_due_date(self, tax_year: int, tax_period: int) -> date:
        """Due day in the month after the VAT period month."""
        year, month = (tax_year + 1, 1) if tax_period == 12 else (tax_year, tax_period + 1)
        return date(year, month, self.vat.due_day_of_following_month)

    def annual_due_date(self, tax_year: int, corporate: bool) -> date:
        month, day = self.corporate_tax_due if corporate else self.income_tax_due
        return date(tax_year + 1, month, day)


# ---------------------------------------------------------------------------
# Complete configuration
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TaxbookConfig:
    ledger: LedgerSettings
    ocr: GatewaySettings
    classifier: GatewaySettings
    tax_authority: GatewaySettings
    chart: tuple[ChartAccountDef, ...]
    rule_sets: tuple[TaxRuleSet, ...]
    checksum: str = ""
    source_dir: str = ""
    metadata: dict = field(default_factory=dict)

    def rules_for(self, tax_year: int) -> TaxRuleSet:
        """Most recent rule set whose effective_year <= tax_year."""
        candidates = [r for r in self.rule_sets if r.effective_year <= tax_year]
        if not candidates:
            raise ConfigurationError(
                "tax_rules", f"no rule set in force for tax year {tax_year}"
            )
        return max(candidates, key=lambda r: r.effective_year)
