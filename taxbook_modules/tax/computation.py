"""
Tax Computation Service (``taxbook_modules.tax.computation``).

Responsibility
--------------
Reads ledger figures through ``LedgerSelector`` and feeds them to the pure
engines in ``taxbook_engines.tax`` with the rule set in force for the tax
year.  Read-only.

Ledger mapping
--------------
* VAT (calendar month ``period``): supply = debit amounts on lines tagged
  과세/과세; purchases = credit amounts on lines tagged 공제/과세.
* Income tax (fiscal year): gross income = revenue activity; deductible
  expenses = activity of accounts whose tax category is 공제; withholding
  = activity of accounts tagged ``withholding_prepaid``.
* Corporate tax (fiscal year): revenue and expense activity, with accounts
  tagged ``non_operating`` reported separately; withholding as above.

Ledger-derived amounts below zero are floored at zero before they reach
an engine.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from taxbook_config.schema import TaxbookConfig, TaxRuleSet
from taxbook_engines.tax import (
    CorporateTaxComputation,
    IncomeTaxComputation,
    VatComputation,
    calculate_corporate_tax,
    calculate_income_tax,
    calculate_vat,
)
from taxbook_kernel.logging_config import get_logger
from taxbook_kernel.models.account import (
    Account,
    AccountCategory,
    AccountTag,
    TaxCategory,
)
from taxbook_kernel.selectors.ledger_selector import LedgerSelector
from taxbook_modules.reporting.statements import period_end_date
from taxbook_modules.tax.models import (
    CorporateTaxReturnData,
    IncomeTaxReturnData,
    ReturnData,
    TaxType,
    VatReturnData,
)

logger = get_logger("modules.tax.computation")

ZERO = Decimal("0")


def _floor(amount: Decimal) -> Decimal:
    return max(ZERO, amount)


def fiscal_year_window(year: int) -> tuple[date, date]:
    return date(year, 1, 1), date(year, 12, 31)


def month_window(year: int, period: int) -> tuple[date, date]:
    end = period_end_date(year, period)
    return date(year, period, 1), end


class TaxComputationService:
    """Ledger-to-engine wiring for the three supported tax types."""

    def __init__(self, session: Session, config: TaxbookConfig):
        self._session = session
        self._config = config
        self._ledger = LedgerSelector(session)

    def rules_for(self, tax_year: int) -> TaxRuleSet:
        return self._config.rules_for(tax_year)

    def _withholding(self, start: date, end: date, organization_id: str) -> Decimal:
        return _floor(
            self._ledger.tagged_account_activity(
                AccountTag.WITHHOLDING_PREPAID.value, start, end, organization_id,
            )
        )

    def vat(self, organization_id: str, tax_year: int, tax_period: int) -> VatComputation:
        start, end = month_window(tax_year, tax_period)
        supply = ZERO
        purchases = ZERO
        for total in self._ledger.tax_tag_totals(start, end, organization_id):
            if total.vat_category != TaxCategory.TAXABLE.value:
                continue
            if total.tax_category == TaxCategory.TAXABLE.value:
                supply += total.total_debit
            elif total.tax_category == TaxCategory.DEDUCTIBLE.value:
                purchases += total.total_credit

        return calculate_vat(
            taxable_sales=supply,
            taxable_purchases=purchases,
            rate=self.rules_for(tax_year).vat.rate,
        )

    def income_tax(self, organization_id: str, tax_year: int) -> IncomeTaxComputation:
        start, end = fiscal_year_window(tax_year)
        revenue = self._ledger.balances(
            end,
            categories=(AccountCategory.REVENUE,),
            organization_id=organization_id,
            start_date=start,
        )
        deductible = self._ledger.tax_category_activity(
            TaxCategory.DEDUCTIBLE.value,
            (AccountCategory.EXPENSE,),
            start,
            end,
            organization_id,
        )
        return calculate_income_tax(
            gross_income=_floor(sum((b.balance for b in revenue), ZERO)),
            deductible_expenses=_floor(deductible),
            withholding_tax=self._withholding(start, end, organization_id),
            rules=self.rules_for(tax_year).income_tax,
        )

    def corporate_tax(self, organization_id: str, tax_year: int) -> CorporateTaxComputation:
        start, end = fiscal_year_window(tax_year)
        non_operating = {
            account.code
            for account in self._session.execute(select(Account)).scalars()
            if account.has_tag(AccountTag.NON_OPERATING)
        }
        sums = {
            (AccountCategory.REVENUE.value, False): ZERO,
            (AccountCategory.REVENUE.value, True): ZERO,
            (AccountCategory.EXPENSE.value, False): ZERO,
            (AccountCategory.EXPENSE.value, True): ZERO,
        }
        for balance in self._ledger.balances(
            end,
            categories=(AccountCategory.REVENUE, AccountCategory.EXPENSE),
            organization_id=organization_id,
            start_date=start,
        ):
            sums[(balance.category, balance.account_code in non_operating)] += balance.balance

        return calculate_corporate_tax(
            revenue=_floor(sums[(AccountCategory.REVENUE.value, False)]),
            expenses=_floor(sums[(AccountCategory.EXPENSE.value, False)]),
            withholding_tax=self._withholding(start, end, organization_id),
            rules=self.rules_for(tax_year).corporate_tax,
            non_operating_income=_floor(sums[(AccountCategory.REVENUE.value, True)]),
            non_operating_expenses=_floor(sums[(AccountCategory.EXPENSE.value, True)]),
        )

    def compute(
        self,
        tax_type: TaxType | str,
        organization_id: str,
        tax_year: int,
        tax_period: int,
    ) -> ReturnData:
        """Figures for one return, as the variant matching ``tax_type``."""
        match TaxType(tax_type):
            case TaxType.VAT:
                data = VatReturnData.from_computation(
                    self.vat(organization_id, tax_year, tax_period)
                )
            case TaxType.INCOME_TAX:
                data = IncomeTaxReturnData.from_computation(
                    self.income_tax(organization_id, tax_year)
                )
            case TaxType.CORPORATE_TAX:
                data = CorporateTaxReturnData.from_computation(
                    self.corporate_tax(organization_id, tax_year)
                )

        logger.info(
            "tax_computed",
            extra={
                "tax_type": TaxType(tax_type).value,
                "organization_id": organization_id,
                "tax_year": tax_year,
                "tax_period": tax_period,
                "tax_liability": data.tax_liability,
            },
        )
        return data
