"""
Tax Engine - statutory tax figures from ledger-derived amounts.

Covers VAT, individual income tax (progressive brackets) and corporate tax
(flat rate).  Pure functions with no I/O: rates, brackets and credit caps
arrive as parameters so a new tax year is a configuration change.

All amounts are Decimal.  Every reported figure is quantized to 0.01 with
ROUND_HALF_UP.

Usage:
    from decimal import Decimal
    from taxbook_engines.tax import BracketSchedule, TaxBracket, progressive_tax

    schedule = BracketSchedule.from_pairs([
        ("12000000", "0.06"),
        ("46000000", "0.15"),
        (None, "0.24"),
    ])
    progressive_tax(Decimal("50000000"), schedule)   # 6,780,000.00
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

from taxbook_engines.tracer import traced_engine

ZERO = Decimal("0")
CENT = Decimal("0.01")


def round_money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def _require_non_negative(**amounts: Decimal) -> None:
    for name, value in amounts.items():
        if value < ZERO:
            raise ValueError(f"{name} must be >= 0, got {value}")


# ---------------------------------------------------------------------------
# Parameters
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TaxBracket:
    """One marginal band.  ``upper_bound`` None marks the open top band."""

    upper_bound: Decimal | None
    rate: Decimal

    def __post_init__(self) -> None:
        if not (ZERO <= self.rate <= Decimal("1")):
            raise ValueError(f"Bracket rate must be within [0, 1], got {self.rate}")


@dataclass(frozen=True)
class BracketSchedule:
    """
    Ordered marginal-rate ladder.

    Bounds strictly increase and only the last band is open-ended.  The
    first band starts at zero.
    """

    brackets: tuple[TaxBracket, ...]

    def __post_init__(self) -> None:
        if not self.brackets:
            raise ValueError("BracketSchedule requires at least one bracket")
        if self.brackets[-1].upper_bound is not None:
            raise ValueError("The last bracket must be open-ended (upper_bound=None)")
        previous = ZERO
        for bracket in self.brackets[:-1]:
            if bracket.upper_bound is None:
                raise ValueError("Only the last bracket may be open-ended")
            if bracket.upper_bound <= previous:
                raise ValueError("Bracket bounds must strictly increase")
            previous = bracket.upper_bound

    @classmethod
    def from_pairs(
        cls,
        pairs: Iterable[tuple[Decimal | str | int | None, Decimal | str]],
    ) -> BracketSchedule:
        return cls(
            brackets=tuple(
                TaxBracket(
                    upper_bound=None if upper is None else Decimal(str(upper)),
                    rate=Decimal(str(rate)),
                )
                for upper, rate in pairs
            )
        )

    @property
    def floors(self) -> tuple[Decimal, ...]:
        """Lower bound of every band (ZERO for the first)."""
        return (ZERO,) + tuple(b.upper_bound for b in self.brackets[:-1])

    @property
    def boundaries(self) -> tuple[Decimal, ...]:
        return tuple(b.upper_bound for b in self.brackets[:-1])


@dataclass(frozen=True)
class CreditRule:
    """Credit = min(tax x rate, cap)."""

    rate: Decimal
    cap: Decimal

    def apply(self, calculated_tax: Decimal) -> Decimal:
        return round_money(min(calculated_tax * self.rate, self.cap))


@dataclass(frozen=True)
class IncomeTaxRules:
    schedule: BracketSchedule
    credit: CreditRule


@dataclass(frozen=True)
class CorporateTaxRules:
    rate: Decimal
    credit: CreditRule


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class VatComputation:
    taxable_sales: Decimal
    taxable_purchases: Decimal
    output_vat: Decimal
    input_vat: Decimal
    payable: Decimal
    refund: Decimal


@dataclass(frozen=True)
class IncomeTaxComputation:
    gross_income: Decimal
    deductible_expenses: Decimal
    taxable_income: Decimal
    calculated_tax: Decimal
    tax_credit: Decimal
    final_tax: Decimal
    withholding_tax: Decimal
    tax_liability: Decimal


@dataclass(frozen=True)
class CorporateTaxComputation:
    revenue: Decimal
    expenses: Decimal
    operating_income: Decimal
    non_operating_income: Decimal
    non_operating_expenses: Decimal
    taxable_income: Decimal
    calculated_tax: Decimal
    tax_credit: Decimal
    final_tax: Decimal
    withholding_tax: Decimal
    tax_liability: Decimal


# ---------------------------------------------------------------------------
# Bracket evaluation
# ---------------------------------------------------------------------------


def _ladder(schedule: BracketSchedule) -> list[tuple[Decimal, Decimal, Decimal]]:
    """(floor, rate, cumulative tax at floor) for every band."""
    steps = []
    cumulative = ZERO
    for floor, bracket in zip(schedule.floors, schedule.brackets, strict=True):
        steps.append((floor, bracket.rate, cumulative))
        if bracket.upper_bound is not None:
            cumulative += (bracket.upper_bound - floor) * bracket.rate
    return steps


def progressive_tax(income: Decimal, schedule: BracketSchedule) -> Decimal:
    """
    Marginal-rate ladder: cumulative tax at the floor of the band the income
    falls into, plus (income - floor) x that band's rate.

    An income exactly on a boundary belongs to the lower band.
    """
    _require_non_negative(income=income)
    if income == ZERO:
        return round_money(ZERO)

    chosen = None
    for floor, rate, cumulative in _ladder(schedule):
        if income > floor:
            chosen = (floor, rate, cumulative)
        else:
            break
    floor, rate, cumulative = chosen
    return round_money(cumulative + (income - floor) * rate)


def cumulative_tax_at(income: Decimal, schedule: BracketSchedule) -> Decimal:
    """
    Closed form: sum over every band of rate x the slice of income that band
    covers.  Must agree with progressive_tax for every income.
    """
    _require_non_negative(income=income)
    total = ZERO
    for floor, bracket in zip(schedule.floors, schedule.brackets, strict=True):
        if income <= floor:
            break
        top = income if bracket.upper_bound is None else min(income, bracket.upper_bound)
        total += (top - floor) * bracket.rate
    return round_money(total)


# ---------------------------------------------------------------------------
# Taxes
# ---------------------------------------------------------------------------


@traced_engine("vat", "1.0", fingerprint_fields=("taxable_sales", "taxable_purchases", "rate"))
def calculate_vat(
    *,
    taxable_sales: Decimal,
    taxable_purchases: Decimal,
    rate: Decimal,
) -> VatComputation:
    """
    Output VAT on sales against input VAT on purchases.

    payable = max(0, output - input), refund = max(0, input - output); at
    most one of them is non-zero.
    """
    _require_non_negative(taxable_sales=taxable_sales, taxable_purchases=taxable_purchases)
    output_vat = round_money(taxable_sales * rate)
    input_vat = round_money(taxable_purchases * rate)
    return VatComputation(
        taxable_sales=round_money(taxable_sales),
        taxable_purchases=round_money(taxable_purchases),
        output_vat=output_vat,
        input_vat=input_vat,
        payable=round_money(max(ZERO, output_vat - input_vat)),
        refund=round_money(max(ZERO, input_vat - output_vat)),
    )


@traced_engine(
    "income_tax",
    "1.0",
    fingerprint_fields=("gross_income", "deductible_expenses", "withholding_tax"),
)
def calculate_income_tax(
    *,
    gross_income: Decimal,
    deductible_expenses: Decimal,
    withholding_tax: Decimal,
    rules: IncomeTaxRules,
) -> IncomeTaxComputation:
    _require_non_negative(
        gross_income=gross_income,
        deductible_expenses=deductible_expenses,
        withholding_tax=withholding_tax,
    )
    taxable_income = round_money(max(ZERO, gross_income - deductible_expenses))
    calculated_tax = progressive_tax(taxable_income, rules.schedule)
    tax_credit = rules.credit.apply(calculated_tax)
    final_tax = round_money(max(ZERO, calculated_tax - tax_credit))
    withholding = round_money(withholding_tax)
    return IncomeTaxComputation(
        gross_income=round_money(gross_income),
        deductible_expenses=round_money(deductible_expenses),
        taxable_income=taxable_income,
        calculated_tax=calculated_tax,
        tax_credit=tax_credit,
        final_tax=final_tax,
        withholding_tax=withholding,
        tax_liability=round_money(max(ZERO, final_tax - withholding)),
    )


@traced_engine(
    "corporate_tax",
    "1.0",
    fingerprint_fields=("revenue", "expenses", "withholding_tax"),
)
def calculate_corporate_tax(
    *,
    revenue: Decimal,
    expenses: Decimal,
    withholding_tax: Decimal,
    rules: CorporateTaxRules,
    non_operating_income: Decimal = ZERO,
    non_operating_expenses: Decimal = ZERO,
) -> CorporateTaxComputation:
    """Flat statutory rate on max(0, operating income + net non-operating)."""
    _require_non_negative(
        revenue=revenue,
        expenses=expenses,
        withholding_tax=withholding_tax,
        non_operating_income=non_operating_income,
        non_operating_expenses=non_operating_expenses,
    )
    operating_income = round_money(revenue - expenses)
    taxable_income = round_money(
        max(ZERO, operating_income + non_operating_income - non_operating_expenses)
    )
    calculated_tax = round_money(taxable_income * rules.rate)
    tax_credit = rules.credit.apply(calculated_tax)
    final_tax = round_money(max(ZERO, calculated_tax - tax_credit))
    withholding = round_money(withholding_tax)
    return CorporateTaxComputation(
        revenue=round_money(revenue),
        expenses=round_money(expenses),
        operating_income=operating_income,
        non_operating_income=round_money(non_operating_income),
        non_operating_expenses=round_money(non_operating_expenses),
        taxable_income=taxable_income,
        calculated_tax=calculated_tax,
        tax_credit=tax_credit,
        final_tax=final_tax,
        withholding_tax=withholding,
        tax_liability=round_money(max(ZERO, final_tax - withholding)),
    )
