"""
Tax Return Domain Models (``taxbook_modules.tax.models``).

Responsibility
--------------
Enums and frozen dataclasses for tax returns: tax types, lifecycle
statuses, the taxpayer section, validation issues and the per-tax-type
``return_data`` variants.

Architecture position
---------------------
**Modules layer** -- pure data definitions with ZERO I/O.  Persisted by
``taxbook_modules.tax.orm``.

Invariants enforced
-------------------
* ``return_data`` is a tagged union keyed by ``TaxType``: each tax type
  has exactly one variant, chosen by an exhaustive ``match``.
* All monetary fields use ``Decimal``.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from decimal import Decimal
from enum import Enum
from typing import Any, ClassVar, Union

from taxbook_engines.tax import (
    CorporateTaxComputation,
    IncomeTaxComputation,
    VatComputation,
)


class TaxType(str, Enum):
    VAT = "VAT"
    INCOME_TAX = "INCOME_TAX"
    CORPORATE_TAX = "CORPORATE_TAX"


class ReturnType(str, Enum):
    REGULAR = "regular"
    AMENDED = "amended"
    LATE = "late"  # regular return filed after its due date


class TaxReturnStatus(str, Enum):
    DRAFT = "draft"
    CALCULATED = "calculated"
    VALIDATED = "validated"
    FILED = "filed"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    AMENDED = "amended"
    CANCELLED = "cancelled"


class IssueSeverity(str, Enum):
    ERROR = "error"  # blocks validation
    WARNING = "warning"  # recorded, does not block


@dataclass(frozen=True)
class Taxpayer:
    business_number: str | None = None
    taxpayer_name: str | None = None
    representative: str | None = None
    address: str | None = None
    business_type: str | None = None


@dataclass(frozen=True)
class ValidationIssue:
    field: str
    message: str
    severity: IssueSeverity = IssueSeverity.ERROR

    def to_dict(self) -> dict[str, str]:
        return {"field": self.field, "message": self.message, "severity": self.severity.value}

    @classmethod
    def from_dict(cls, data: dict[str, str]) -> ValidationIssue:
        return cls(
            field=data["field"],
            message=data["message"],
            severity=IssueSeverity(data.get("severity", IssueSeverity.ERROR.value)),
        )


# =========================================================================
# return_data variants
# =========================================================================


@dataclass(frozen=True)
class VatReturnData:
    supply_amount: Decimal
    output_vat: Decimal
    purchase_amount: Decimal
    input_vat: Decimal
    payable_amount: Decimal
    refund_amount: Decimal

    @classmethod
    def from_computation(cls, result: VatComputation) -> VatReturnData:
        return cls(
            supply_amount=result.taxable_sales,
            output_vat=result.output_vat,
            purchase_amount=result.taxable_purchases,
            input_vat=result.input_vat,
            payable_amount=result.payable,
            refund_amount=result.refund,
        )

    @property
    def tax_liability(self) -> Decimal:
        return self.payable_amount


@dataclass(frozen=True)
class IncomeTaxReturnData:
    gross_income: Decimal
    deductible_expenses: Decimal
    taxable_income: Decimal
    calculated_tax: Decimal
    tax_credit: Decimal
    final_tax: Decimal
    withholding_tax: Decimal
    tax_liability: Decimal

    @classmethod
    def from_computation(cls, result: IncomeTaxComputation) -> IncomeTaxReturnData:
        return cls(**asdict(result))


@dataclass(frozen=True)
class CorporateTaxReturnData:
    # revenue - expenses; negative for an operating loss
    SIGNED_FIELDS: ClassVar[frozenset[str]] = frozenset({"operating_income"})

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

    @classmethod
    def from_computation(cls, result: CorporateTaxComputation) -> CorporateTaxReturnData:
        return cls(**asdict(result))


ReturnData = Union[VatReturnData, IncomeTaxReturnData, CorporateTaxReturnData]


def return_data_class(tax_type: TaxType | str) -> type:
    match TaxType(tax_type):
        case TaxType.VAT:
            return VatReturnData
        case TaxType.INCOME_TAX:
            return IncomeTaxReturnData
        case TaxType.CORPORATE_TAX:
            return CorporateTaxReturnData


def return_data_to_dict(data: ReturnData) -> dict[str, str]:
    """JSON-safe form; Decimals are kept exact as strings."""
    return {name: str(value) for name, value in asdict(data).items()}


def return_data_from_dict(tax_type: TaxType | str, payload: dict[str, Any]) -> ReturnData:
    cls = return_data_class(tax_type)
    return cls(**{f.name: Decimal(str(payload[f.name])) for f in fields(cls)})


def non_negative_items(data: ReturnData) -> list[tuple[str, Decimal]]:
    """(field name, amount) for every monetary field that may not go below zero."""
    signed = getattr(data, "SIGNED_FIELDS", frozenset())
    return [(f.name, getattr(data, f.name)) for f in fields(data) if f.name not in signed]
