"""Tax returns: ledger-driven computation and the filing lifecycle."""

from taxbook_modules.tax.computation import TaxComputationService
from taxbook_modules.tax.gateway import TaxAuthorityGateway
from taxbook_modules.tax.lifecycle import (
    ALLOWED_TRANSITIONS,
    TERMINAL_STATES,
    is_terminal,
    validate_transition,
)
from taxbook_modules.tax.models import (
    CorporateTaxReturnData,
    IncomeTaxReturnData,
    IssueSeverity,
    ReturnData,
    ReturnType,
    TaxReturnStatus,
    TaxType,
    Taxpayer,
    ValidationIssue,
    VatReturnData,
)
from taxbook_modules.tax.orm import TaxReturnModel
from taxbook_modules.tax.service import TaxReturnService, validate_return

__all__ = [
    "ALLOWED_TRANSITIONS",
    "CorporateTaxReturnData",
    "IncomeTaxReturnData",
    "IssueSeverity",
    "ReturnData",
    "ReturnType",
    "TERMINAL_STATES",
    "TaxAuthorityGateway",
    "TaxComputationService",
    "TaxReturnModel",
    "TaxReturnService",
    "TaxReturnStatus",
    "TaxType",
    "Taxpayer",
    "ValidationIssue",
    "VatReturnData",
    "is_terminal",
    "validate_return",
    "validate_transition",
]
