"""
taxbook_services -- Package init and public API.

Responsibility:
    The outermost layer.  Concrete clients for the external collaborators
    the modules consume through ports, and the ``BackOffice`` facade that
    owns transaction boundaries.

Architecture position:
    taxbook_services/ -> taxbook_modules/, taxbook_config/, taxbook_kernel/
    Nothing below this package imports it.
"""

from taxbook_services.backoffice import BackOffice, ReceiptRecord, TaxReturnRecord
from taxbook_services.gateways import (
    HttpClassificationClient,
    HttpOcrClient,
    HttpTaxAuthorityGateway,
    RuleBasedClassifier,
)

__all__ = [
    "BackOffice",
    "HttpClassificationClient",
    "HttpOcrClient",
    "HttpTaxAuthorityGateway",
    "ReceiptRecord",
    "RuleBasedClassifier",
    "TaxReturnRecord",
]
