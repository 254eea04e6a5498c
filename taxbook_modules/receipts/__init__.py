"""Scanned receipts: recognition, classification and posting to the ledger."""

from taxbook_modules.receipts.models import (
    BatchPostResult,
    Classification,
    ClassificationMethod,
    OcrResult,
    PostingOutcome,
    ReceiptIssue,
    ReceiptStats,
    ReceiptStatus,
    ReviewStatus,
)
from taxbook_modules.receipts.orm import ReceiptModel
from taxbook_modules.receipts.ports import ClassificationClient, OcrClient
from taxbook_modules.receipts.service import ReceiptService

__all__ = [
    "BatchPostResult",
    "Classification",
    "ClassificationClient",
    "ClassificationMethod",
    "OcrClient",
    "OcrResult",
    "PostingOutcome",
    "ReceiptIssue",
    "ReceiptModel",
    "ReceiptService",
    "ReceiptStats",
    "ReceiptStatus",
    "ReviewStatus",
]
