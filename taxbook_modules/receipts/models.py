"""
Receipt Domain Models (``taxbook_modules.receipts.models``).

Enums and frozen dataclasses exchanged with the OCR and classification
collaborators, plus the summaries returned by batch posting and
statistics queries.  ZERO I/O.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

ZERO = Decimal("0")


class ReceiptStatus(str, Enum):
    UPLOADED = "uploaded"
    PROCESSING = "processing"
    RECOGNIZED = "recognized"
    CLASSIFIED = "classified"
    POSTED = "posted"
    ARCHIVED = "archived"
    DELETED = "deleted"


class ReviewStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    NEEDS_CORRECTION = "needs_correction"


class ClassificationMethod(str, Enum):
    AI = "AI"
    RULE = "Rule"
    MANUAL = "Manual"


@dataclass(frozen=True)
class OcrResult:
    """Fields read off a receipt image, with the recognizer's confidence."""

    extracted_fields: dict[str, Any]
    confidence: Decimal


@dataclass(frozen=True)
class Classification:
    """
    Account suggestion for a receipt.

    ``confidence`` is carried as metadata; it never decides whether the
    receipt may be posted.
    """

    account_code: str
    tax_category: str | None
    confidence: Decimal
    vat_category: str | None = None
    account_name: str | None = None
    expense_category: str | None = None
    method: ClassificationMethod = ClassificationMethod.AI


@dataclass(frozen=True)
class ReceiptIssue:
    field: str
    message: str
    severity: str = "error"

    def to_dict(self) -> dict[str, str]:
        return {"field": self.field, "message": self.message, "severity": self.severity}


@dataclass(frozen=True)
class PostingOutcome:
    receipt_id: UUID
    transaction_id: UUID | None = None
    error_code: str | None = None
    error_message: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.transaction_id is not None


@dataclass(frozen=True)
class BatchPostResult:
    outcomes: tuple[PostingOutcome, ...] = field(default_factory=tuple)

    @property
    def posted(self) -> int:
        return sum(1 for o in self.outcomes if o.succeeded)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if not o.succeeded)


@dataclass(frozen=True)
class ReceiptStats:
    total_receipts: int
    processed_receipts: int
    classified_receipts: int
    posted_receipts: int
    total_amount: Decimal

    @staticmethod
    def _rate(part: int, whole: int) -> Decimal:
        if whole == 0:
            return ZERO
        return (Decimal(part) * 100 / Decimal(whole)).quantize(Decimal("0.01"))

    @property
    def processing_rate(self) -> Decimal:
        return self._rate(self.processed_receipts, self.total_receipts)

    @property
    def classification_rate(self) -> Decimal:
        return self._rate(self.classified_receipts, self.total_receipts)

    @property
    def posting_rate(self) -> Decimal:
        return self._rate(self.posted_receipts, self.total_receipts)
