"""
Collaborator ports for receipt processing.

``ReceiptService`` consumes recognition and classification results only;
how they are produced is up to the implementations in
``taxbook_services.gateways``.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from taxbook_modules.receipts.models import Classification, OcrResult


@runtime_checkable
class OcrClient(Protocol):
    """Reads fields off a stored receipt image."""

    def recognize(self, image_uri: str, hints: dict[str, Any]) -> OcrResult: ...


@runtime_checkable
class ClassificationClient(Protocol):
    """Suggests an account and tax treatment for extracted receipt fields."""

    def classify(self, extracted_fields: dict[str, Any]) -> Classification: ...
