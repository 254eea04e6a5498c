"""
Receipt ORM Persistence Model (``taxbook_modules.receipts.orm``).

Invariants enforced:
    - ``transaction_id`` is a weak reference to ``transactions.id`` (no FK):
      the ledger never depends on the receipts table.
    - Amounts are Decimal (Numeric(38, 9)); confidences are Decimal too.
    - Enum fields stored as String containing the enum .value.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import JSON, Boolean, Date, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from taxbook_kernel.db.base import TrackedBase, UUIDString
from taxbook_modules.receipts.models import ReceiptStatus


class ReceiptModel(TrackedBase):
    """A scanned receipt on its way from upload to a journal entry."""

    __tablename__ = "receipts"

    __table_args__ = (
        UniqueConstraint("receipt_number", name="uq_receipt_number"),
        Index("idx_receipt_org_status", "organization_id", "status"),
        Index("idx_receipt_org_date", "organization_id", "transaction_date"),
    )

    receipt_number: Mapped[str] = mapped_column(String(100), nullable=False)
    organization_id: Mapped[str] = mapped_column(String(64), nullable=False)
    image_uri: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ReceiptStatus.UPLOADED.value,
    )

    # Merchant
    merchant_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    merchant_business_number: Mapped[str | None] = mapped_column(String(20), nullable=True)

    # Transaction facts
    transaction_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    total_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    tax_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    net_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    payment_method: Mapped[str | None] = mapped_column(String(30), nullable=True)

    # AI recognition
    ai_processed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    ai_processed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    ai_confidence: Mapped[Decimal | None] = mapped_column(nullable=True)
    extracted_fields: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    # Classification
    is_classified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    classified_at: Mapped[datetime | None] = mapped_column(nullable=True)
    account_code: Mapped[str | None] = mapped_column(String(20), nullable=True)
    account_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    expense_category: Mapped[str | None] = mapped_column(String(100), nullable=True)
    tax_category: Mapped[str | None] = mapped_column(String(10), nullable=True)
    vat_category: Mapped[str | None] = mapped_column(String(10), nullable=True)
    classification_confidence: Mapped[Decimal | None] = mapped_column(nullable=True)
    classification_method: Mapped[str | None] = mapped_column(String(20), nullable=True)

    # Review
    review_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    reviewed_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    review_notes: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    # Validation
    is_valid: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    validation_errors: Mapped[list | None] = mapped_column(JSON, nullable=True)
    validated_at: Mapped[datetime | None] = mapped_column(nullable=True)

    # Accounting
    is_posted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    posted_at: Mapped[datetime | None] = mapped_column(nullable=True)
    transaction_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    transaction_number: Mapped[str | None] = mapped_column(String(100), nullable=True)

    def __repr__(self) -> str:
        return f"<ReceiptModel {self.receipt_number} ({self.status})>"
