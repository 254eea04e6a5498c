"""
Tax ORM Persistence Model (``taxbook_modules.tax.orm``).

Responsibility:
    SQLAlchemy model for tax returns.  ``return_data`` is stored as JSON and
    exposed as the typed variant for the row's tax type.

Invariants enforced:
    - One live return per (organization, tax type, year, period):
      the unique constraint covers the tuple plus ``revision``, and
      ``TaxReturnService`` only ever inserts revision 0 through
      ``create_return``.  Amendments add revision + 1.
    - Enum fields stored as String containing the enum .value.
"""

from datetime import date, datetime
from uuid import UUID

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from taxbook_kernel.db.base import TrackedBase, UUIDString
from taxbook_modules.tax.models import (
    ReturnData,
    ReturnType,
    TaxReturnStatus,
    TaxType,
    Taxpayer,
    ValidationIssue,
    return_data_from_dict,
    return_data_to_dict,
)


class TaxReturnModel(TrackedBase):
    """One filing (or one revision of a filing) for a tax period."""

    __tablename__ = "tax_returns"

    __table_args__ = (
        UniqueConstraint(
            "organization_id", "tax_type", "tax_year", "tax_period", "revision",
            name="uq_tax_return_period_revision",
        ),
        UniqueConstraint("return_number", name="uq_tax_return_number"),
        Index("idx_tax_return_org_status", "organization_id", "status"),
        Index("idx_tax_return_due", "due_date"),
    )

    organization_id: Mapped[str] = mapped_column(String(64), nullable=False)
    return_number: Mapped[str] = mapped_column(String(120), nullable=False)
    tax_type: Mapped[str] = mapped_column(String(20), nullable=False)
    return_type: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ReturnType.REGULAR.value,
    )
    tax_year: Mapped[int] = mapped_column(Integer, nullable=False)
    tax_period: Mapped[int] = mapped_column(Integer, nullable=False)
    revision: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=TaxReturnStatus.DRAFT.value,
    )

    # Taxpayer
    business_number: Mapped[str | None] = mapped_column(String(20), nullable=True)
    taxpayer_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    representative: Mapped[str | None] = mapped_column(String(255), nullable=True)
    address: Mapped[str | None] = mapped_column(String(500), nullable=True)
    business_type: Mapped[str | None] = mapped_column(String(50), nullable=True)

    filing_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    return_data_json: Mapped[dict | None] = mapped_column("return_data", JSON, nullable=True)

    # Validation
    is_calculated: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    calculated_at: Mapped[datetime | None] = mapped_column(nullable=True)
    is_valid: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    validation_errors_json: Mapped[list | None] = mapped_column(
        "validation_errors", JSON, nullable=True,
    )
    validated_at: Mapped[datetime | None] = mapped_column(nullable=True)

    # Tax authority gateway
    submission_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    submitted_at: Mapped[datetime | None] = mapped_column(nullable=True)
    acceptance_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    amended_from_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("tax_returns.id"), nullable=True,
    )
    cancellation_reason: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return f"<TaxReturnModel {self.return_number} ({self.status})>"

    @property
    def taxpayer(self) -> Taxpayer:
        return Taxpayer(
            business_number=self.business_number,
            taxpayer_name=self.taxpayer_name,
            representative=self.representative,
            address=self.address,
            business_type=self.business_type,
        )

    @taxpayer.setter
    def taxpayer(self, value: Taxpayer) -> None:
        self.business_number = value.business_number
        self.taxpayer_name = value.taxpayer_name
        self.representative = value.representative
        self.address = value.address
        self.business_type = value.business_type

    @property
    def return_data(self) -> ReturnData | None:
        if self.return_data_json is None:
            return None
        return return_data_from_dict(self.tax_type, self.return_data_json)

    @return_data.setter
    def return_data(self, value: ReturnData | None) -> None:
        self.return_data_json = None if value is None else return_data_to_dict(value)

    @property
    def validation_errors(self) -> list[ValidationIssue]:
        return [ValidationIssue.from_dict(item) for item in self.validation_errors_json or []]

    @validation_errors.setter
    def validation_errors(self, issues: list[ValidationIssue]) -> None:
        self.validation_errors_json = [issue.to_dict() for issue in issues]

    @property
    def status_enum(self) -> TaxReturnStatus:
        return TaxReturnStatus(self.status)

    @property
    def tax_type_enum(self) -> TaxType:
        return TaxType(self.tax_type)
